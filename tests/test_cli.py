"""Tests for the ``tinyapp`` command line (tinyapp.cli).

Handlers run against a temporary root; builds use a patched command runner.

Tests cover:
- Argument parsing: defaults, required options, choices
- new / list / stacks / add exit codes and side effects
- build exit status follows the run outcome
- Handled errors print and exit 1, including corrupt project metadata
  and an invalid environment
"""

from __future__ import annotations

import json
from unittest.mock import patch

import pytest

from conftest import StubRunner, write_binary
from tinyapp.cli import build_parser, main
from tinyapp.config import Config
from tinyapp.models import Project, ProjectStatus


class TestParser:
    @pytest.mark.unit
    def test_new_defaults(self):
        args = build_parser().parse_args(["new", "--name", "Demo App"])
        assert args.command == "new"
        assert args.stack == "go-gin"
        assert args.database == "none"
        assert args.auth == "none"

    @pytest.mark.unit
    def test_add_sync_requires_provider(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["add", "sync", "--project", "demo-app"])

    @pytest.mark.unit
    def test_add_auth_default_provider(self):
        args = build_parser().parse_args(["add", "auth"])
        assert args.feature == "auth"
        assert args.provider == "device"
        assert args.project is None

    @pytest.mark.unit
    def test_build_requires_project(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["build"])

    @pytest.mark.unit
    def test_bad_database_choice(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["new", "--name", "x", "--database", "sqlite"])


class TestCommands:
    @pytest.mark.unit
    def test_new(self, config: Config):
        code = main(["new", "--name", "Demo App", "--database", "fireproof"], config=config)

        assert code == 0
        project = Project.load(config.drafts_dir / "demo-app", ProjectStatus.DRAFT)
        assert project.stack == "go-gin"
        assert project.features == ["database"]

    @pytest.mark.unit
    def test_new_unknown_stack(self, config: Config):
        code = main(["new", "--name", "Demo App", "--stack", "cobol"], config=config)
        assert code == 1
        assert not (config.drafts_dir / "demo-app").exists()

    @pytest.mark.unit
    def test_new_twice(self, config: Config):
        assert main(["new", "--name", "Demo App"], config=config) == 0
        assert main(["new", "--name", "Demo App"], config=config) == 1

    @pytest.mark.unit
    def test_list_and_stacks(self, config: Config):
        assert main(["list"], config=config) == 0
        main(["new", "--name", "Demo App"], config=config)
        assert main(["list"], config=config) == 0
        assert main(["stacks"], config=config) == 0

    @pytest.mark.unit
    def test_add_sync(self, config: Config):
        main(["new", "--name", "Demo App"], config=config)
        code = main(
            ["add", "sync", "--provider", "partykit", "--project", "demo-app"], config=config
        )
        assert code == 0
        package = json.loads(
            (config.drafts_dir / "demo-app" / "frontend" / "package.json").read_text()
        )
        assert "partykit" in package["dependencies"]

    @pytest.mark.unit
    def test_add_unknown_project(self, config: Config):
        assert main(["add", "database", "--project", "ghost"], config=config) == 1

    @pytest.mark.unit
    def test_build_exit_codes(self, config: Config, go_project):
        ok = StubRunner(effects={"go build": lambda cwd: write_binary(cwd / cwd.name)})
        with patch("tinyapp.lifecycle.CommandRunner", return_value=ok):
            assert main(["build", "--project", "demo-app"], config=config) == 0
        assert (config.output_dir_for() / "demo-app").is_file()

        failing = StubRunner(fail_on="go build")
        with patch("tinyapp.lifecycle.CommandRunner", return_value=failing):
            assert main(["build", "--project", "demo-app"], config=config) == 1

    @pytest.mark.unit
    def test_finish_missing(self, config: Config):
        assert main(["finish", "--project", "ghost"], config=config) == 1

    @pytest.mark.unit
    def test_publish_missing(self, config: Config):
        assert main(["publish", "--project", "ghost"], config=config) == 1

    @pytest.mark.unit
    def test_corrupt_metadata(self, config: Config, go_project):
        (go_project / ".tinyapp.json").write_text("{not json", encoding="utf-8")
        assert main(["build", "--project", "demo-app"], config=config) == 1
        assert main(["finish", "--project", "demo-app"], config=config) == 1
        assert main(["list"], config=config) == 0
        assert go_project.is_dir()

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "name, value", [("TINYAPP_PLATFORM", "amiga"), ("PORT", "eighty")]
    )
    def test_invalid_environment(self, monkeypatch, tmp_path, name, value):
        monkeypatch.setenv("TINYAPP_ROOT", str(tmp_path))
        monkeypatch.setenv(name, value)
        assert main(["stacks"]) == 1
