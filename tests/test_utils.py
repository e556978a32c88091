"""Unit tests for utility functions (tinyapp.utils).

Tests cover:
- run_command (success, failure, timeout, list vs string, env vars)
- create_slug / to_class_name
- load_json / write_json / save_json (use tmp_path)
- ensure_dir
- format_duration / format_size
- Rich output helpers (print_header, print_summary_table, etc.)
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from tinyapp.utils import (
    create_slug,
    ensure_dir,
    format_duration,
    format_size,
    load_json,
    print_error,
    print_header,
    print_hint,
    print_step_header,
    print_success,
    print_summary_table,
    print_warning,
    run_command,
    save_json,
    to_class_name,
    write_json,
)


# ---------------------------------------------------------------------------
# run_command
# ---------------------------------------------------------------------------


class TestRunCommand:
    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_list(self):
        returncode, stdout, stderr = await run_command(["echo", "hello"])
        assert returncode == 0
        assert stdout == "hello"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_successful_command_string(self):
        returncode, stdout, _ = await run_command("echo one && echo two")
        assert returncode == 0
        assert stdout.splitlines() == ["one", "two"]

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_failing_command_does_not_raise(self):
        returncode, _, stderr = await run_command("echo nope >&2; exit 3")
        assert returncode == 3
        assert stderr == "nope"

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_executable_reports_127(self):
        returncode, _, _ = await run_command(["definitely-not-a-real-binary-xyz"])
        assert returncode == 127

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_timeout(self):
        returncode, _, stderr = await run_command("sleep 5", timeout=1)
        assert returncode == -1
        assert "timed out" in stderr

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_env_and_cwd(self, tmp_path: Path):
        returncode, stdout, _ = await run_command(
            'echo "$TINYAPP_TEST_VAR" && pwd',
            cwd=tmp_path,
            env={"TINYAPP_TEST_VAR": "marker"},
        )
        assert returncode == 0
        lines = stdout.splitlines()
        assert lines[0] == "marker"
        assert Path(lines[1]).resolve() == tmp_path.resolve()


# ---------------------------------------------------------------------------
# Name helpers
# ---------------------------------------------------------------------------


class TestCreateSlug:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Demo App", "demo-app"),
            ("  My  Cool_App! ", "my-coolapp"),
            ("already-a-slug", "already-a-slug"),
            ("Task -- Tracker", "task-tracker"),
            ("-Leading and trailing-", "leading-and-trailing"),
            ("Café 2024", "caf-2024"),
            ("!!!", ""),
        ],
    )
    def test_slugs(self, name, expected):
        assert create_slug(name) == expected


class TestToClassName:
    @pytest.mark.unit
    def test_hyphenated(self):
        assert to_class_name("my-app") == "MyApp"

    @pytest.mark.unit
    def test_mixed_separators(self):
        assert to_class_name("breathe_easy app") == "BreatheEasyApp"


# ---------------------------------------------------------------------------
# JSON helpers
# ---------------------------------------------------------------------------


class TestJsonHelpers:
    @pytest.mark.unit
    def test_write_creates_parents(self, tmp_path: Path):
        path = write_json({"a": 1}, tmp_path / "deep" / "x.json")
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}

    @pytest.mark.unit
    def test_load_wraps_non_object(self, tmp_path: Path):
        path = tmp_path / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        assert load_json(path) == {"_root": [1, 2]}

    @pytest.mark.unit
    def test_load_missing_raises(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError):
            load_json(tmp_path / "missing.json")

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_save_json_async(self, tmp_path: Path):
        path = await save_json({"emoji": "🍒"}, tmp_path / "c.json")
        assert "🍒" in path.read_text(encoding="utf-8")
        assert load_json(path) == {"emoji": "🍒"}


class TestEnsureDir:
    @pytest.mark.unit
    def test_creates_nested(self, tmp_path: Path):
        result = ensure_dir(tmp_path / "a" / "b")
        assert result.is_dir()
        assert result == (tmp_path / "a" / "b").resolve()


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


class TestFormatting:
    @pytest.mark.unit
    @pytest.mark.parametrize(
        "seconds, expected",
        [(3.7, "3.7s"), (65.2, "1m 5s"), (3661.0, "1h 1m 1s"), (-1, "0.0s")],
    )
    def test_format_duration(self, seconds, expected):
        assert format_duration(seconds) == expected

    @pytest.mark.unit
    def test_format_size(self):
        assert format_size(4096) == "4.0 KB"
        assert format_size(3 * 1024 * 1024) == "3.0 MB"


class TestRichOutputHelpers:
    @pytest.mark.unit
    def test_helpers_do_not_raise(self):
        print_header("Build: demo-app")
        print_step_header(1, 3, "go build")
        print_summary_table({"Project": "demo-app", "Steps": "2"})
        print_success("Built demo-app")
        print_error("Build failed")
        print_warning("Git initialization failed")
        print_hint("Run tinyapp build")

    @pytest.mark.unit
    def test_markup_in_messages_is_escaped(self, capsys):
        print_error("failed: [red]not markup[/red]")
        out = capsys.readouterr().out
        assert "[red]not markup[/red]" in out
