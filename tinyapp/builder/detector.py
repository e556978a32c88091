"""Toolchain detection from project manifest files."""

from __future__ import annotations

from enum import Enum
from pathlib import Path


class BuildStrategyKind(str, Enum):
    """Closed set of build backends; ``UNKNOWN`` means nothing matched."""

    GO_NATIVE = "go-native"
    RUST_NATIVE = "rust-native"
    TAURI_HYBRID = "tauri-hybrid"
    BUN_BUNDLE = "bun-bundle"
    STATIC_FILE = "static-file"
    UNKNOWN = "unknown"


class StackDetector:
    """Classifies a project directory by the manifests it contains.

    Markers are tested in a fixed priority order and the first match wins:
    backend manifests (``go.mod``, ``Cargo.toml``), the Tauri marker directory
    next to a ``package.json``, a bare ``package.json``, and finally a bare
    ``index.html``.
    """

    def detect(self, project_dir: str | Path) -> BuildStrategyKind:
        """Return the strategy kind for *project_dir*, or ``UNKNOWN``."""
        root = Path(project_dir)
        if not root.is_dir():
            return BuildStrategyKind.UNKNOWN

        has_package_json = (root / "package.json").is_file()

        if (root / "go.mod").is_file():
            return BuildStrategyKind.GO_NATIVE
        if (root / "Cargo.toml").is_file():
            return BuildStrategyKind.RUST_NATIVE
        if has_package_json and (root / "src-tauri").is_dir():
            return BuildStrategyKind.TAURI_HYBRID
        if has_package_json:
            return BuildStrategyKind.BUN_BUNDLE
        if (root / "index.html").is_file():
            return BuildStrategyKind.STATIC_FILE
        return BuildStrategyKind.UNKNOWN
