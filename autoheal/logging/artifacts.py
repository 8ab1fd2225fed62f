from __future__ import annotations

import json
import re
import shutil
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

UNSAFE_NAME_PATTERN = re.compile(r"[^A-Za-z0-9_.-]+")


class ArtifactManager:
    """Creates and manages healing artifact files."""

    def __init__(self, root: str | Path = "artifacts") -> None:
        self.root = Path(root)
        self.dom_root = self.root / "dom_snapshots"
        self.report_root = self.root / "reports"
        self._ensure_structure()

    def _ensure_structure(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        self.dom_root.mkdir(parents=True, exist_ok=True)
        self.report_root.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def timestamp() -> str:
        return datetime.now(UTC).strftime("%Y%m%dT%H%M%S%fZ")

    def write_dom_snapshot(self, name: str, html: str, timestamp: str | None = None) -> Path:
        stamp = timestamp or self.timestamp()
        path = self.dom_root / f"{stamp}_{safe_name(name)}.html"
        path.write_text(html, encoding="utf-8")
        return path

    def write_report(self, name: str, payload: dict[str, Any], timestamp: str | None = None) -> Path:
        stamp = timestamp or self.timestamp()
        path = self.report_root / f"{stamp}_{safe_name(name)}.json"
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def reset(self) -> Path:
        self._ensure_structure()
        for child in self.root.iterdir():
            if child.is_file() and child.name != ".gitkeep":
                child.unlink()
        for directory in (self.dom_root, self.report_root):
            self._clear_directory(directory)
        return self.root

    @staticmethod
    def _clear_directory(directory: Path) -> None:
        for child in directory.iterdir():
            if child.is_dir():
                shutil.rmtree(child)
            elif child.is_file() and child.name != ".gitkeep":
                child.unlink()


def safe_name(value: str) -> str:
    return UNSAFE_NAME_PATTERN.sub("_", value).strip("_")[:80] or "selector"
