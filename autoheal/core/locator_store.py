from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Callable

from filelock import FileLock

from autoheal.core.exceptions import LocatorPersistenceError, LockTimeout
from autoheal.logging.config import get_logger
from autoheal.utils.wait import retry_with_backoff

logger = get_logger(__name__)


class LocatorStore:
    """Nested key -> selector mapping backed by a JSON file.

    Keys are dot paths (``"gigantti.searchInput"``). Leaves are selector
    strings, internal nodes are dicts. Several test workers may share the
    same file, so every update re-reads it under an exclusive file lock
    before writing.
    """

    def __init__(
        self,
        path: str | Path,
        lock_attempts: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        self.lock_attempts = lock_attempts
        self._sleep = sleep
        self._locators: dict[str, Any] | None = None

    @property
    def locators(self) -> dict[str, Any]:
        if self._locators is None:
            self._locators = self._load()
        return self._locators

    def reload(self) -> None:
        self._locators = self._load()

    def get(self, key: str) -> str | None:
        current: Any = self.locators
        for part in key.split("."):
            if not isinstance(current, dict) or part not in current:
                return None
            current = current[part]
        return current if isinstance(current, str) else None

    def update(self, key: str, new_selector: str) -> None:
        """Persist a healed selector. Lock and I/O failures are logged, never raised."""

        _set_path(self.locators, key, new_selector)
        lock = FileLock(str(self.lock_path))
        try:
            retry_with_backoff(
                lambda: lock.acquire(timeout=0),
                retry_on=LockTimeout,
                attempts=self.lock_attempts,
                sleep=self._sleep,
            )
        except LockTimeout:
            logger.error("locator_lock_timeout", key=key, path=str(self.path))
            return
        except OSError as exc:
            logger.error("locator_lock_failed", key=key, lock_path=str(self.lock_path), error=str(exc))
            return

        try:
            current = self._read_file()
            _set_path(current, key, new_selector)
            self._write_file(current)
            self._locators = current
            logger.info("locator_updated", key=key, selector=new_selector)
        except (LocatorPersistenceError, OSError) as exc:
            logger.error("locator_persist_failed", key=key, error=str(exc))
        finally:
            lock.release()

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            logger.warning("locators_file_missing", path=str(self.path))
            return {}
        try:
            return self._read_file()
        except LocatorPersistenceError as exc:
            logger.error("locators_load_failed", path=str(self.path), error=str(exc))
            return {}

    def _read_file(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise LocatorPersistenceError(f"Could not read {self.path}: {exc}") from exc
        if not isinstance(payload, dict):
            raise LocatorPersistenceError(f"{self.path} does not contain a JSON object")
        return payload

    def _write_file(self, locators: dict[str, Any]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(locators, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
        except OSError as exc:
            raise LocatorPersistenceError(f"Could not write {self.path}: {exc}") from exc


def _set_path(locators: dict[str, Any], key: str, value: str) -> None:
    parts = key.split(".")
    current = locators
    for part in parts[:-1]:
        node = current.get(part)
        if not isinstance(node, dict):
            if node is not None:
                # a string leaf in the middle of the path is replaced by a map
                logger.warning("locator_leaf_overwritten", key=key, segment=part, previous=node)
            node = {}
            current[part] = node
        current = node
    current[parts[-1]] = value
