from __future__ import annotations

import json

import pytest

from autoheal.config.loader import ConfigLoader
from autoheal.config.schema import HealingSettings
from autoheal.core.locator_store import LocatorStore
from autoheal.logging.artifacts import ArtifactManager
from autoheal.logging.config import configure_logging
from tests.helpers import SleepRecorder


@pytest.fixture(scope="session", autouse=True)
def healing_logging():
    configure_logging(ConfigLoader.from_env().log_level)


@pytest.fixture()
def settings(tmp_path):
    return HealingSettings(
        provider="gemini",
        api_keys=["key-1"],
        locators_path=tmp_path / "locators.json",
        artifacts_root=tmp_path / "artifacts",
    )


@pytest.fixture()
def locators_file(tmp_path):
    path = tmp_path / "locators.json"
    path.write_text(
        json.dumps({"gigantti": {"searchInput": "#speedy-header-search"}, "button": "#submit-btn"}),
        encoding="utf-8",
    )
    return path


@pytest.fixture()
def locator_store(locators_file):
    return LocatorStore(locators_file, sleep=lambda _: None)


@pytest.fixture()
def artifact_manager(tmp_path):
    return ArtifactManager(tmp_path / "artifacts")


@pytest.fixture()
def sleep_recorder():
    return SleepRecorder()
