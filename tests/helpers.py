from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

import pytest
from selenium.common.exceptions import TimeoutException, WebDriverException

from autoheal.config.loader import ConfigLoader
from autoheal.config.schema import HealingSettings
from autoheal.core.browser import BrowserSession, SeleniumPage
from autoheal.core.healer import AutoHealer
from autoheal.core.locator_store import LocatorStore
from autoheal.logging.artifacts import ArtifactManager
from autoheal.logging.audit import HealingAuditLogger
from autoheal.logging.reporter import HealingReporter

ACTIONS = ("click", "fill", "hover", "type", "select_option", "check", "uncheck")


class FakePage:
    """Records driver calls; only selectors in ``working_selectors`` succeed."""

    def __init__(self, working_selectors=(), dom: str = '<button id="clean-selector">Buy</button>') -> None:
        self.working_selectors = set(working_selectors)
        self.dom = dom
        self.calls: list[tuple[str, str, tuple, dict]] = []
        self.visibility_checks: list[str] = []
        self.evaluations = 0

    def _act(self, action: str, selector: str, *args, **options):
        self.calls.append((action, selector, args, options))
        if selector not in self.working_selectors:
            raise TimeoutException(f"Element not found: {selector}")
        return selector

    def click(self, selector, **options):
        return self._act("click", selector, **options)

    def fill(self, selector, value, **options):
        return self._act("fill", selector, value, **options)

    def hover(self, selector, **options):
        return self._act("hover", selector, **options)

    def type(self, selector, text, **options):
        return self._act("type", selector, text, **options)

    def select_option(self, selector, value, **options):
        return self._act("select_option", selector, value, **options)

    def check(self, selector, **options):
        return self._act("check", selector, **options)

    def uncheck(self, selector, **options):
        return self._act("uncheck", selector, **options)

    def wait_for_selector(self, selector, **options):
        if options.get("state") == "visible":
            self.visibility_checks.append(selector)
            if selector not in self.working_selectors:
                raise TimeoutException(f"Element not visible: {selector}")
            return selector
        return self._act("wait_for_selector", selector, **options)

    def evaluate(self, script, *args):
        self.evaluations += 1
        return self.dom

    def selectors_for(self, action: str) -> list[str]:
        return [selector for name, selector, _, _ in self.calls if name == action]


class FakeAIClient:
    """Replays canned responses; exceptions in the list are raised instead."""

    provider_name = "gemini"

    def __init__(self, responses=()) -> None:
        self.responses = list(responses)
        self.prompts: list[str] = []
        self.timeouts: list[float] = []
        self.reinitialized_with: list[str] = []

    def query(self, prompt: str, timeout: float) -> str:
        self.prompts.append(prompt)
        self.timeouts.append(timeout)
        if not self.responses:
            raise AssertionError("Unexpected AI query")
        response = self.responses.pop(0)
        if isinstance(response, BaseException):
            raise response
        return response

    def reinitialize(self, api_key: str) -> None:
        self.reinitialized_with.append(api_key)


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@dataclass(slots=True)
class FrameworkRuntime:
    driver: object
    page: SeleniumPage
    settings: HealingSettings
    artifact_manager: ArtifactManager
    locator_store: LocatorStore
    healer: AutoHealer


def require_llm_credentials() -> HealingSettings:
    settings = ConfigLoader.from_env()
    if not settings.api_keys:
        pytest.skip(f"{settings.provider.upper()}_API_KEY is required for self-healing tests")
    return settings


@contextmanager
def managed_runtime(settings: HealingSettings, tmp_path) -> Iterator[FrameworkRuntime]:
    browser_session = BrowserSession(settings.browser)
    try:
        driver = browser_session.start()
    except WebDriverException as exc:
        pytest.skip(f"WebDriver could not start for {settings.browser.name}: {exc}")
    page = SeleniumPage(driver, default_timeout=settings.timeouts.default_seconds)
    artifact_manager = ArtifactManager(tmp_path / "artifacts")
    locator_store = LocatorStore(tmp_path / "locators.json")
    healer = AutoHealer(
        page,
        settings,
        locator_store=locator_store,
        reporter=HealingReporter(HealingAuditLogger(artifact_manager.root)),
        artifact_manager=artifact_manager,
    )
    try:
        yield FrameworkRuntime(
            driver=driver,
            page=page,
            settings=settings,
            artifact_manager=artifact_manager,
            locator_store=locator_store,
            healer=healer,
        )
    finally:
        driver.quit()


def healing_log_contains(original_selector: str, audit_logger: HealingAuditLogger) -> bool:
    return any(
        event["original_selector"] == original_selector and event["success"]
        for event in audit_logger.read_events()
    )
