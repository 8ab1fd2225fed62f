from __future__ import annotations

import time
from dataclasses import dataclass, field
from time import monotonic
from typing import Any, Callable, TypeVar

import pytest

from autoheal.config.schema import HealingSettings
from autoheal.core.exceptions import SelectorValidationError
from autoheal.core.locator_store import LocatorStore
from autoheal.core.metadata import HealingEvent, HealingResult
from autoheal.core.validator import validate_selector
from autoheal.llm.client import HealingAIClient, create_ai_client
from autoheal.llm.parser import parse_healing_response
from autoheal.llm.prompts import build_healing_prompt
from autoheal.llm.retry import RetryPolicy
from autoheal.logging.artifacts import ArtifactManager
from autoheal.logging.config import get_logger
from autoheal.logging.reporter import HealingReporter
from autoheal.utils.dom_extract import capture_sanitized_dom

T = TypeVar("T")


class AutoHealer:
    """Wraps page interactions and repairs broken selectors with an LLM.

    Each wrapped action resolves a locator key (or raw selector), tries the
    action and, when it fails, asks the AI for a replacement selector. A
    validated replacement is retried once and, for locator keys, written
    back to the locator store. When healing does not produce a usable
    selector the original driver error is raised unchanged.
    """

    def __init__(
        self,
        page,
        settings: HealingSettings,
        *,
        client: HealingAIClient | None = None,
        locator_store: LocatorStore | None = None,
        reporter: HealingReporter | None = None,
        artifact_manager: ArtifactManager | None = None,
        skip: Callable[[str], None] = pytest.skip,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.page = page
        self.settings = settings
        self.client = client or create_ai_client(settings)
        self.locator_store = locator_store
        self.reporter = reporter or HealingReporter()
        self.artifact_manager = artifact_manager
        self.retry_policy = RetryPolicy(
            self.client,
            settings.api_keys,
            skip=skip,
            annotate=self.reporter.annotate,
            sleep=sleep,
        )
        self.logger = get_logger(__name__, provider=self.provider)

    @property
    def provider(self) -> str:
        return getattr(self.client, "provider_name", self.settings.provider)

    @property
    def events(self) -> tuple[HealingEvent, ...]:
        return self.reporter.events

    def click(self, selector_or_key: str, **options: Any) -> None:
        timeout = self._action_timeout("click", options)
        self.execute_action(
            selector_or_key,
            "click",
            lambda selector: self.page.click(selector, timeout=timeout, **options),
            lambda selector: self.page.click(selector, **options),
        )

    def fill(self, selector_or_key: str, value: str, **options: Any) -> None:
        timeout = self._action_timeout("fill", options)
        self.execute_action(
            selector_or_key,
            "fill",
            lambda selector: self.page.fill(selector, value, timeout=timeout, **options),
            lambda selector: self.page.fill(selector, value, **options),
        )

    def hover(self, selector_or_key: str, **options: Any) -> None:
        timeout = self._action_timeout("hover", options)
        self.execute_action(
            selector_or_key,
            "hover",
            lambda selector: self.page.hover(selector, timeout=timeout, **options),
            lambda selector: self.page.hover(selector, **options),
        )

    def type(self, selector_or_key: str, text: str, **options: Any) -> None:
        timeout = self._action_timeout("type", options)
        self.execute_action(
            selector_or_key,
            "type",
            lambda selector: self.page.type(selector, text, timeout=timeout, **options),
            lambda selector: self.page.type(selector, text, **options),
        )

    def select_option(self, selector_or_key: str, value: str, **options: Any) -> None:
        timeout = self._action_timeout("select_option", options)
        self.execute_action(
            selector_or_key,
            "select_option",
            lambda selector: self.page.select_option(selector, value, timeout=timeout, **options),
            lambda selector: self.page.select_option(selector, value, **options),
        )

    def check(self, selector_or_key: str, **options: Any) -> None:
        timeout = self._action_timeout("check", options)
        self.execute_action(
            selector_or_key,
            "check",
            lambda selector: self.page.check(selector, timeout=timeout, **options),
            lambda selector: self.page.check(selector, **options),
        )

    def uncheck(self, selector_or_key: str, **options: Any) -> None:
        timeout = self._action_timeout("uncheck", options)
        self.execute_action(
            selector_or_key,
            "uncheck",
            lambda selector: self.page.uncheck(selector, timeout=timeout, **options),
            lambda selector: self.page.uncheck(selector, **options),
        )

    def wait_for_selector(self, selector_or_key: str, **options: Any):
        timeout = self._action_timeout("wait_for_selector", options)
        return self.execute_action(
            selector_or_key,
            "wait_for_selector",
            lambda selector: self.page.wait_for_selector(selector, timeout=timeout, **options),
            lambda selector: self.page.wait_for_selector(selector, **options),
        )

    def execute_action(
        self,
        selector_or_key: str,
        action_name: str,
        primary_attempt: Callable[[str], T],
        retry_attempt: Callable[[str], T],
    ) -> T:
        selector, locator_key = self._resolve(selector_or_key)
        log = self.logger.bind(action=action_name, selector=selector, locator_key=locator_key)

        try:
            if action_name != "wait_for_selector":
                self._wait_until_visible(selector)
            log.debug("action_attempted")
            return primary_attempt(selector)
        except Exception as failure:
            log.warning("action_failed", error=_first_line(failure))
            attempt = _HealingAttempt(selector)
            healed = self._heal(attempt, failure)
            if healed is None:
                raise

            log.info("action_retried", healed_selector=healed.selector)
            try:
                outcome = retry_attempt(healed.selector)
            except Exception as retry_error:
                self._record(attempt, healed, success=False, error=_first_line(retry_error))
                raise
            self._record(attempt, healed, success=True)

            if locator_key is not None and self.locator_store is not None:
                self.locator_store.update(locator_key, healed.selector)
            return outcome

    def _resolve(self, selector_or_key: str) -> tuple[str, str | None]:
        if self.locator_store is not None:
            stored = self.locator_store.get(selector_or_key)
            if stored is not None:
                return stored, selector_or_key
        return selector_or_key, None

    def _wait_until_visible(self, selector: str) -> None:
        try:
            self.page.wait_for_selector(
                selector,
                state="visible",
                timeout=self.settings.timeouts.visibility_seconds,
            )
        except Exception as exc:
            self.logger.debug("visibility_wait_failed", selector=selector, error=_first_line(exc))

    def _heal(self, attempt: _HealingAttempt, failure: Exception) -> HealingResult | None:
        """Asks the AI for a replacement selector.

        Returns None when healing failed; that attempt is recorded here.
        Run-skips raised by the retry policy are recorded and re-raised.
        """

        policy = self.settings.healing
        result: HealingResult | None = None
        try:
            snapshot = capture_sanitized_dom(self.page)
            attempt.dom_snapshot_length = len(snapshot)
            if self.artifact_manager is not None:
                self.artifact_manager.write_dom_snapshot(attempt.selector, snapshot)
            prompt = build_healing_prompt(attempt.selector, str(failure), snapshot, policy.max_dom_chars)
            raw = self.retry_policy.execute_with_retry(
                prompt,
                self.settings.timeouts.ai_request_seconds,
                policy.max_retries,
            )
            result = parse_healing_response(raw, policy.confidence_threshold)
            if result is None:
                raise SelectorValidationError("AI returned FAIL or a low-confidence answer")
            if not validate_selector(result.selector):
                raise SelectorValidationError(f"AI returned an unsafe selector: {result.selector}")
        except pytest.skip.Exception as skipped:
            self._record(attempt, None, success=False, error=f"skipped: {skipped.msg}")
            raise
        except SelectorValidationError as exc:
            self.logger.warning("healing_rejected", selector=attempt.selector, reason=str(exc))
            self._record(attempt, result, success=False, error=str(exc))
            return None
        except Exception as exc:
            self.logger.error("healing_failed", selector=attempt.selector, error=str(exc))
            self._record(attempt, None, success=False, error=str(exc))
            return None
        return result

    def _record(
        self,
        attempt: _HealingAttempt,
        result: HealingResult | None,
        *,
        success: bool,
        error: str = "",
    ) -> None:
        self.reporter.record(
            HealingEvent(
                original_selector=attempt.selector,
                result=result,
                success=success,
                provider=self.provider,
                duration_ms=int((monotonic() - attempt.started) * 1000),
                error=error,
                dom_snapshot_length=attempt.dom_snapshot_length,
            )
        )

    def _action_timeout(self, action_name: str, options: dict[str, Any]) -> float:
        timeout = options.pop("timeout", None)
        return timeout if timeout is not None else self.settings.timeouts.for_action(action_name)


@dataclass(slots=True)
class _HealingAttempt:
    selector: str
    started: float = field(default_factory=monotonic)
    dom_snapshot_length: int | None = None


def _first_line(exc: BaseException) -> str:
    text = str(exc).strip()
    return text.splitlines()[0] if text else type(exc).__name__
