from __future__ import annotations

import json

import pytest
from selenium.common.exceptions import TimeoutException

from autoheal.core.exceptions import AIRequestError
from autoheal.core.healer import AutoHealer
from autoheal.logging.audit import HealingAuditLogger
from autoheal.logging.reporter import HealingReporter
from tests.helpers import ACTIONS, FakeAIClient, FakePage


def _healer(page, settings, client, **kwargs):
    kwargs.setdefault("sleep", lambda _: None)
    return AutoHealer(page, settings, client=client, **kwargs)


def _structured(selector="#clean-selector", confidence=0.9):
    return json.dumps({"selector": selector, "confidence": confidence, "reasoning": "r", "strategy": "id"})


def _invoke(healer, action, target):
    if action in {"fill", "type", "select_option"}:
        getattr(healer, action)(target, "value")
    else:
        getattr(healer, action)(target)


def test_first_attempt_success_makes_no_ai_call(settings):
    page = FakePage(working_selectors={"#login"})
    client = FakeAIClient()
    healer = _healer(page, settings, client)

    healer.click("#login")

    assert page.selectors_for("click") == ["#login"]
    assert client.prompts == []
    assert healer.events == ()
    assert page.evaluations == 0


def test_fenced_selector_heals_and_retries_without_extra_options(settings):
    page = FakePage(working_selectors={"#clean-selector"})
    client = FakeAIClient(["```\n#clean-selector\n```"])
    healer = _healer(page, settings, client)

    healer.click("#old-selector")

    assert page.calls[-1] == ("click", "#clean-selector", (), {})
    assert page.calls[0][3] == {"timeout": settings.timeouts.default_seconds}
    assert len(healer.events) == 1
    event = healer.events[0]
    assert event.success is True
    assert event.original_selector == "#old-selector"
    assert event.result.selector == "#clean-selector"
    assert event.provider == "gemini"
    assert event.dom_snapshot_length == len(page.dom)


def test_ai_fail_reraises_original_error_without_retry(settings):
    page = FakePage()
    client = FakeAIClient(["FAIL"])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException, match="Element not found: #missing"):
        healer.click("#missing")

    assert page.selectors_for("click") == ["#missing"]
    assert len(healer.events) == 1
    assert healer.events[0].success is False
    assert healer.events[0].result is None


def test_low_confidence_is_treated_like_fail(settings):
    page = FakePage(working_selectors={"#clean-selector"})
    client = FakeAIClient([_structured(confidence=0.2)])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException, match="Element not found"):
        healer.click("#missing")

    assert page.selectors_for("click") == ["#missing"]
    assert healer.events[0].success is False
    assert healer.events[0].error == "AI returned FAIL or a low-confidence answer"


def test_unsafe_selector_is_never_executed(settings):
    page = FakePage(working_selectors={"javascript:alert(1)"})
    client = FakeAIClient(["javascript:alert(1)"])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException):
        healer.click("#missing")

    assert "javascript:alert(1)" not in page.selectors_for("click")
    assert "unsafe selector" in healer.events[0].error


def test_ai_exception_is_absorbed_and_original_error_raised(settings):
    page = FakePage()
    client = FakeAIClient([ValueError("garbled provider payload")])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException, match="Element not found: #missing"):
        healer.fill("#missing", "laptop")

    assert healer.events[0].error == "garbled provider payload"


def test_rate_limit_skip_propagates_past_healing(settings):
    page = FakePage()
    client = FakeAIClient([AIRequestError("Too Many Requests", status=429)])
    reporter = HealingReporter()
    healer = _healer(page, settings, client, reporter=reporter)

    with pytest.raises(pytest.skip.Exception):
        healer.click("#missing")

    assert len(healer.events) == 1
    assert healer.events[0].error.startswith("skipped:")
    assert reporter.annotations == [("warning", "Test skipped due to AI Rate Limit")]


def test_key_based_lookup_is_healed_and_persisted(settings, locator_store, locators_file):
    page = FakePage(working_selectors={"#search-v2"})
    client = FakeAIClient([_structured(selector="#search-v2")])
    healer = _healer(page, settings, client, locator_store=locator_store)

    healer.fill("gigantti.searchInput", "laptop")

    assert page.selectors_for("fill") == ["#speedy-header-search", "#search-v2"]
    assert json.loads(locators_file.read_text(encoding="utf-8"))["gigantti"]["searchInput"] == "#search-v2"
    assert '"#speedy-header-search"' in client.prompts[0]


def test_raw_selector_is_not_persisted(settings, locator_store, locators_file):
    before = locators_file.read_text(encoding="utf-8")
    page = FakePage(working_selectors={"#clean-selector"})
    healer = _healer(page, settings, FakeAIClient(["#clean-selector"]), locator_store=locator_store)

    healer.click("#not-a-key")

    assert locators_file.read_text(encoding="utf-8") == before


def test_failed_retry_propagates_and_is_recorded(settings):
    page = FakePage()
    client = FakeAIClient(["#still-wrong"])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException, match="#still-wrong"):
        healer.click("#missing")

    assert page.selectors_for("click") == ["#missing", "#still-wrong"]
    assert len(healer.events) == 1
    assert healer.events[0].success is False
    assert healer.events[0].result.selector == "#still-wrong"


def test_visibility_wait_failure_is_not_fatal(settings):
    page = FakePage(working_selectors={"#login"})
    page.wait_for_selector = _raise_on_visibility(page.wait_for_selector)
    healer = _healer(page, settings, FakeAIClient())

    healer.click("#login")

    assert page.selectors_for("click") == ["#login"]


def test_server_errors_back_off_then_original_error_is_raised(settings, sleep_recorder):
    page = FakePage()
    client = FakeAIClient([AIRequestError("503", status=503) for _ in range(4)])
    healer = _healer(page, settings, client, sleep=sleep_recorder)

    with pytest.raises(TimeoutException):
        healer.click("#missing")

    assert sleep_recorder.delays == [2, 4, 8]


def test_prompt_contains_sanitized_dom_and_error(settings):
    page = FakePage(dom="<form><input name='q' value='[REDACTED]'></form>")
    client = FakeAIClient(["FAIL"])
    healer = _healer(page, settings, client)

    with pytest.raises(TimeoutException):
        healer.click("#missing")

    assert "Element not found: #missing" in client.prompts[0]
    assert "<input name='q' value='[REDACTED]'>" in client.prompts[0]
    assert client.timeouts == [settings.timeouts.ai_request_seconds]


def test_events_are_written_to_audit_and_dom_artifacts(settings, artifact_manager):
    audit_logger = HealingAuditLogger(artifact_manager.root)
    page = FakePage(working_selectors={"#clean-selector"})
    healer = _healer(
        page,
        settings,
        FakeAIClient(["#clean-selector"]),
        reporter=HealingReporter(audit_logger),
        artifact_manager=artifact_manager,
    )

    healer.hover("#old")

    events = audit_logger.read_events()
    assert [event["success"] for event in events] == [True]
    assert events[0]["result"]["selector"] == "#clean-selector"
    assert len(list(artifact_manager.dom_root.glob("*.html"))) == 1


@pytest.mark.parametrize("action", ACTIONS + ("wait_for_selector",))
def test_every_action_uses_the_healing_pipeline(settings, action):
    page = FakePage(working_selectors={"#clean-selector"})
    healer = _healer(page, settings, FakeAIClient(["#clean-selector"]))

    _invoke(healer, action, "#old")

    assert page.selectors_for(action) == ["#old", "#clean-selector"]
    assert [event.success for event in healer.events] == [True]


def test_explicit_timeout_overrides_default(settings):
    page = FakePage(working_selectors={"#login"})
    healer = _healer(page, settings, FakeAIClient())

    healer.check("#login", timeout=12)

    assert page.calls[0] == ("check", "#login", (), {"timeout": 12})


def _raise_on_visibility(original):
    def wait_for_selector(selector, **options):
        if options.get("state") == "visible":
            raise RuntimeError("visibility probe crashed")
        return original(selector, **options)

    return wait_for_selector


@pytest.mark.parametrize("raw", ["   ", '""', "```\n```"])
def test_blank_ai_reply_reraises_original_error(settings, raw):
    page = FakePage(working_selectors={"#clean-selector"})
    healer = _healer(page, settings, FakeAIClient([raw]))

    with pytest.raises(TimeoutException, match="Element not found: #missing"):
        healer.click("#missing")

    assert page.selectors_for("click") == ["#missing"]
    assert [event.success for event in healer.events] == [False]
    assert healer.events[0].result is None


def test_zero_timeout_is_passed_through(settings):
    page = FakePage(working_selectors={"#login"})
    healer = _healer(page, settings, FakeAIClient())

    healer.click("#login", timeout=0)

    assert page.calls[0] == ("click", "#login", (), {"timeout": 0})


def test_unusable_lock_file_does_not_fail_a_healed_action(settings, locator_store, locators_file):
    locator_store.lock_path.mkdir()
    before = locators_file.read_text(encoding="utf-8")
    page = FakePage(working_selectors={"#search-v2"})
    healer = _healer(page, settings, FakeAIClient([_structured(selector="#search-v2")]), locator_store=locator_store)

    healer.fill("gigantti.searchInput", "laptop")

    assert page.selectors_for("fill") == ["#speedy-header-search", "#search-v2"]
    assert [event.success for event in healer.events] == [True]
    assert locator_store.get("gigantti.searchInput") == "#search-v2"
    assert locators_file.read_text(encoding="utf-8") == before
