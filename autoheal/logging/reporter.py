from __future__ import annotations

from typing import Any

from autoheal.core.metadata import HealingEvent
from autoheal.logging.artifacts import ArtifactManager
from autoheal.logging.audit import HealingAuditLogger
from autoheal.logging.config import get_logger

logger = get_logger(__name__)


class HealingReporter:
    """Collects healing events and annotations for one test.

    ``attach`` hands them to pytest: the JSON report goes to the artifact
    directory and a short summary lands in the test item's
    ``user_properties`` (picked up by junitxml and most HTML reporters).
    """

    def __init__(self, audit_logger: HealingAuditLogger | None = None) -> None:
        self.audit_logger = audit_logger
        self._events: list[HealingEvent] = []
        self.annotations: list[tuple[str, str]] = []

    def record(self, event: HealingEvent) -> None:
        self._events.append(event)
        if self.audit_logger is not None:
            self.audit_logger.write(event)
        logger.info(
            "healing_event",
            status="healed" if event.success else "failed",
            original_selector=event.original_selector,
            healed_selector=event.result.selector if event.result else None,
            confidence=event.result.confidence if event.result else None,
            duration_ms=event.duration_ms,
        )

    @property
    def events(self) -> tuple[HealingEvent, ...]:
        return tuple(self._events)

    def has_events(self) -> bool:
        return bool(self._events)

    def summary(self) -> dict[str, int]:
        healed = sum(1 for event in self._events if event.success)
        return {
            "total": len(self._events),
            "healed": healed,
            "failed": len(self._events) - healed,
        }

    def annotate(self, annotation_type: str, description: str) -> None:
        self.annotations.append((annotation_type, description))

    def report(self) -> dict[str, Any]:
        return {
            "summary": self.summary(),
            "events": [event.to_dict() for event in self._events],
            "annotations": [{"type": kind, "description": text} for kind, text in self.annotations],
        }

    def attach(self, node, artifact_manager: ArtifactManager | None = None) -> None:
        for annotation in self.annotations:
            node.user_properties.append(annotation)
        if not self.has_events():
            return

        summary = self.summary()
        if artifact_manager is not None:
            path = artifact_manager.write_report(f"healing-report_{node.name}", self.report())
            node.user_properties.append(("healing-report", str(path)))
        node.user_properties.append(
            ("healing", f"Self-healing: {summary['healed']}/{summary['total']} selectors healed")
        )

    def clear(self) -> None:
        self._events.clear()
        self.annotations.clear()
