from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

SelectorStrategy = Literal["id", "css", "xpath", "text", "role", "data-testid"]
AIProvider = Literal["openai", "gemini"]


class HealingResult(BaseModel):
    """Structured selector proposal returned by the AI."""

    model_config = ConfigDict(frozen=True, strict=True)

    selector: str = Field(min_length=1)
    confidence: float = Field(ge=0, le=1)
    reasoning: str
    strategy: SelectorStrategy


@dataclass(slots=True, frozen=True)
class HealingEvent:
    original_selector: str
    result: HealingResult | None
    success: bool
    provider: str
    duration_ms: int
    error: str = ""
    dom_snapshot_length: int | None = None
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict[str, Any]:
        payload = asdict(self)
        payload["result"] = self.result.model_dump() if self.result else None
        return payload
