from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "gemini": "gemini-flash-latest",
}


class TimeoutSettings(BaseModel):
    default_seconds: float = 5.0
    click_seconds: float | None = None
    fill_seconds: float | None = None
    visibility_seconds: float = 2.0
    ai_request_seconds: float = 30.0

    def for_action(self, action_name: str) -> float:
        specific = {"click": self.click_seconds, "fill": self.fill_seconds}.get(action_name)
        return specific if specific is not None else self.default_seconds


class HealingPolicy(BaseModel):
    max_retries: int = Field(default=3, ge=0)
    confidence_threshold: float = Field(default=0.7, ge=0, le=1)
    max_dom_chars: int = Field(default=2000, gt=0)


class BrowserSettings(BaseModel):
    name: str = "chrome"
    headless: bool = True
    page_load_timeout_seconds: int = 30

    @field_validator("name")
    @classmethod
    def validate_browser(cls, value: str) -> str:
        normalized = value.lower()
        if normalized not in {"chrome", "firefox"}:
            raise ValueError(f"Unsupported browser: {value}")
        return normalized


class HealingSettings(BaseModel):
    provider: Literal["openai", "gemini"] = "gemini"
    api_keys: list[str] = Field(default_factory=list)
    model_name: str | None = None
    timeouts: TimeoutSettings = Field(default_factory=TimeoutSettings)
    healing: HealingPolicy = Field(default_factory=HealingPolicy)
    browser: BrowserSettings = Field(default_factory=BrowserSettings)
    locators_path: Path = Path("config/locators.json")
    artifacts_root: Path = Path("artifacts")
    log_level: str = "INFO"

    @field_validator("provider", mode="before")
    @classmethod
    def normalize_provider(cls, value):
        return value.lower() if isinstance(value, str) else value

    @field_validator("api_keys", mode="before")
    @classmethod
    def split_api_keys(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [item.strip() for item in value if item and item.strip()]

    @model_validator(mode="after")
    def apply_default_model(self) -> "HealingSettings":
        if not self.model_name:
            self.model_name = DEFAULT_MODELS[self.provider]
        return self
