from __future__ import annotations

import json
import os
from pathlib import Path

from autoheal.config.schema import HealingSettings


class ConfigLoader:
    """Loads and validates healing settings from JSON or the environment."""

    @staticmethod
    def load(path: str | Path) -> HealingSettings:
        config_path = Path(path)
        with config_path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
        return HealingSettings.model_validate(payload)

    @staticmethod
    def from_env(environ: dict[str, str] | None = None) -> HealingSettings:
        env = os.environ if environ is None else environ
        provider = env.get("AI_PROVIDER", "gemini").lower()
        prefix = provider.upper()
        payload: dict = {
            "provider": provider,
            "api_keys": env.get(f"{prefix}_API_KEYS") or env.get(f"{prefix}_API_KEY", ""),
            "model_name": env.get(f"{prefix}_MODEL") or None,
            "timeouts": {},
            "healing": {},
            "browser": {},
        }
        if env.get("AI_REQUEST_TIMEOUT"):
            payload["timeouts"]["ai_request_seconds"] = float(env["AI_REQUEST_TIMEOUT"])
        if env.get("HEALING_CONFIDENCE_THRESHOLD"):
            payload["healing"]["confidence_threshold"] = float(env["HEALING_CONFIDENCE_THRESHOLD"])
        if env.get("HEALING_MAX_RETRIES"):
            payload["healing"]["max_retries"] = int(env["HEALING_MAX_RETRIES"])
        if env.get("HEADLESS"):
            payload["browser"]["headless"] = env["HEADLESS"].lower() != "false"
        if env.get("BROWSER"):
            payload["browser"]["name"] = env["BROWSER"]
        if env.get("LOCATORS_PATH"):
            payload["locators_path"] = env["LOCATORS_PATH"]
        if env.get("ARTIFACTS_DIR"):
            payload["artifacts_root"] = env["ARTIFACTS_DIR"]
        if env.get("LOG_LEVEL"):
            payload["log_level"] = env["LOG_LEVEL"]
        return HealingSettings.model_validate(payload)
