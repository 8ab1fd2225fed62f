from __future__ import annotations

import json
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, TypeVar
from urllib import error, request

from autoheal.config.schema import DEFAULT_MODELS, HealingSettings
from autoheal.core.exceptions import AIRequestError, ConfigurationError
from autoheal.logging.config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class HealingAIClient(ABC):
    """Provider-neutral interface for selector healing queries."""

    provider_name = "unknown"
    label = "AI"

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self.api_key = api_key
        self.model = model or DEFAULT_MODELS.get(self.provider_name, "")

    def query(self, prompt: str, timeout: float) -> str:
        """Sends ``prompt`` and returns the trimmed text answer.

        Raises AIRequestError on provider failures and when ``timeout``
        seconds pass without an answer.
        """

        logger.info("ai_request_sent", provider=self.provider_name, model=self.model)
        result = run_with_timeout(lambda: self._complete(prompt, timeout), timeout, self.label).strip()
        logger.info("ai_response_received", provider=self.provider_name, response=result)
        return result

    def reinitialize(self, api_key: str) -> None:
        self.api_key = api_key

    @abstractmethod
    def _complete(self, prompt: str, timeout: float) -> str:
        raise NotImplementedError


class OpenAIHealingClient(HealingAIClient):
    provider_name = "openai"
    label = "OpenAI"
    endpoint = "https://api.openai.com/v1/chat/completions"

    def _complete(self, prompt: str, timeout: float) -> str:
        body = {
            "model": self.model,
            "temperature": 0,
            "messages": [
                {"role": "user", "content": prompt},
            ],
        }
        response = _post_json(
            self.endpoint,
            body,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout,
            label=self.label,
        )
        choices = response.get("choices") or [{}]
        return choices[0].get("message", {}).get("content") or ""


class GeminiHealingClient(HealingAIClient):
    provider_name = "gemini"
    label = "Gemini"
    endpoint_template = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    def _complete(self, prompt: str, timeout: float) -> str:
        body = {
            "contents": [
                {
                    "role": "user",
                    "parts": [
                        {"text": prompt},
                    ],
                }
            ],
            "generationConfig": {
                "temperature": 0,
            },
        }
        response = _post_json(
            self.endpoint_template.format(model=self.model),
            body,
            headers={
                "x-goog-api-key": self.api_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            label=self.label,
        )
        candidates = response.get("candidates", [])
        if not candidates:
            raise AIRequestError("Gemini returned no candidates")
        parts = candidates[0].get("content", {}).get("parts", [])
        text_parts = [part.get("text", "") for part in parts if isinstance(part, dict)]
        return "".join(text_parts)


def create_ai_client(settings: HealingSettings) -> HealingAIClient:
    if not settings.api_keys:
        raise ConfigurationError(f"At least one API key is required when provider={settings.provider}")
    if settings.provider == "openai":
        return OpenAIHealingClient(settings.api_keys[0], settings.model_name)
    if settings.provider == "gemini":
        return GeminiHealingClient(settings.api_keys[0], settings.model_name)
    raise ConfigurationError(f"Unsupported AI provider: {settings.provider}")


def run_with_timeout(call: Callable[[], T], timeout: float, label: str) -> T:
    """Races ``call`` against a timer; the caller stops waiting once ``timeout`` passes.

    A late call is abandoned, not aborted. Its worker thread runs until the
    request returns or a single socket read exceeds ``timeout``; a response
    that keeps trickling in can outlive the race.
    """

    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"{label.lower()}-request")
    future = executor.submit(call)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise AIRequestError(f"{label} API request timed out after {timeout:g}s") from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)


def _post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
    label: str,
) -> dict[str, Any]:
    encoded = json.dumps(payload).encode("utf-8")
    req = request.Request(url, data=encoded, headers=headers, method="POST")
    try:
        with request.urlopen(req, timeout=timeout) as response:
            raw = response.read().decode("utf-8")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="replace")
        raise AIRequestError(f"{label} request failed with status {exc.code}: {detail}", status=exc.code) from exc
    except error.URLError as exc:
        raise AIRequestError(f"{label} request could not be completed: {exc.reason}") from exc
    except TimeoutError as exc:
        raise AIRequestError(f"{label} API request timed out after {timeout:g}s") from exc
    return json.loads(raw)
