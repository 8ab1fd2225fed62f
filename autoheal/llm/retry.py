"""Retry, backoff and API key rotation around AI healing queries."""

from __future__ import annotations

import time
from enum import Enum
from typing import Callable

import pytest

from autoheal.logging.config import get_logger

logger = get_logger(__name__)

RATE_LIMIT_SKIP_REASON = "Test skipped due to AI Rate Limit"
CLIENT_ERROR_SKIP_REASON = "Test skipped due to Client Error (4xx) from AI provider."

SERVER_ERROR_MARKERS = (
    "503",
    "500",
    "service unavailable",
    "overloaded",
    "internal server error",
    "bad gateway",
    "timed out",
)
RATE_LIMIT_MARKERS = ("429", "rate limit", "resource exhausted", "insufficient quota")


class ErrorCategory(str, Enum):
    SERVER = "server"
    RATE_LIMIT = "rate_limit"
    AUTH = "auth"
    CLIENT_ERROR = "client_error"
    UNKNOWN = "unknown"


def classify_error(exc: BaseException) -> ErrorCategory:
    status = getattr(exc, "status", None)
    if not isinstance(status, int):
        status = None
    message = str(exc).lower()

    if (status is not None and status >= 500) or any(marker in message for marker in SERVER_ERROR_MARKERS):
        return ErrorCategory.SERVER
    if status == 429 or any(marker in message for marker in RATE_LIMIT_MARKERS):
        return ErrorCategory.RATE_LIMIT
    if status == 401 or "401" in message:
        return ErrorCategory.AUTH
    if status is not None and 400 <= status < 500:
        return ErrorCategory.CLIENT_ERROR
    return ErrorCategory.UNKNOWN


class RetryPolicy:
    """Drives an AI client through server-error backoff and key rotation.

    Rate limits and other 4xx responses skip the running test through
    ``skip`` (``pytest.skip`` by default). That call raises a
    ``BaseException`` subclass on purpose, so it travels past the
    ``except Exception`` handlers that turn AI failures into
    "healing failed".
    """

    def __init__(
        self,
        client,
        api_keys: list[str],
        start_key_index: int = 0,
        skip: Callable[[str], None] = pytest.skip,
        annotate: Callable[[str, str], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.client = client
        self.api_keys = list(api_keys)
        self.key_index = start_key_index
        self._skip = skip
        self._annotate = annotate
        self._sleep = sleep

    @property
    def key_count(self) -> int:
        return len(self.api_keys)

    def execute_with_retry(self, prompt: str, timeout: float, max_retries_per_key: int = 3) -> str | None:
        if not self.api_keys:
            logger.warning("ai_request_skipped", reason="no api keys configured")
            return None

        logger.info("ai_request_started", key_count=self.key_count)
        for key_iteration in range(self.key_count):
            retry_count = 0
            while retry_count <= max_retries_per_key:
                logger.debug(
                    "ai_request_attempt",
                    key_iteration=key_iteration,
                    key_index=self.key_index,
                    retry=retry_count,
                    max_retries=max_retries_per_key,
                )
                try:
                    result = self.client.query(prompt, timeout)
                except Exception as exc:
                    category = classify_error(exc)
                    logger.error(
                        "ai_request_failed",
                        status=getattr(exc, "status", None),
                        category=category.value,
                        error=str(exc),
                    )
                    if category is ErrorCategory.SERVER:
                        if retry_count >= max_retries_per_key:
                            logger.error("ai_server_error_giving_up", retries=max_retries_per_key)
                            raise
                        retry_count += 1
                        delay = 2**retry_count
                        logger.warning("ai_server_error_backoff", delay_seconds=delay, retry=retry_count)
                        self._sleep(delay)
                        continue
                    if category is ErrorCategory.RATE_LIMIT:
                        self._skip_run(RATE_LIMIT_SKIP_REASON)
                        return None
                    if category is ErrorCategory.AUTH:
                        if self._rotate_key():
                            break
                        logger.error("ai_api_keys_exhausted", key_count=self.key_count)
                        raise
                    if category is ErrorCategory.CLIENT_ERROR:
                        self._skip_run(CLIENT_ERROR_SKIP_REASON)
                        return None
                    raise
                else:
                    logger.info("ai_request_succeeded", key_index=self.key_index)
                    return result
        return None

    def _skip_run(self, reason: str) -> None:
        logger.warning("run_skipped", reason=reason)
        if self._annotate is not None:
            self._annotate("warning", reason)
        self._skip(reason)

    def _rotate_key(self) -> bool:
        if self.key_index >= len(self.api_keys) - 1:
            return False
        self.key_index += 1
        self.client.reinitialize(self.api_keys[self.key_index])
        logger.info("ai_api_key_rotated", key_number=self.key_index + 1)
        return True
