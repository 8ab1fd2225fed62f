from __future__ import annotations

from filelock import Timeout as LockTimeout

__all__ = [
    "AIRequestError",
    "ConfigurationError",
    "HealingError",
    "LocatorPersistenceError",
    "LockTimeout",
    "SelectorValidationError",
]


class HealingError(RuntimeError):
    """Raised when selector healing fails."""


class ConfigurationError(HealingError):
    """Raised when healing settings are incomplete."""


class SelectorValidationError(HealingError):
    """Raised when an LLM returns an unusable selector."""


class LocatorPersistenceError(HealingError):
    """Raised when the locator file cannot be read or written."""


class AIRequestError(RuntimeError):
    """Raised by AI clients; carries the provider's HTTP status when known."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
