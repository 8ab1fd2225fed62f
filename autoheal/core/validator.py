from __future__ import annotations

import re

from autoheal.logging.config import get_logger

logger = get_logger(__name__)

BLOCKED_PREFIXES = ("javascript:", "data:")
BLOCKED_FRAGMENTS = ("<script", "</", "<!--", "eval(", "document.", "window.")
ENGINE_PREFIXES = (
    "text=",
    "role=",
    "label=",
    "placeholder=",
    "alt=",
    "title=",
    "testid=",
    "data-testid=",
)
SAFE_SELECTOR_PATTERN = re.compile(r"""^[\w\s\-#.:,\[\]()="'^$*|>+~!@/\\]+$""")


def validate_selector(selector: str) -> bool:
    """Gate AI-proposed selectors before they reach the driver or the locator file.

    The denylist is checked before any allow rule, so an engine prefix
    cannot smuggle in script fragments. Anything not explicitly allowed
    is rejected.
    """

    if not selector or not selector.strip():
        logger.warning("selector_rejected", reason="empty")
        return False

    lowered = selector.strip().lower()
    if lowered.startswith(BLOCKED_PREFIXES):
        logger.warning("selector_rejected", reason="blocked_prefix", selector=selector)
        return False
    if any(fragment in lowered for fragment in BLOCKED_FRAGMENTS):
        logger.warning("selector_rejected", reason="blocked_fragment", selector=selector)
        return False

    if lowered.startswith(ENGINE_PREFIXES):
        return True
    if selector.startswith(("//", "./")):
        return True
    if selector.startswith("["):
        return True
    if SAFE_SELECTOR_PATTERN.fullmatch(selector):
        return True

    logger.warning("selector_rejected", reason="unsafe_characters", selector=selector)
    return False
