from __future__ import annotations

import json
import re

from pydantic import ValidationError

from autoheal.core.metadata import HealingResult, SelectorStrategy
from autoheal.logging.config import get_logger

logger = get_logger(__name__)

FENCED_BLOCK_PATTERN = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
INLINE_CODE_PATTERN = re.compile(r"`([^`]+)`")
PLAIN_SELECTOR_CONFIDENCE = 0.8
PLAIN_SELECTOR_REASONING = "AI returned plain selector (no structured JSON)."


def parse_healing_response(raw: str | None, confidence_threshold: float = 0.7) -> HealingResult | None:
    """Turns raw model output into a HealingResult, or None for FAIL / low confidence."""

    if not raw:
        return None

    cleaned = clean_markdown(raw)
    if not cleaned:
        logger.info("ai_returned_empty")
        return None
    if is_fail_response(cleaned):
        logger.info("ai_returned_fail")
        return None

    structured = _parse_structured(cleaned)
    if structured is not None:
        if structured.confidence < confidence_threshold:
            logger.warning(
                "confidence_below_threshold",
                confidence=structured.confidence,
                threshold=confidence_threshold,
            )
            return None
        logger.info(
            "structured_response_parsed",
            selector=structured.selector,
            confidence=structured.confidence,
            strategy=structured.strategy,
        )
        return structured

    logger.info("plain_selector_fallback", selector=cleaned)
    return HealingResult(
        selector=cleaned,
        confidence=PLAIN_SELECTOR_CONFIDENCE,
        reasoning=PLAIN_SELECTOR_REASONING,
        strategy=infer_strategy(cleaned),
    )


def clean_markdown(raw: str) -> str:
    result = raw.strip()

    block = FENCED_BLOCK_PATTERN.search(result)
    inline_spans = INLINE_CODE_PATTERN.findall(result)
    if block and block.group(1).strip():
        result = block.group(1).strip()
    elif inline_spans:
        result = inline_spans[-1].strip()
    else:
        result = result.replace("```", "").strip()

    if len(result) >= 2 and result[0] == result[-1] and result[0] in {'"', "'"}:
        result = result[1:-1]
    return result.strip()


def is_fail_response(cleaned: str) -> bool:
    return cleaned == "FAIL" or ("FAIL" in cleaned and len(cleaned) < 20)


def infer_strategy(selector: str) -> SelectorStrategy:
    if selector.startswith("#"):
        return "id"
    if selector.startswith(("//", "xpath=")):
        return "xpath"
    if selector.startswith("text="):
        return "text"
    if selector.startswith("role="):
        return "role"
    if "data-testid" in selector:
        return "data-testid"
    return "css"


def _parse_structured(cleaned: str) -> HealingResult | None:
    try:
        payload = json.loads(cleaned)
    except ValueError:
        return None
    try:
        return HealingResult.model_validate(payload)
    except ValidationError as exc:
        logger.debug("structured_response_invalid", errors=exc.errors(include_url=False))
        return None
