from __future__ import annotations

HEALING_PROMPT_TEMPLATE = """You are a test automation AI. A browser test failed to find or interact with an element.

Original selector: "{selector}"
Error: "{error}"

Below is the current HTML of the page (simplified and sanitized).
Find the MOST LIKELY new selector for the element the test intended to interact with.
Use only elements present in the HTML. Do not invent tags, attributes, text, or hierarchy.

Respond with a single JSON object and nothing else:
{{"selector": "<new selector>", "confidence": <number between 0 and 1>, "reasoning": "<one sentence>", "strategy": "<id|css|xpath|text|role|data-testid>"}}

If you cannot find the element, respond with exactly FAIL.

HTML snippet:
{html}
"""


def build_healing_prompt(selector: str, error: str, html: str, max_html_chars: int = 2000) -> str:
    """Formats the single-message healing prompt sent to either provider."""

    first_line = error.strip().splitlines()[0] if error.strip() else ""
    return HEALING_PROMPT_TEMPLATE.format(
        selector=selector,
        error=first_line[:500],
        html=html[:max_html_chars],
    )
