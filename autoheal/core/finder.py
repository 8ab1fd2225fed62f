from __future__ import annotations

import json

from selenium.webdriver.common.by import By

ATTRIBUTE_ENGINES = {
    "placeholder=": "placeholder",
    "alt=": "alt",
    "title=": "title",
    "testid=": "data-testid",
    "data-testid=": "data-testid",
}


def to_locator(selector: str) -> tuple[str, str]:
    """Translates a CSS, XPath or engine-prefixed selector into a Selenium locator."""

    stripped = selector.strip()
    lowered = stripped.lower()
    if lowered.startswith("xpath="):
        return By.XPATH, stripped[len("xpath="):]
    if lowered.startswith("css="):
        return By.CSS_SELECTOR, stripped[len("css="):]
    if stripped.startswith(("/", "./", "(")):
        return By.XPATH, stripped
    if lowered.startswith("text="):
        text = _engine_value(stripped, "text=")
        return By.XPATH, f"//*[normalize-space(text())={_xpath_literal(text)}]"
    if lowered.startswith("label="):
        label = _xpath_literal(_engine_value(stripped, "label="))
        return By.XPATH, f"//*[@aria-label={label} or @id=//label[normalize-space(.)={label}]/@for]"
    if lowered.startswith("role="):
        role = _engine_value(stripped, "role=").split("[", 1)[0].strip()
        return By.CSS_SELECTOR, f"[role={json.dumps(role)}]"
    for prefix, attribute in ATTRIBUTE_ENGINES.items():
        if lowered.startswith(prefix):
            return By.CSS_SELECTOR, f"[{attribute}={json.dumps(_engine_value(stripped, prefix))}]"
    return By.CSS_SELECTOR, stripped


def _engine_value(selector: str, prefix: str) -> str:
    value = selector[len(prefix):].strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {'"', "'"}:
        value = value[1:-1]
    return value


def _xpath_literal(value: str) -> str:
    if "'" not in value:
        return f"'{value}'"
    if '"' not in value:
        return f'"{value}"'
    parts = value.split("'")
    return "concat(" + ", \"'\", ".join(f"'{part}'" for part in parts) + ")"
