from __future__ import annotations

from autoheal.logging.config import get_logger

logger = get_logger(__name__)

NOISE_TAGS = ("script", "style", "svg", "noscript", "iframe", "video", "audio")
ALLOWED_ATTRIBUTES = (
    "id",
    "name",
    "class",
    "type",
    "placeholder",
    "aria-label",
    "role",
    "href",
    "title",
    "alt",
)
TEST_ATTRIBUTE_PREFIX = "data-test"
REDACTED_VALUE = "[REDACTED]"
EMAIL_TOKEN = "[EMAIL]"
PHONE_TOKEN = "[PHONE]"
MAX_TEXT_LENGTH = 200

# Runs inside the page. Works on a clone of <body> so the live DOM is never touched.
SANITIZE_DOM_SCRIPT = r"""
const options = arguments[0] || {};
const emailPattern = /[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}/g;
const phonePattern = /(\+\d{1,3}[- ]?)?\(?\d{3}\)?[- ]?\d{3}[- ]?\d{4}/g;
const allowed = new Set(options.allowedAttributes || []);
const testPrefix = options.testAttributePrefix || "data-test";
const maxText = options.maxTextLength || 200;

const scrub = (text) =>
  text.replace(emailPattern, options.emailToken).replace(phonePattern, options.phoneToken);

if (!document.body) return "";
const clone = document.body.cloneNode(true);

for (const tag of options.noiseTags || []) {
  clone.querySelectorAll(tag).forEach((node) => node.remove());
}

const walker = document.createTreeWalker(clone, NodeFilter.SHOW_ELEMENT | NodeFilter.SHOW_TEXT);
while (walker.nextNode()) {
  const node = walker.currentNode;
  if (node.nodeType === Node.ELEMENT_NODE) {
    const tag = node.tagName;
    for (const attr of Array.from(node.attributes)) {
      if (attr.name === "value" && (tag === "INPUT" || tag === "TEXTAREA")) {
        node.setAttribute(attr.name, options.redactedValue);
      } else if (!allowed.has(attr.name) && !attr.name.startsWith(testPrefix)) {
        node.removeAttribute(attr.name);
      }
    }
  } else if (node.nodeType === Node.TEXT_NODE && node.nodeValue) {
    let text = scrub(node.nodeValue);
    if (text.length > maxText) {
      text = text.substring(0, maxText) + "...";
    }
    node.nodeValue = text;
  }
}

return clone.innerHTML;
"""


def sanitizer_options() -> dict:
    return {
        "noiseTags": list(NOISE_TAGS),
        "allowedAttributes": list(ALLOWED_ATTRIBUTES),
        "testAttributePrefix": TEST_ATTRIBUTE_PREFIX,
        "redactedValue": REDACTED_VALUE,
        "emailToken": EMAIL_TOKEN,
        "phoneToken": PHONE_TOKEN,
        "maxTextLength": MAX_TEXT_LENGTH,
    }


def capture_sanitized_dom(page) -> str:
    """Returns the scrubbed inner HTML of the page body for use in a prompt."""

    snapshot = page.evaluate(SANITIZE_DOM_SCRIPT, sanitizer_options()) or ""
    logger.debug("dom_captured", length=len(snapshot))
    return snapshot
