"""Turn model output and model failures into what gets stored on a generation item."""

import json
import re

from uibattles.services.openrouter import APICallError, RetryError

GENERIC_FAILURE_MESSAGE = "Generation failed"

_LEADING_FENCE = re.compile(r"^```html\s*")
_TRAILING_FENCE = re.compile(r"```\s*$")


def clean_html(text: str) -> str:
    """Strip a leading ```html fence and a trailing ``` fence, then trim."""
    return _TRAILING_FENCE.sub("", _LEADING_FENCE.sub("", text.strip())).strip()


def message_from_body(body: str | None) -> str | None:
    """Return error.message from a JSON response body, or None if it has none."""
    if not body:
        return None
    try:
        parsed: object = json.loads(body)
    except ValueError:
        return None
    if not isinstance(parsed, dict):
        return None
    error = parsed.get("error")
    if not isinstance(error, dict):
        return None
    message = error.get("message")
    return str(message) if message else None


def extract_error_message(exc: Exception) -> str:
    """Pick the most specific human-readable message for a failed model call.

    Retries exhausted: last attempt's body, then the first attempt whose body has a
    message, then the composite message. Single API failure: its body, then its
    message. Anything else: its message. Empty messages fall back to a generic one.
    """
    message: str | None = None
    if isinstance(exc, RetryError):
        last = exc.last_error
        message = message_from_body(last.response_body if last is not None else None)
        if message is None:
            for attempt in exc.errors:
                message = message_from_body(attempt.response_body)
                if message is not None:
                    break
    elif isinstance(exc, APICallError):
        message = message_from_body(exc.response_body)
    return message or str(exc) or GENERIC_FAILURE_MESSAGE
