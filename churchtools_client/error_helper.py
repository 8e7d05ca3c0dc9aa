"""Human-readable messages for errors raised by the client.

Error bodies from the server look like:

    {"message": ..., "translatedMessage": ..., "messageKey": ..., "args": ...,
     "errors": [<nested error>, ...]}

possibly wrapped in one or two `data` envelopes or carried by a response.
"""

from collections.abc import Callable, Mapping
from typing import Any, Final

import httpx

from churchtools_client.errors import ApiResponseError, InstallationError
from churchtools_client.pipeline.normalizer import decode_body


TranslationFunction = Callable[[str, Any], str]

# Placeholder the old API sends before its translations are loaded
UNINITIALIZED_TRANSLATION: Final[str] = "Translation not yet initialized"


def _error_body(error: Any) -> Any:
    """Get the server error body from an error, response, or body."""
    if isinstance(error, InstallationError):
        return {
            "message": error.message,
            "messageKey": error.message_key,
            "args": error.message_args,
        }
    if isinstance(error, ApiResponseError):
        return error.data
    if isinstance(error, httpx.Response):
        return decode_body(error)
    if isinstance(error, Mapping) and isinstance(error.get("response"), Mapping):
        return error["response"]
    return error


def _from_body(
    body: Any,
    translate: TranslationFunction | None,
    key_only: bool,
) -> str | None:
    if not isinstance(body, Mapping):
        return None

    if body.get("data"):
        return _from_body(body["data"], translate, key_only)

    if key_only:
        return body.get("messageKey") or None

    additional = ""
    nested = _nested_messages(body.get("errors"), translate)
    if nested:
        additional = " " + " ".join(nested)

    translated = body.get("translatedMessage")
    if translated:
        if translated == UNINITIALIZED_TRANSLATION and additional:
            return additional.strip()
        return translated + additional

    if body.get("messageKey") and translate:
        return translate(body["messageKey"], body.get("args")) + additional

    if body.get("message"):
        return body["message"] + additional
    return None


def _nested_messages(
    errors: Any, translate: TranslationFunction | None
) -> list[str]:
    if not errors or not isinstance(errors, list):
        return []
    messages = [get_translated_error_message(error, translate) for error in errors]
    return [message for message in messages if isinstance(message, str) and message]


def get_translated_error_message(
    error: Any, translate: TranslationFunction | None = None
) -> Any:
    """Get the best available human-readable message for an error.

    Prefers the server's translated message, then the caller's translation
    of the message key, then the plain message. Nested validation errors
    are appended.

    Args:
        error: Client error, httpx.Response, error body, or string.
        translate: Optional `(message_key, args) -> str` translation.

    Returns:
        The message, or the error itself if no message can be found.
    """
    if isinstance(error, str):
        return error
    message = _from_body(_error_body(error), translate, key_only=False)
    if message:
        return message
    if isinstance(error, Exception) and str(error):
        return str(error)
    return error


def get_error_message_key(error: Any) -> str | None:
    """Get the stable message key of an error, if it carries one.

    Args:
        error: Client error, httpx.Response, or error body.

    Returns:
        The message key, or None.
    """
    return _from_body(_error_body(error), None, key_only=True)
