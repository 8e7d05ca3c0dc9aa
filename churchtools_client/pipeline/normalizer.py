"""Response envelope unwrapping.

Success bodies come as `{"data": payload}`, `{"data": {"data": payload}}`
or as the bare payload. Paginated bodies carry `meta.pagination.lastPage`
next to `data`.
"""

from collections.abc import Mapping
from typing import Any

import httpx


def decode_body(response: httpx.Response) -> Any:
    """Decode a response body as JSON, falling back to text.

    Args:
        response: Transport response.

    Returns:
        Decoded JSON value, the body text, or None for an empty body.
    """
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _peel(value: Any) -> Any:
    if isinstance(value, Mapping) and "data" in value:
        return value["data"]
    return value


def response_to_data(response: httpx.Response | Any) -> Any:
    """Unwrap the logical payload from a response or decoded body.

    Peels at most two `data` envelopes.

    Args:
        response: Transport response or already-decoded body.

    Returns:
        The payload.
    """
    body = decode_body(response) if isinstance(response, httpx.Response) else response
    if not (isinstance(body, Mapping) and "data" in body):
        return body
    return _peel(body["data"])


def last_page_of(response: httpx.Response | Any) -> int:
    """Read the last page number from a paginated response.

    Args:
        response: Raw paginated response or its decoded body.

    Returns:
        The reported last page, or 1 when the body carries no pagination.
    """
    body = decode_body(response) if isinstance(response, httpx.Response) else response
    if not isinstance(body, Mapping):
        return 1
    meta = body.get("meta")
    pagination = meta.get("pagination") if isinstance(meta, Mapping) else None
    if not isinstance(pagination, Mapping):
        return 1
    last_page = pagination.get("lastPage", 1)
    try:
        return int(last_page)
    except (TypeError, ValueError):
        return 1
