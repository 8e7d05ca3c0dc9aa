"""URL helpers for ChurchTools base URLs."""

import re


PROTOCOL_PATTERN = re.compile(r"^(\w+:|)//")
PLAIN_HTTP_PATTERN = re.compile(r"^http:")


def remove_protocol(url: str) -> str:
    """Strip a leading `scheme://` (or protocol-relative `//`) from a URL.

    Args:
        url: URL that may carry a protocol.

    Returns:
        URL without protocol.
    """
    return PROTOCOL_PATTERN.sub("", url)


def to_correct_churchtools_url(url: str) -> str:
    """Normalize a user-entered installation URL.

    Plain `http:` URLs are kept as given. Everything else is forced to
    `https://` and loses its trailing slash.

    Args:
        url: URL as entered by a user (e.g. 'review.church.tools').

    Returns:
        Normalized URL (e.g. 'https://review.church.tools').
    """
    if PLAIN_HTTP_PATTERN.match(url):
        return url
    return "https://" + trim_trailing_slash(remove_protocol(url))


def trim_trailing_slash(url: str) -> str:
    """Remove a single trailing slash from a base URL."""
    return url[:-1] if url.endswith("/") else url
