"""HTTP and protocol constants for the ChurchTools client.

Centralizes all wire-level names and defaults to avoid duplication across modules.
"""

from typing import Final


__version__: Final[str] = "1.0.0"

# HTTP Status Codes
HTTP_STATUS_OK_MIN = 200
HTTP_STATUS_NO_CONTENT = 204
HTTP_STATUS_OK_MAX = 300
HTTP_STATUS_BAD_REQUEST = 400
HTTP_STATUS_UNAUTHORIZED = 401
HTTP_STATUS_TOO_MANY_REQUESTS = 429

# Timeouts (milliseconds)
DEFAULT_TIMEOUT_MS = 15_000
RATE_LIMIT_TIMEOUT_MS = 30_000

# Oldest installation the client is known to work with
MINIMAL_CHURCHTOOLS_BUILD_VERSION = 31413
MINIMAL_CHURCHTOOLS_VERSION = "3.54.2"

# Body message the server uses to report expiry with a 200 status
SESSION_EXPIRED_MESSAGE = "Session expired!"

# Reserved query parameter marking the internal re-login probe
RETRY_LOGIN_PARAM = "X-retry-login"

# Request headers
CSRF_TOKEN_HEADER = "CSRF-Token"
ONLY_AUTHENTICATED_HEADER = "X-OnlyAuthenticated"
USER_AGENT_HEADER = "User-Agent"

# Endpoints
API_PREFIX = "/api"
INFO_API_PATH = "/api/info"
CSRF_TOKEN_PATH = "/csrftoken"
WHOAMI_PATH = "/whoami"

# Pagination
DEFAULT_PAGE_SIZE = 100
FIRST_PAGE = 1

DEFAULT_USER_AGENT = f"churchtools-python-client/{__version__}"
