"""Session-resilient request pipeline.

This package provides:
- An httpx transport with per-request timeouts and request logging
- Response envelope unwrapping and pagination metadata
- A deferral queue gating requests behind setup and re-login
- Middlewares recovering expired sessions and rate limiting
"""

from churchtools_client.pipeline.chain import (
    Middleware,
    MiddlewareChain,
    MiddlewareKind,
)
from churchtools_client.pipeline.deferral import (
    DeferralQueue,
    DeferralState,
    DeferralStateTransitionError,
)
from churchtools_client.pipeline.metrics import PipelineMetrics
from churchtools_client.pipeline.models import (
    ClientSession,
    FormData,
    PreparedRequest,
    ResponseKind,
    UnauthenticatedInfo,
    is_multipart,
)
from churchtools_client.pipeline.normalizer import (
    decode_body,
    last_page_of,
    response_to_data,
)
from churchtools_client.pipeline.recovery import (
    LoginRecovery,
    RateLimitMiddleware,
    SessionExpiryMiddleware,
    UnauthenticatedNotifier,
    classify_response,
    is_rate_limited,
    is_session_expired,
)
from churchtools_client.pipeline.transport import HttpTransport


__all__ = [
    # Chain
    "Middleware",
    "MiddlewareChain",
    "MiddlewareKind",
    # Deferral
    "DeferralQueue",
    "DeferralState",
    "DeferralStateTransitionError",
    # Metrics
    "PipelineMetrics",
    # Models
    "ClientSession",
    "FormData",
    "PreparedRequest",
    "ResponseKind",
    "UnauthenticatedInfo",
    "is_multipart",
    # Normalizer
    "decode_body",
    "last_page_of",
    "response_to_data",
    # Recovery
    "LoginRecovery",
    "RateLimitMiddleware",
    "SessionExpiryMiddleware",
    "UnauthenticatedNotifier",
    "classify_response",
    "is_rate_limited",
    "is_session_expired",
    # Transport
    "HttpTransport",
]
