"""Authentication services."""

from .magic_link import (  # noqa: F401
    GENERIC_RESPONSE,
    MagicLinkService,
    VerifiedSession,
    normalize_email,
    sanitize_callback_url,
)
from .rate_limit import RateLimiter, RateLimitState  # noqa: F401
from .tokens import (  # noqa: F401
    InvalidSessionToken,
    SessionClaims,
    create_session_token,
    decode_session_token,
    generate_token,
    hash_token,
)
