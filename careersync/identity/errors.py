"""Identity-layer errors. These are the only errors shown to end users."""

RATE_LIMIT_MESSAGE = "Service is busy (Rate Limit). Please wait 60 seconds before trying again."

_RATE_LIMIT_MARKERS = (
    "rate limit",
    "too many requests",
    "sending recovery email",
    "security purposes",
    "busy",
)


class IdentityError(Exception):
    """An identity provider call failed (bad credentials, unverified email...)."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


class RateLimitError(IdentityError):
    """The identity provider is throttling requests."""


def is_rate_limited(error: IdentityError) -> bool:
    if error.status == 429:
        return True
    text = error.message.lower()
    return any(marker in text for marker in _RATE_LIMIT_MARKERS)


def friendly_identity_error(error: IdentityError) -> IdentityError:
    """Swap rate-limit errors for a readable message; return others unchanged."""
    if isinstance(error, RateLimitError) or not is_rate_limited(error):
        return error
    return RateLimitError(RATE_LIMIT_MESSAGE, status=error.status)
