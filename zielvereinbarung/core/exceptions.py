"""
Domain exceptions translated into HTTP responses by core.error_handler
"""
from zielvereinbarung.core.rate_limit import RateLimitResult


class NotAuthenticatedError(Exception):
    """No valid session. The reason is deliberately not carried."""


class RateLimitExceededError(Exception):
    def __init__(self, result: RateLimitResult):
        self.result = result
        super().__init__(result.message or "rate limit exceeded")


class AccessCodeCollisionError(Exception):
    """Issued access code hit the storage uniqueness constraint."""


class FormStateError(Exception):
    """Review step not allowed from the form's current status."""
