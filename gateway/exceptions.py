"""
Exception Classes - Strongly typed exception hierarchy.

Every domain failure carries the HTTP status it maps to. A single handler
in gateway.main translates them into the uniform error body.
"""

from datetime import datetime
from uuid import UUID


class GatewayError(Exception):
    """Base exception for all control-plane errors."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


# ============================================================================
# 400 - Validation
# ============================================================================


class ValidationFailedError(GatewayError):
    """Raised when input is missing or malformed."""

    status_code = 400


class DuplicateEmailError(ValidationFailedError):
    """Raised when an email is already registered to another account."""

    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__("User with this email already exists")


class InvalidTierError(ValidationFailedError):
    """Raised when a subscription tier is not a recognized plan."""

    def __init__(self, tier: str) -> None:
        self.tier = tier
        super().__init__("Invalid subscription tier")


# ============================================================================
# 401 - Authentication
# ============================================================================


class AuthenticationError(GatewayError):
    """Raised when the caller cannot be authenticated."""

    status_code = 401


class UnauthenticatedError(AuthenticationError):
    """Raised when no bearer token was presented."""

    def __init__(self) -> None:
        super().__init__("You are not logged in. Please log in to get access.")


class TokenExpiredError(AuthenticationError):
    """Raised when a token is past its expiry."""

    def __init__(self) -> None:
        super().__init__("Your token has expired. Please log in again.")


class TokenInvalidError(AuthenticationError):
    """Raised when a token signature, structure or class is invalid."""

    def __init__(self, message: str = "Invalid token. Please log in again.") -> None:
        super().__init__(message)


class StalePasswordError(AuthenticationError):
    """Raised when a token predates the account's last password change."""

    def __init__(self) -> None:
        super().__init__("User recently changed password. Please log in again.")


class InvalidCredentialsError(AuthenticationError):
    """Raised when an email/password pair does not match."""

    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class AccountNotFoundError(AuthenticationError):
    """Raised when the account a token refers to no longer exists."""

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__("The user belonging to this token no longer exists.")


class AccountDeactivatedError(AuthenticationError):
    """Raised when the account is disabled."""

    def __init__(self, account_id: UUID) -> None:
        self.account_id = account_id
        super().__init__("Your account has been deactivated. Please contact support.")


# ============================================================================
# 402 / 403 - Entitlement
# ============================================================================


class InsufficientCreditsError(GatewayError):
    """Raised when account has insufficient credits for an operation."""

    status_code = 402

    def __init__(self, remaining: int, required: int) -> None:
        self.remaining = remaining
        self.required = required
        super().__init__(
            "Insufficient credits. Please upgrade your subscription or purchase more credits."
        )


class ForbiddenError(GatewayError):
    """Raised when the account's role is not allowed."""

    status_code = 403

    def __init__(self, role: str) -> None:
        self.role = role
        super().__init__("You do not have permission to perform this action.")


class TierRestrictedError(GatewayError):
    """Raised when the account's subscription tier is not allowed."""

    status_code = 403

    def __init__(self, tier: str, allowed: list[str]) -> None:
        self.tier = tier
        self.allowed = allowed
        super().__init__(f"This feature is only available for {', '.join(allowed)} subscribers.")


# ============================================================================
# 404 / 429
# ============================================================================


class NotFoundError(GatewayError):
    """Raised when a resource doesn't exist or is not owned by the caller."""

    status_code = 404

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(f"{resource} not found")


class RateLimitedError(GatewayError):
    """Raised when a rate window is exhausted."""

    status_code = 429

    def __init__(self, limiter: str, reset_at: datetime, message: str) -> None:
        self.limiter = limiter
        self.reset_at = reset_at
        super().__init__(message)


# ============================================================================
# 500 - Upstream / internal
# ============================================================================


class ProviderFailureError(GatewayError):
    """Raised when the generation provider fails or times out."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)


class InternalError(GatewayError):
    """Raised for unexpected faults (persistence, write verification)."""

    status_code = 500


class DataIntegrityError(InternalError):
    """Raised when data integrity constraint violated."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Data integrity error: {message}")
