"""
Token Issuer - signed, time-bounded access and refresh tokens.

Tokens are stateless JWTs (HS256). Access and refresh tokens are signed
with different secrets and carry a "type" claim, so one class can never
be replayed as the other. There is no revocation list: refresh tokens are
revoked by the account's single refresh slot, access tokens by comparing
"iat" against the account's password_changed_at.
"""

import hashlib
from datetime import UTC, datetime, timedelta
from uuid import UUID, uuid4

import jwt
from structlog import get_logger

from gateway.config import settings
from gateway.exceptions import TokenExpiredError, TokenInvalidError
from gateway.models.domain import TokenClaims, TokenClass, TokenPair

logger = get_logger(__name__)


class TokenIssuer:
    """Mints and verifies access and refresh tokens."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        access_ttl: timedelta,
        refresh_ttl: timedelta,
        algorithm: str = "HS256",
    ) -> None:
        if access_secret == refresh_secret:
            raise ValueError("Access and refresh tokens must use distinct secrets")
        self._secrets = {
            TokenClass.ACCESS: access_secret,
            TokenClass.REFRESH: refresh_secret,
        }
        self._ttls = {
            TokenClass.ACCESS: access_ttl,
            TokenClass.REFRESH: refresh_ttl,
        }
        self.algorithm = algorithm

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Hash a token using SHA-256.

        Refresh tokens are stored in the account slot only as this hash.
        """
        return hashlib.sha256(token.encode()).hexdigest()

    def _issue(self, account_id: UUID, token_class: TokenClass, now: datetime | None) -> str:
        issued_at = now or datetime.now(UTC)
        payload = {
            "sub": str(account_id),
            "type": token_class.value,
            "jti": uuid4().hex,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + self._ttls[token_class]).timestamp()),
        }
        return jwt.encode(payload, self._secrets[token_class], algorithm=self.algorithm)

    def issue_access(self, account_id: UUID, now: datetime | None = None) -> str:
        """Mint a short-lived access token."""
        return self._issue(account_id, TokenClass.ACCESS, now)

    def issue_refresh(self, account_id: UUID, now: datetime | None = None) -> str:
        """Mint a long-lived refresh token."""
        return self._issue(account_id, TokenClass.REFRESH, now)

    def issue_pair(self, account_id: UUID, now: datetime | None = None) -> TokenPair:
        """Mint an access + refresh pair with the same issue time."""
        issued_at = now or datetime.now(UTC)
        return TokenPair(
            access_token=self.issue_access(account_id, issued_at),
            refresh_token=self.issue_refresh(account_id, issued_at),
        )

    def verify(self, token: str, token_class: TokenClass) -> TokenClaims:
        """
        Verify a token of the given class and return its claims.

        Raises:
            TokenExpiredError: past expiry
            TokenInvalidError: bad signature, malformed, or wrong class
        """
        try:
            payload = jwt.decode(
                token,
                self._secrets[token_class],
                algorithms=[self.algorithm],
                options={"require": ["sub", "iat", "exp", "type"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.info("token_expired", token_class=token_class.value)
            raise TokenExpiredError() from exc
        except jwt.InvalidTokenError as exc:
            logger.warning("token_invalid", token_class=token_class.value, error=str(exc))
            raise TokenInvalidError() from exc

        if payload.get("type") != token_class.value:
            logger.warning("token_class_mismatch", expected=token_class.value)
            raise TokenInvalidError()

        try:
            account_id = UUID(str(payload["sub"]))
            issued_at = int(payload["iat"])
            expires_at = int(payload["exp"])
        except (TypeError, ValueError) as exc:
            raise TokenInvalidError() from exc

        return TokenClaims(
            account_id=account_id,
            issued_at=issued_at,
            expires_at=expires_at,
            token_class=token_class,
            token_id=str(payload.get("jti", "")),
        )


def build_token_issuer() -> TokenIssuer:
    """Build a TokenIssuer from settings."""
    return TokenIssuer(
        access_secret=settings.JWT_SECRET,
        refresh_secret=settings.JWT_REFRESH_SECRET,
        access_ttl=timedelta(minutes=settings.access_token_expire_minutes),
        refresh_ttl=timedelta(days=settings.refresh_token_expire_days),
        algorithm=settings.jwt_algorithm,
    )
