"""
Credential Vault - one-way password hashing with Argon2id.

Pure functions over their inputs: nothing here touches the database and
nothing raises for a bad password. Callers treat False as an
authentication failure.
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

from gateway.config import settings


class CredentialVault:
    """Hashes and verifies account passwords."""

    def __init__(
        self,
        time_cost: int | None = None,
        memory_cost: int | None = None,
        parallelism: int | None = None,
    ) -> None:
        self.password_hasher = PasswordHasher(
            time_cost=time_cost or settings.password_hash_time_cost,
            memory_cost=memory_cost or settings.password_hash_memory_cost,
            parallelism=parallelism or settings.password_hash_parallelism,
        )

    def hash(self, password: str) -> str:
        """Hash a password (salted, encoded with its own parameters)."""
        return self.password_hasher.hash(password)

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a stored hash using Argon2's own compare."""
        try:
            return self.password_hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        """True when the hash was produced with outdated cost parameters."""
        try:
            return self.password_hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True


# Shared vault - Argon2 hashers are stateless and thread-safe
credential_vault = CredentialVault()
