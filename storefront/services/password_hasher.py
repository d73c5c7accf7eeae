# storefront/services/password_hasher.py
from argon2 import PasswordHasher as Argon2PasswordHasher
from argon2.exceptions import VerificationError, InvalidHashError

from storefront.utils.settings import (
    PASSWORD_HASH_TIME_COST,
    PASSWORD_HASH_MEMORY_COST,
    PASSWORD_HASH_PARALLELISM,
)


class PasswordHasher:
    """
    Argon2id password hashing.

    time_cost / memory_cost are the adaptive cost factors; raising them in
    settings makes existing hashes report needs_rehash() on next login.
    """

    def __init__(
        self,
        time_cost: int = PASSWORD_HASH_TIME_COST,
        memory_cost: int = PASSWORD_HASH_MEMORY_COST,
        parallelism: int = PASSWORD_HASH_PARALLELISM,
    ):
        self._hasher = Argon2PasswordHasher(
            time_cost=time_cost,
            memory_cost=memory_cost,
            parallelism=parallelism,
        )

    def hash(self, password: str) -> str:
        return self._hasher.hash(password)

    def verify(self, password_hash: str, password: str) -> bool:
        try:
            return self._hasher.verify(password_hash, password)
        except (VerificationError, InvalidHashError):
            return False

    def needs_rehash(self, password_hash: str) -> bool:
        try:
            return self._hasher.check_needs_rehash(password_hash)
        except InvalidHashError:
            return True
