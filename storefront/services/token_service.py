# storefront/services/token_service.py
import json
import time
import uuid
from typing import Any, Callable, Dict

import jwt
from redis.exceptions import RedisError

from storefront.domain.errors import (
    DependencyError,
    InvalidTokenError,
    TokenExpiredError,
    TokenRevokedError,
)
from storefront.domain.schemas import TokenPair
from storefront.utils.retry import redis_retry
from storefront.utils.settings import (
    JWT_ACCESS_SECRET,
    JWT_REFRESH_SECRET,
    JWT_ALGORITHM,
    ACCESS_TOKEN_TTL_SECONDS,
    REFRESH_TOKEN_TTL_SECONDS,
    REVOKE_FAMILY_ON_REUSE,
)
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

ACCESS = "access"
REFRESH = "refresh"


class TokenService:
    """
    Access / refresh token issuer.

    Access tokens are stateless JWTs. Refresh tokens are JWTs whose token id
    (jti) must also be present in Redis:

        refresh_token:{user_id}:{jti}       -> {"user_id", "family", "issued_at"}  (TTL = token lifetime)
        refresh_token_used:{user_id}:{jti}  -> family, written when a token is rotated

    Present = valid, absent = revoked. Any Redis failure while checking a
    refresh token is treated as "revoked" (fail closed).
    """

    def __init__(
        self,
        redis_client,
        access_secret: str = JWT_ACCESS_SECRET,
        refresh_secret: str = JWT_REFRESH_SECRET,
        algorithm: str = JWT_ALGORITHM,
        access_ttl: int = ACCESS_TOKEN_TTL_SECONDS,
        refresh_ttl: int = REFRESH_TOKEN_TTL_SECONDS,
        revoke_family_on_reuse: bool = REVOKE_FAMILY_ON_REUSE,
    ):
        self.redis = redis_client
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl
        self.revoke_family_on_reuse = revoke_family_on_reuse

    # =====================================================
    # ISSUE
    # =====================================================
    def issue_access_token(self, user) -> str:
        now = int(time.time())
        payload = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "type": ACCESS,
            "iat": now,
            "exp": now + self.access_ttl,
        }
        return jwt.encode(payload, self.access_secret, algorithm=self.algorithm)

    def issue_refresh_token(self, user, family: str | None = None) -> str:
        now = int(time.time())
        token_id = str(uuid.uuid4())
        family = family or str(uuid.uuid4())

        payload = {
            "sub": str(user.id),
            "jti": token_id,
            "fam": family,
            "type": REFRESH,
            "iat": now,
            "exp": now + self.refresh_ttl,
        }
        token = jwt.encode(payload, self.refresh_secret, algorithm=self.algorithm)

        record = {"user_id": str(user.id), "family": family, "issued_at": now}
        try:
            self._store(self._key(str(user.id), token_id), json.dumps(record), self.refresh_ttl)
        except RedisError as e:
            logger.error(f"Could not persist refresh token for user {user.id}: {e}")
            raise DependencyError("Token store unavailable") from e

        return token

    def issue_token_pair(self, user, family: str | None = None) -> TokenPair:
        return TokenPair(
            access_token=self.issue_access_token(user),
            refresh_token=self.issue_refresh_token(user, family=family),
            expires_in=self.access_ttl,
        )

    # =====================================================
    # VERIFY
    # =====================================================
    def verify_access_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, self.access_secret, ACCESS)

    def verify_refresh_token(self, token: str) -> Dict[str, Any]:
        return self._decode(token, self.refresh_secret, REFRESH)

    def is_refresh_token_active(self, token: str) -> bool:
        try:
            claims = self.verify_refresh_token(token)
        except InvalidTokenError:
            return False

        try:
            return bool(self._exists(self._key(claims["sub"], claims["jti"])))
        except RedisError as e:
            logger.warning(f"Revocation store unavailable, treating token as revoked: {e}")
            return False

    # =====================================================
    # ROTATE / REVOKE
    # =====================================================
    def rotate_refresh_token(self, old_token: str, load_user: Callable[[str], Any]) -> TokenPair:
        """
        Exchange a refresh token for a new pair.

        Only the first caller presenting a given token id wins: the GET+DEL
        runs in one MULTI, and only the caller whose DEL removed the key goes
        on to issue. The token family is carried over to the new token.
        """
        claims = self.verify_refresh_token(old_token)
        user_id, token_id, family = claims["sub"], claims["jti"], claims.get("fam")

        try:
            record = self._consume(self._key(user_id, token_id))
        except RedisError as e:
            logger.warning(f"Revocation store unavailable during rotation for user {user_id}: {e}")
            raise TokenRevokedError() from e

        if record is None:
            self._handle_reuse(user_id, token_id, family)
            raise TokenRevokedError()

        user = load_user(user_id)
        if user is None:
            logger.info(f"Refresh token presented for missing user {user_id}")
            raise TokenRevokedError()

        remaining = max(int(claims["exp"]) - int(time.time()), 1)
        try:
            self._store(self._used_key(user_id, token_id), family or "", remaining)
        except RedisError as e:
            logger.warning(f"Could not record rotation of token {token_id}: {e}")

        logger.info(f"Rotated refresh token for user {user_id}")
        return self.issue_token_pair(user, family=family)

    def revoke(self, token: str) -> None:
        """
        Idempotent and never raises: unknown, expired, malformed or already
        revoked tokens are a no-op, and a store outage is only logged (the
        record still expires with the token).
        """
        try:
            claims = jwt.decode(
                token,
                self.refresh_secret,
                algorithms=[self.algorithm],
                options={"verify_exp": False},
            )
        except jwt.InvalidTokenError:
            return

        if claims.get("type") != REFRESH or "jti" not in claims or "sub" not in claims:
            return

        try:
            self._delete(self._key(claims["sub"], claims["jti"]))
        except RedisError as e:
            logger.error(f"Could not revoke refresh token {claims['jti']} of user {claims['sub']}: {e}")

    def revoke_all(self, user_id: str) -> int:
        try:
            keys = list(self._scan(f"refresh_token:{user_id}:*"))
            if keys:
                self._delete(*keys)
        except RedisError as e:
            logger.error(f"Could not revoke refresh tokens of user {user_id}: {e}")
            raise DependencyError("Token store unavailable") from e

        logger.info(f"Revoked {len(keys)} refresh tokens of user {user_id}")
        return len(keys)

    def revoke_family(self, user_id: str, family: str) -> int:
        revoked = 0
        for key in self._scan(f"refresh_token:{user_id}:*"):
            raw = self.redis.get(key)
            if raw and json.loads(raw).get("family") == family:
                self.redis.delete(key)
                revoked += 1
        return revoked

    # =====================================================
    # INTERNALS
    # =====================================================
    def _decode(self, token: str, secret: str, expected_type: str) -> Dict[str, Any]:
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError() from e
        except jwt.InvalidTokenError as e:
            raise InvalidTokenError() from e

        if claims.get("type") != expected_type:
            raise InvalidTokenError()
        if expected_type == REFRESH and not claims.get("jti"):
            raise InvalidTokenError()
        return claims

    def _handle_reuse(self, user_id: str, token_id: str, family: str | None) -> None:
        if not (self.revoke_family_on_reuse and family):
            return
        try:
            if self.redis.get(self._used_key(user_id, token_id)) is None:
                return
            revoked = self.revoke_family(user_id, family)
        except RedisError as e:
            logger.warning(f"Could not revoke token family {family} after reuse: {e}")
            return
        logger.warning(
            f"Reuse of rotated refresh token {token_id} by user {user_id}, "
            f"revoked {revoked} tokens of family {family}"
        )

    @staticmethod
    def _key(user_id: str, token_id: str) -> str:
        return f"refresh_token:{user_id}:{token_id}"

    @staticmethod
    def _used_key(user_id: str, token_id: str) -> str:
        return f"refresh_token_used:{user_id}:{token_id}"

    @redis_retry()
    def _store(self, key: str, value: str, ttl: int) -> None:
        self.redis.set(key, value, ex=ttl)

    @redis_retry()
    def _exists(self, key: str) -> int:
        return self.redis.exists(key)

    @redis_retry()
    def _delete(self, *keys: str) -> int:
        return self.redis.delete(*keys)

    @redis_retry()
    def _scan(self, pattern: str) -> list:
        return list(self.redis.scan_iter(match=pattern, count=500))

    @redis_retry()
    def _consume(self, key: str) -> Dict[str, Any] | None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.get(key)
        pipe.delete(key)
        raw, deleted = pipe.execute()
        if not deleted or raw is None:
            return None
        return json.loads(raw)
