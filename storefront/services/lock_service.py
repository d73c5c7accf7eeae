# storefront/services/lock_service.py
import uuid
from contextlib import contextmanager

from redis.exceptions import RedisError
from tenacity import Retrying, retry_if_result, stop_after_delay, wait_random

from storefront.domain.errors import ConflictError, DependencyError
from storefront.utils.retry import redis_retry
from storefront.utils.settings import CART_LOCK_TTL_SECONDS, CART_LOCK_WAIT_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

# compare-and-delete: only the owner that set the lock may release it
_RELEASE_LUA = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class LockService:
    """
    Short-lived Redis locks (SET NX PX + Lua release).
    Used to serialize read-modify-write on a single user's cart.
    """

    def __init__(self, redis_client):
        self.redis = redis_client

    @redis_retry()
    def acquire(self, key: str, owner: str, ttl: float) -> bool:
        #SET cart:42:lock "<owner>" NX PX 10000
        return bool(self.redis.set(name=key, value=owner, nx=True, px=int(ttl * 1000)))

    @redis_retry()
    def release(self, key: str, owner: str) -> bool:
        return bool(self.redis.eval(_RELEASE_LUA, 1, key, owner))

    def wait_for(self, key: str, owner: str, ttl: float, wait: float) -> bool:
        retrying = Retrying(
            retry=retry_if_result(lambda acquired: not acquired),
            stop=stop_after_delay(wait),
            wait=wait_random(0.02, 0.1),
            retry_error_callback=lambda state: False,
        )
        return retrying(self.acquire, key, owner, ttl)

    @contextmanager
    def cart_lock(
        self,
        user_id: str,
        ttl: float = CART_LOCK_TTL_SECONDS,
        wait: float = CART_LOCK_WAIT_SECONDS,
    ):
        key = f"cart:{user_id}:lock"
        owner = uuid.uuid4().hex

        try:
            acquired = self.wait_for(key, owner, ttl, wait)
        except RedisError as e:
            logger.error(f"Lock store unavailable for {key}: {e}")
            raise DependencyError("Lock store unavailable") from e

        if not acquired:
            logger.warning(f"Timed out waiting for {key}")
            raise ConflictError("Cart is being modified by another request, try again")

        try:
            yield
        finally:
            try:
                self.release(key, owner)
            except RedisError as e:
                # the lock still expires on its own after ttl
                logger.warning(f"Failed to release {key}: {e}")
