# storefront/api/container.py
from dataclasses import dataclass

import redis

from storefront.services.event_publisher import EventPublisher
from storefront.services.lock_service import LockService
from storefront.services.password_hasher import PasswordHasher
from storefront.services.product_client import ProductClient
from storefront.services.token_service import TokenService
from storefront.utils.settings import REDIS_URL, REDIS_TIMEOUT


@dataclass
class Container:
    """Long-lived collaborators, built once per process and shared by requests."""

    redis: redis.Redis
    token_service: TokenService
    hasher: PasswordHasher
    product_client: ProductClient
    publisher: EventPublisher
    lock_service: LockService


def build_container() -> Container:
    client = redis.Redis.from_url(
        REDIS_URL,
        decode_responses=True,
        socket_timeout=REDIS_TIMEOUT,
        socket_connect_timeout=REDIS_TIMEOUT,
    )
    return Container(
        redis=client,
        token_service=TokenService(client),
        hasher=PasswordHasher(),
        product_client=ProductClient(),
        publisher=EventPublisher(),
        lock_service=LockService(client),
    )
