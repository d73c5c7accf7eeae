"""
Shared fixtures: in-memory SQLite, fakeredis, an in-process catalog and a
recording event publisher.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"

from typing import Any, Dict, List, Optional

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.data.database import Base
from storefront.domain.errors import DependencyError
from storefront.services.auth_service import AuthService
from storefront.services.cart_service import CartService
from storefront.services.lock_service import LockService
from storefront.services.order_service import OrderService
from storefront.services.password_hasher import PasswordHasher
from storefront.services.product_client import CatalogProduct
from storefront.services.token_service import TokenService
from storefront.services.user_service import UserService


# ============================================================================
# Fakes
# ============================================================================


class FakeCatalog:
    """Stands in for ProductClient; keeps stock in memory and records adjustments."""

    def __init__(self, products: Dict[str, dict]):
        self.products = {pid: CatalogProduct.model_validate(p) for pid, p in products.items()}
        self.adjustments: List[tuple] = []
        self.fail_adjust = False

    def get_product(self, product_id: str) -> Optional[CatalogProduct]:
        return self.products.get(product_id)

    def has_stock(self, product_id: str, variant_sku: Optional[str], quantity: int) -> bool:
        product = self.get_product(product_id)
        if product is None:
            return False
        return product.stock_for(variant_sku) >= quantity

    def adjust_stock(self, product_id: str, delta: int) -> None:
        if self.fail_adjust:
            raise DependencyError("Product service failed to adjust stock")
        self.adjustments.append((product_id, delta))
        self.products[product_id].total_stock += delta

    def set_stock(self, product_id: str, stock: int) -> None:
        self.products[product_id].total_stock = stock

    def stock(self, product_id: str) -> int:
        return self.products[product_id].total_stock


class RecordingPublisher:
    def __init__(self):
        self.published: List[tuple] = []
        self.deferred: List[tuple] = []
        self.fail = False

    def publish(self, exchange: str, routing_key: str, payload: Dict[str, Any]) -> None:
        if self.fail:
            raise DependencyError("Event broker unavailable")
        self.published.append((exchange, routing_key, payload))

    def defer(self, exchange: str, routing_key: str, payload: Dict[str, Any]) -> None:
        self.deferred.append((exchange, routing_key, payload))

    def routing_keys(self) -> List[str]:
        return [key for _, key, _ in self.published]

    def close(self) -> None:
        pass


CATALOG = {
    "p-widget": {"_id": "p-widget", "name": "Widget", "basePrice": "15.00", "totalStock": 10},
    "p-gadget": {
        "_id": "p-gadget",
        "name": "Gadget",
        "basePrice": "30.00",
        "totalStock": 5,
        "variants": [
            {"sku": "G-RED", "price": "32.50", "stock": 2},
            {"sku": "G-BLUE", "price": "30.00", "stock": 3},
        ],
    },
    "p-sticker": {"_id": "p-sticker", "name": "Sticker", "basePrice": "0.99", "totalStock": 100},
}

ADDRESS = {
    "full_name": "Ada Lovelace",
    "address_line1": "12 Analytical Way",
    "address_line2": None,
    "city": "London",
    "state": "London",
    "postal_code": "N1 9GU",
    "country": "GB",
    "phone": "+44 20 7946 0000",
}


# ============================================================================
# Infrastructure
# ============================================================================


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def hasher():
    # minimum argon2 cost, tests only
    return PasswordHasher(time_cost=1, memory_cost=8, parallelism=1)


@pytest.fixture
def token_service(redis_client):
    return TokenService(
        redis_client,
        access_secret="test-access-secret-0123456789abcdef",
        refresh_secret="test-refresh-secret-0123456789abcdef",
        access_ttl=900,
        refresh_ttl=3600,
    )


@pytest.fixture
def catalog():
    return FakeCatalog(CATALOG)


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def lock_service(redis_client):
    return LockService(redis_client)


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def auth_service(db, token_service, hasher):
    return AuthService(db, token_service, hasher)


@pytest.fixture
def user_service(db, token_service):
    return UserService(db, token_service)


@pytest.fixture
def cart_service(db, catalog, lock_service):
    return CartService(db, product_client=catalog, lock_service=lock_service)


@pytest.fixture
def order_service(db, catalog, publisher):
    return OrderService(db, product_client=catalog, publisher=publisher, exchange="order_events")


@pytest.fixture
def user(auth_service):
    return auth_service.register("ada@example.com", "correct-horse-1", first_name="Ada").user


@pytest.fixture
def other_user(auth_service):
    return auth_service.register("grace@example.com", "correct-horse-2", first_name="Grace").user


@pytest.fixture
def address():
    return dict(ADDRESS)