# storefront/services/product_client.py
from decimal import Decimal
from typing import List, Optional

import requests
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError
from requests import RequestException

from storefront.domain.errors import DependencyError
from storefront.utils.retry import http_retry
from storefront.utils.settings import PRODUCT_SERVICE_URL, PRODUCT_SERVICE_TIMEOUT
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogVariant(BaseModel):
    sku: str
    price: Decimal
    stock: int = 0

    model_config = ConfigDict(extra="ignore")


class CatalogProduct(BaseModel):
    id: Optional[str] = Field(None, validation_alias=AliasChoices("id", "_id"))
    name: Optional[str] = None
    base_price: Decimal = Field(validation_alias=AliasChoices("basePrice", "base_price"))
    total_stock: int = Field(0, validation_alias=AliasChoices("totalStock", "total_stock"))
    variants: List[CatalogVariant] = []

    model_config = ConfigDict(extra="ignore")

    def variant(self, sku: str) -> CatalogVariant | None:
        return next((v for v in self.variants if v.sku == sku), None)

    def price_for(self, sku: str | None) -> Decimal:
        if sku:
            variant = self.variant(sku)
            if variant:
                return variant.price
        return self.base_price

    def stock_for(self, sku: str | None) -> int:
        if sku:
            variant = self.variant(sku)
            return variant.stock if variant else 0
        return self.total_stock


class ProductClient:
    """
    HTTP client for the product catalog.

    Transport errors are retried (tenacity) and then surface as a retryable
    DependencyError; a 4xx from the catalog is a non-retryable one.
    """

    def __init__(self, base_url: str | None = None, timeout: float = PRODUCT_SERVICE_TIMEOUT, session=None):
        self.base_url = (base_url or PRODUCT_SERVICE_URL).rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()

    @http_retry()
    def _get(self, url: str) -> requests.Response:
        return self.session.get(url, timeout=self.timeout)

    @http_retry()
    def _patch(self, url: str, body: dict) -> requests.Response:
        return self.session.patch(url, json=body, timeout=self.timeout)

    def get_product(self, product_id: str) -> CatalogProduct | None:
        url = f"{self.base_url}/products/{product_id}"
        logger.info(f"ProductClient GET {url}")

        try:
            resp = self._get(url)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
        except RequestException as e:
            raise self._dependency_error("fetch product", product_id, e) from e

        try:
            body = resp.json()
            # catalog wraps payloads in {"success": true, "data": {...}}
            data = body.get("data", body) if isinstance(body, dict) else body
            return CatalogProduct.model_validate(data)
        except (ValueError, ValidationError) as e:
            logger.error(f"ProductClient got a malformed product {product_id}: {e}")
            raise DependencyError("Product service returned a malformed product", retryable=False) from e

    def has_stock(self, product_id: str, variant_sku: str | None, quantity: int) -> bool:
        product = self.get_product(product_id)
        if product is None:
            return False
        return product.stock_for(variant_sku) >= quantity

    def adjust_stock(self, product_id: str, delta: int) -> None:
        url = f"{self.base_url}/products/{product_id}/stock"
        logger.info(f"ProductClient PATCH {url} delta={delta}")

        try:
            resp = self._patch(url, {"quantity": delta})
            resp.raise_for_status()
        except RequestException as e:
            raise self._dependency_error("adjust stock", product_id, e) from e

    @staticmethod
    def _dependency_error(action: str, product_id: str, exc: RequestException) -> DependencyError:
        response = getattr(exc, "response", None)
        retryable = response is None or response.status_code >= 500
        logger.error(f"ProductClient failed to {action} for {product_id}: {exc}")
        return DependencyError(f"Product service failed to {action}", retryable=retryable)
