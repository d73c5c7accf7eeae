import json
from decimal import Decimal

import pytest
import requests

from storefront.domain.errors import DependencyError
from storefront.services.product_client import ProductClient


def response(status: int, body=None) -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body or {}).encode()
    resp.url = "http://catalog/test"
    return resp


class FakeSession:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)

    def patch(self, url, **kwargs):
        return self._next("PATCH", url, **kwargs)


PRODUCT = {
    "_id": "p-1",
    "name": "Lamp",
    "basePrice": 24.5,
    "totalStock": 4,
    "variants": [{"sku": "L-WARM", "price": "26.00", "stock": 1}],
    "description": "ignored",
}


class TestGetProduct:

    def test_unwraps_envelope(self):
        session = FakeSession(response(200, {"success": True, "data": PRODUCT}))
        product = ProductClient("http://catalog/", session=session).get_product("p-1")

        assert product.id == "p-1"
        assert product.base_price == Decimal("24.5")
        assert product.price_for("L-WARM") == Decimal("26.00")
        assert product.price_for(None) == Decimal("24.5")
        assert product.stock_for("L-WARM") == 1
        assert product.stock_for("L-COLD") == 0
        assert session.calls[0][1] == "http://catalog/products/p-1"
        assert session.calls[0][2]["timeout"] == 2

    def test_missing_product(self):
        client = ProductClient("http://catalog", session=FakeSession(response(404)))
        assert client.get_product("nope") is None

    def test_server_error_is_retryable(self):
        client = ProductClient("http://catalog", session=FakeSession(response(503)))
        with pytest.raises(DependencyError) as exc:
            client.get_product("p-1")
        assert exc.value.retryable is True

    def test_timeout_is_retried_then_retryable(self):
        session = FakeSession(
            requests.Timeout("slow"),
            requests.Timeout("slow"),
            requests.Timeout("slow"),
        )
        with pytest.raises(DependencyError) as exc:
            ProductClient("http://catalog", session=session).get_product("p-1")
        assert exc.value.retryable is True
        assert len(session.calls) == 3

    def test_non_json_body(self):
        resp = response(200)
        resp._content = b"<html>maintenance</html>"
        with pytest.raises(DependencyError) as exc:
            ProductClient("http://catalog", session=FakeSession(resp)).get_product("p-1")
        assert exc.value.retryable is False

    def test_product_missing_fields(self):
        session = FakeSession(response(200, {"success": True, "data": {"name": "Lamp"}}))
        with pytest.raises(DependencyError) as exc:
            ProductClient("http://catalog", session=session).get_product("p-1")
        assert exc.value.retryable is False

    def test_transient_failure_recovers(self):
        session = FakeSession(requests.ConnectionError("reset"), response(200, PRODUCT))
        product = ProductClient("http://catalog", session=session).get_product("p-1")
        assert product.name == "Lamp"


class TestStock:

    def test_has_stock(self):
        session = FakeSession(response(200, PRODUCT), response(200, PRODUCT), response(404))
        client = ProductClient("http://catalog", session=session)
        assert client.has_stock("p-1", None, 4)
        assert not client.has_stock("p-1", "L-WARM", 2)
        assert not client.has_stock("p-404", None, 1)

    def test_adjust_stock(self):
        session = FakeSession(response(200, {"success": True}))
        ProductClient("http://catalog", session=session).adjust_stock("p-1", -3)

        method, url, kwargs = session.calls[0]
        assert (method, url) == ("PATCH", "http://catalog/products/p-1/stock")
        assert kwargs["json"] == {"quantity": -3}

    def test_rejected_adjustment_is_not_retryable(self):
        session = FakeSession(response(400, {"success": False}))
        with pytest.raises(DependencyError) as exc:
            ProductClient("http://catalog", session=session).adjust_stock("p-1", -100)
        assert exc.value.retryable is False
        assert len(session.calls) == 1
