# storefront/product_service/main.py
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

app = FastAPI(title="Product Service (dev mock)")


PRODUCTS = {
    "p-keyboard": {
        "_id": "p-keyboard",
        "name": "Keyboard",
        "basePrice": "49.99",
        "totalStock": 25,
        "variants": [
            {"sku": "KB-US", "price": "49.99", "stock": 15},
            {"sku": "KB-DE", "price": "54.99", "stock": 10},
        ],
    },
    "p-mouse": {"_id": "p-mouse", "name": "Mouse", "basePrice": "19.50", "totalStock": 40, "variants": []},
    "p-monitor": {"_id": "p-monitor", "name": "Monitor", "basePrice": "249.00", "totalStock": 5, "variants": []},
}


class StockDelta(BaseModel):
    quantity: int


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return {"success": True, "data": product}


@app.patch("/products/{product_id}/stock")
def adjust_stock(product_id: str, payload: StockDelta):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    if product["totalStock"] + payload.quantity < 0:
        raise HTTPException(status_code=400, detail="Insufficient stock")
    product["totalStock"] += payload.quantity
    return {"success": True, "data": {"totalStock": product["totalStock"]}}
