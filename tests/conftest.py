"""Shared fixtures and in-memory fakes for the storefront tests."""

import asyncio
import json
from typing import Any, Dict, List, Optional

import pytest

from storefront.api_client import CartServiceClient, OrderServiceClient, ProductCatalog
from storefront.cart_store import CartStore
from storefront.exceptions import ProductNotFoundError, StockExceeded
from storefront.models import Product, SessionUser, ShippingAddress
from storefront.notifications import RecordingNotificationSink
from storefront.session import Session


def run(coro):
    return asyncio.run(coro)


def platform_product(**overrides) -> Product:
    data = {"_id": "p-100", "title": "Cotton Kurta", "price": 100, "stock": 10}
    data.update(overrides)
    return Product.from_raw(data)


def vendor_product(vendor_id="v-1", vendor_name="Acme Crafts", **overrides) -> Product:
    data = {
        "_id": "p-200",
        "title": "Brass Lamp",
        "price": 50,
        "stock": 5,
        "vendor": {"_id": vendor_id, "businessName": vendor_name},
    }
    data.update(overrides)
    return Product.from_raw(data)


def sized_product(**overrides) -> Product:
    data = {
        "_id": "p-300",
        "title": "Running Shoe",
        "price": 80,
        "stock": 9,
        "availableSizes": ["40", "41", "42"],
        "sizeStock": {"40": 2, "41": 0, "42": 7},
    }
    data.update(overrides)
    return Product.from_raw(data)


def raw_line(product: Product, quantity: int, selected_size: Optional[str] = None) -> Dict[str, Any]:
    """A cart line as the cart service returns it"""
    vendor = None
    if product.vendor is not None:
        vendor = {"_id": product.vendor.id, "businessName": product.vendor.display_name}
    return {
        "product": product.product_id,
        "productData": {
            "_id": product.product_id,
            "title": product.title,
            "price": float(product.price),
            "image": product.image,
            "stock": product.stock,
            "vendor": vendor,
        },
        "quantity": quantity,
        "selectedSize": selected_size,
        "price": float(product.price),
    }


class FakeCartService(CartServiceClient):
    """In-memory cart service speaking the REST client's contract"""

    def __init__(self, products: Optional[List[Product]] = None):
        self.products = {p.product_id: p for p in products or []}
        self.lines: List[Dict[str, Any]] = []
        self.calls: List[tuple] = []
        self.fail_with: Optional[Exception] = None
        self.gates: Dict[str, asyncio.Event] = {}

    async def _enter(self, name: str, *args):
        self.calls.append((name,) + args)
        gate = self.gates.get(name)
        if gate is not None:
            await gate.wait()
        if self.fail_with is not None:
            raise self.fail_with

    def _snapshot(self) -> List[Dict[str, Any]]:
        return [json.loads(json.dumps(line)) for line in self.lines]

    def _line(self, product_id: str) -> Optional[Dict[str, Any]]:
        for line in self.lines:
            if line["product"] == product_id:
                return line
        return None

    async def get_cart(self):
        # Answer is fixed before the (possibly delayed) reply is delivered
        snapshot = self._snapshot()
        await self._enter("get_cart")
        return snapshot

    async def add_to_cart(self, product_id, quantity, selected_size=None):
        await self._enter("add_to_cart", product_id, quantity, selected_size)
        product = self.products[product_id]
        line = self._line(product_id)
        new_quantity = (line["quantity"] if line else 0) + quantity
        if product.stock is not None and new_quantity > product.stock:
            raise StockExceeded(f"Only {product.stock} items available in stock", available=product.stock)
        if line:
            line["quantity"] = new_quantity
        else:
            self.lines.append(raw_line(product, quantity, selected_size))
        return self._snapshot()

    async def remove_from_cart(self, product_id):
        await self._enter("remove_from_cart", product_id)
        self.lines = [line for line in self.lines if line["product"] != product_id]
        return self._snapshot()

    async def update_cart_item(self, product_id, quantity):
        await self._enter("update_cart_item", product_id, quantity)
        line = self._line(product_id)
        if line is None:
            raise ProductNotFoundError(product_id, "Item not found in cart")
        if quantity == 0:
            self.lines.remove(line)
            return self._snapshot()
        stock = self.products[product_id].stock
        if stock is not None and quantity > stock:
            raise StockExceeded(f"Insufficient stock. Only {stock} items available.", available=stock)
        line["quantity"] = quantity
        return self._snapshot()

    async def clear_cart(self):
        await self._enter("clear_cart")
        self.lines = []
        return []


class FakeOrderService(OrderServiceClient):
    def __init__(self, response: Optional[Dict[str, Any]] = None):
        self.response = response if response is not None else {"success": True, "orderNumber": "IT-000123"}
        self.payloads: List[Dict[str, Any]] = []
        self.fail_with: Optional[Exception] = None

    async def create_order(self, payload):
        self.payloads.append(payload)
        if self.fail_with is not None:
            raise self.fail_with
        return self.response


class FakeCatalog(ProductCatalog):
    def __init__(self, products: List[Product]):
        self.products = {p.product_id: p for p in products}
        self.lookups: List[str] = []

    def get_product(self, product_id):
        self.lookups.append(product_id)
        if product_id not in self.products:
            raise ProductNotFoundError(product_id)
        return self.products[product_id]


class FakeRedis:
    """Dict-backed stand-in for the RedisClient wrapper"""

    def __init__(self):
        self.strings: Dict[str, str] = {}
        self.hashes: Dict[str, Dict[str, str]] = {}
        self.ttls: Dict[str, int] = {}

    def get(self, key):
        return self.strings.get(key)

    def set(self, key, value, ex=None):
        self.strings[key] = value
        if ex is not None:
            self.ttls[key] = ex
        return True

    def delete(self, *keys):
        deleted = 0
        for key in keys:
            if self.strings.pop(key, None) is not None or self.hashes.pop(key, None) is not None:
                deleted += 1
        return deleted

    def exists(self, *keys):
        return sum(1 for key in keys if key in self.strings or key in self.hashes)

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hdel(self, key, *fields):
        bucket = self.hashes.get(key, {})
        removed = sum(1 for field in fields if bucket.pop(field, None) is not None)
        if key in self.hashes and not bucket:
            del self.hashes[key]
        return removed

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def hlen(self, key):
        return len(self.hashes.get(key, {}))

    def expire(self, key, seconds):
        self.ttls[key] = seconds
        return True

    def ping(self):
        return True


class FakeCartScripts:
    """Python rendition of the cart Lua scripts over FakeRedis"""

    def __init__(self, redis: FakeRedis):
        self.redis = redis
        self.counters: Dict[str, int] = {}

    def add_item(self, cart_key, seq_key, product_id, quantity, item, available, max_items, ttl):
        bucket = self.redis.hashes.setdefault(cart_key, {})
        existing = json.loads(bucket[product_id]) if product_id in bucket else None
        existing_qty = existing["quantity"] if existing else 0
        new_qty = existing_qty + quantity
        if available is not None and new_qty > available:
            if not bucket:
                del self.redis.hashes[cart_key]
            return {"err": "INSUFFICIENT_STOCK", "available": available, "requested": new_qty}
        if existing_qty == 0 and len(bucket) >= max_items:
            return {"err": "MAX_ITEMS_EXCEEDED", "max": max_items}
        if existing:
            seq = existing["seq"]
        else:
            self.counters[seq_key] = self.counters.get(seq_key, 0) + 1
            seq = self.counters[seq_key]
        bucket[product_id] = json.dumps({**item, "quantity": new_qty, "seq": seq})
        self.redis.ttls[cart_key] = ttl
        return {"ok": True, "quantity": new_qty, "is_new": existing_qty == 0}

    def update_quantity(self, cart_key, seq_key, product_id, quantity, available, ttl):
        bucket = self.redis.hashes.get(cart_key, {})
        if product_id not in bucket:
            return {"err": "PRODUCT_NOT_FOUND"}
        if quantity == 0:
            self.redis.hdel(cart_key, product_id)
            if cart_key not in self.redis.hashes:
                self.counters.pop(seq_key, None)
            return {"ok": True, "quantity": 0, "removed": True}
        if available is not None and quantity > available:
            return {"err": "INSUFFICIENT_STOCK", "available": available, "requested": quantity}
        data = json.loads(bucket[product_id])
        data["quantity"] = quantity
        bucket[product_id] = json.dumps(data)
        return {"ok": True, "quantity": quantity, "removed": False}


@pytest.fixture
def user():
    return SessionUser(
        id="user-1",
        name="Ayesha Khan",
        email="ayesha@example.com",
        phone="03001234567",
        address=ShippingAddress(street="12 Mall Road", city="Lahore", state="Punjab", zip_code="54000"),
    )


@pytest.fixture
def session(user):
    return Session(user=user, token="token-abc")


@pytest.fixture
def guest_session():
    return Session()


@pytest.fixture
def notifier():
    return RecordingNotificationSink()


@pytest.fixture
def products():
    return [platform_product(), vendor_product(), sized_product()]


@pytest.fixture
def cart_service(products):
    return FakeCartService(products)


@pytest.fixture
def store(session, cart_service, notifier):
    return CartStore(session, cart_service, notifier)


@pytest.fixture
def order_service():
    return FakeOrderService()
