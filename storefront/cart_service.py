"""
Server-side cart service backed by Redis.

One hash per shopper (``cart:<user_id>``), one field per product. Every
field holds the stored line in the shape the REST clients consume:
``product``, ``productData``, ``quantity``, ``selectedSize`` and ``price``.
A per-cart sequence counter keeps lines in the order they were first added.
"""
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional

from storefront.api_client import ProductCatalog
from storefront.atomic_scripts import AtomicScripts
from storefront.config import Config
from storefront.exceptions import (
    CartServiceError,
    LimitExceededError,
    ProductNotFoundError,
    StockExceeded,
    ValidationError,
)
from storefront.models import Product
from storefront.redis_client import RedisClient, get_redis_client
from storefront.stock import available_stock, requires_size
from storefront.utils import hash_identifier

logger = logging.getLogger(__name__)


def product_data(product: Product, selected_size: Optional[str] = None) -> Dict[str, Any]:
    """Snapshot of the catalog fields a cart line carries"""
    vendor = None
    if product.vendor is not None:
        vendor = {"_id": product.vendor.id, "businessName": product.vendor.display_name}
    return {
        "_id": product.product_id,
        "title": product.title,
        "price": float(product.price),
        "image": product.image,
        "stock": available_stock(product, selected_size),
        "vendor": vendor,
        "shipping": float(product.shipping_cost),
    }


class RedisCartService:
    """Service for cart operations"""

    def __init__(
        self,
        catalog: ProductCatalog,
        redis_client: Optional[RedisClient] = None,
        scripts: Optional[AtomicScripts] = None,
    ):
        self.catalog = catalog
        self.redis = redis_client or get_redis_client()
        self.scripts = scripts or AtomicScripts(self.redis)

    def _get_cart_key(self, user_id: str) -> str:
        """Generate Redis key for cart"""
        return f"cart:{user_id}"

    def _get_seq_key(self, user_id: str) -> str:
        return f"cart:{user_id}:seq"

    def _cart_body(self, items: List[Dict[str, Any]]) -> Dict[str, Any]:
        total_amount = sum((Decimal(str(item["price"])) * item["quantity"] for item in items), Decimal("0"))
        return {
            "items": items,
            "totalItems": sum(item["quantity"] for item in items),
            "totalAmount": float(total_amount),
        }

    def _refresh(self, item: Dict[str, Any]) -> Dict[str, Any]:
        """Bring stock and shipping up to date with the catalog"""
        try:
            product = self.catalog.get_product(item["product"])
        except ProductNotFoundError:
            return item
        data = dict(item.get("productData") or {})
        data["stock"] = available_stock(product, item.get("selectedSize"))
        data["shipping"] = float(product.shipping_cost)
        return {**item, "productData": data}

    def get_cart(self, user_id: str) -> Dict[str, Any]:
        """Cart contents in insertion order; a missing cart is an empty one"""
        items_data = self.redis.hgetall(self._get_cart_key(user_id))

        items = []
        for product_id, item_json in items_data.items():
            try:
                items.append(json.loads(item_json))
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping unreadable cart line {product_id}: {e}")

        items.sort(key=lambda item: item.get("seq", 0))
        items = [self._refresh({k: v for k, v in item.items() if k != "seq"}) for item in items]
        return self._cart_body(items)

    def add_item(
        self,
        user_id: str,
        product_id: str,
        quantity: int = 1,
        selected_size: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Add a product, merging into an existing line for the same product"""
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        product = self.catalog.get_product(product_id)
        if requires_size(product) and selected_size not in product.available_sizes:
            raise ValidationError("Please select a valid size")

        item = {
            "product": product.product_id,
            "productData": product_data(product, selected_size),
            "selectedSize": selected_size,
            "price": float(product.price),
        }
        result = self.scripts.add_item(
            cart_key=self._get_cart_key(user_id),
            seq_key=self._get_seq_key(user_id),
            product_id=product.product_id,
            quantity=quantity,
            item=item,
            available=available_stock(product, selected_size),
            max_items=Config.MAX_ITEMS_PER_CART,
            ttl=Config.CART_TTL_SECONDS,
        )

        error = result.get("err")
        if error == "INSUFFICIENT_STOCK":
            available = int(result.get("available", 0))
            raise StockExceeded(f"Only {available} items available in stock", available=available)
        if error == "MAX_ITEMS_EXCEEDED":
            raise LimitExceededError(f"Cart exceeds maximum items {result.get('max', Config.MAX_ITEMS_PER_CART)}")
        if error:
            raise CartServiceError(f"Cart script error: {error}")

        logger.info(f"Added {product.product_id} x{quantity} to cart {hash_identifier(user_id)}")
        return self.get_cart(user_id)

    def update_quantity(self, user_id: str, product_id: str, quantity: int) -> Dict[str, Any]:
        """Set a line's quantity; zero removes the line"""
        if quantity < 0:
            raise ValidationError("Product ID and valid quantity are required")

        cart_key = self._get_cart_key(user_id)
        available = None
        if quantity > 0:
            stored = self.redis.hget(cart_key, product_id)
            if stored is None:
                raise ProductNotFoundError(product_id, "Item not found in cart")
            selected_size = json.loads(stored).get("selectedSize")
            available = available_stock(self.catalog.get_product(product_id), selected_size)

        result = self.scripts.update_quantity(
            cart_key=cart_key,
            seq_key=self._get_seq_key(user_id),
            product_id=product_id,
            quantity=quantity,
            available=available,
            ttl=Config.CART_TTL_SECONDS,
        )

        error = result.get("err")
        if error == "PRODUCT_NOT_FOUND":
            raise ProductNotFoundError(product_id, "Item not found in cart")
        if error == "INSUFFICIENT_STOCK":
            available = int(result.get("available", 0))
            raise StockExceeded(f"Insufficient stock. Only {available} items available.", available=available)
        if error:
            raise CartServiceError(f"Cart script error: {error}")

        return self.get_cart(user_id)

    def remove_item(self, user_id: str, product_id: str) -> Dict[str, Any]:
        """Remove a line; removing an absent line is not an error"""
        cart_key = self._get_cart_key(user_id)
        if self.redis.hdel(cart_key, product_id) > 0:
            if self.redis.hlen(cart_key) > 0:
                self.redis.expire(cart_key, Config.CART_TTL_SECONDS)
            else:
                self.redis.delete(cart_key, self._get_seq_key(user_id))
        return self.get_cart(user_id)

    def clear_cart(self, user_id: str) -> Dict[str, Any]:
        self.redis.delete(self._get_cart_key(user_id), self._get_seq_key(user_id))
        logger.info(f"Cleared cart {hash_identifier(user_id)}")
        return self._cart_body([])
