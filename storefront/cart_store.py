"""
Cart store: the single source of truth for the shopping cart.

State changes go through ``cart_reducer``. For authenticated sessions every
mutation is sent to the remote cart service and the local item list is
replaced with the service's answer. Without a session the store only keeps
ephemeral local state.
"""
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, List, Mapping, Optional, Union

from storefront.api_client import CartServiceClient
from storefront.exceptions import (
    AuthenticationRequired,
    ProductNotFoundError,
    StockExceeded,
    StorefrontError,
    ValidationError,
)
from storefront.models import CartLineItem, CartState, CartStats, Product, VendorRef, to_decimal
from storefront.notifications import LoggingNotificationSink, NotificationSink
from storefront.session import Session
from storefront.stock import ensure_in_stock, stock_message

logger = logging.getLogger(__name__)


class CartAction(str, Enum):
    ADD_ITEM = "ADD_ITEM"
    REMOVE_ITEM = "REMOVE_ITEM"
    UPDATE_QUANTITY = "UPDATE_QUANTITY"
    CLEAR_CART = "CLEAR_CART"
    LOAD_CART = "LOAD_CART"
    SET_LOADING = "SET_LOADING"
    SET_ERROR = "SET_ERROR"


@dataclass(frozen=True)
class Action:
    type: CartAction
    payload: Any = None


def cart_reducer(state: CartState, action: Action) -> CartState:
    """Return the next cart state; never mutates ``state``"""
    if action.type is CartAction.ADD_ITEM:
        new_item: CartLineItem = action.payload
        if any(item.product_id == new_item.product_id for item in state.items):
            items = [
                item.model_copy(update={"quantity": item.quantity + new_item.quantity})
                if item.product_id == new_item.product_id
                else item
                for item in state.items
            ]
        else:
            items = [*state.items, new_item]
        return state.model_copy(update={"items": items})

    if action.type is CartAction.REMOVE_ITEM:
        return state.model_copy(
            update={"items": [item for item in state.items if item.product_id != action.payload]}
        )

    if action.type is CartAction.UPDATE_QUANTITY:
        product_id, quantity = action.payload
        items = []
        for item in state.items:
            if item.product_id != product_id:
                items.append(item)
            elif quantity > 0:
                items.append(item.model_copy(update={"quantity": quantity}))
        return state.model_copy(update={"items": items})

    if action.type is CartAction.CLEAR_CART:
        return state.model_copy(update={"items": []})

    if action.type is CartAction.LOAD_CART:
        return state.model_copy(update={"items": list(action.payload or []), "error": None})

    if action.type is CartAction.SET_LOADING:
        return state.model_copy(update={"loading": bool(action.payload)})

    if action.type is CartAction.SET_ERROR:
        return state.model_copy(update={"error": action.payload})

    return state


RawItem = Union[CartLineItem, Mapping[str, Any]]


def _raw_quantity(raw: RawItem) -> int:
    if isinstance(raw, CartLineItem):
        return raw.quantity
    try:
        return int(raw.get("quantity", 1))
    except (TypeError, ValueError):
        return 0


def normalize_line_item(raw: RawItem) -> CartLineItem:
    """Convert either historical cart payload shape into a CartLineItem.

    Flat items carry product fields at the top level (``_id``, ``title``...).
    Nested items keep them under ``productData`` with ``quantity`` and
    ``selectedSize`` alongside. An item-level ``price`` wins over the nested one.
    """
    if isinstance(raw, CartLineItem):
        return raw
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Unsupported cart item: {raw!r}")

    data = raw.get("productData") or raw
    product_id = (
        data.get("_id")
        or data.get("productId")
        or data.get("product_id")
        or raw.get("product")
        or raw.get("productId")
        or raw.get("_id")
    )
    if not product_id:
        raise ValidationError("Cart item is missing a product id")

    price = raw.get("price") if raw.get("price") is not None else data.get("price")
    images = data.get("images") or []
    return CartLineItem(
        product_id=str(product_id),
        title=data.get("title") or data.get("name") or "",
        price=to_decimal(price),
        shipping_cost=to_decimal(data.get("shipping") or data.get("shippingCost") or data.get("shipping_cost")),
        image=data.get("image") or (images[0] if images else None),
        stock=None if data.get("stock") is None else max(int(data["stock"]), 0),
        quantity=_raw_quantity(raw),
        selected_size=raw.get("selectedSize") or raw.get("selected_size") or data.get("selectedSize"),
        vendor=VendorRef.from_raw(data.get("vendor")),
    )


def normalize_items(raw_items: Optional[Iterable[RawItem]]) -> List[CartLineItem]:
    """Normalize a cart payload, dropping lines whose quantity fell below 1"""
    return [normalize_line_item(raw) for raw in raw_items or [] if _raw_quantity(raw) >= 1]


class CartStore:
    """Cart state holder reconciling with the remote cart service"""

    def __init__(
        self,
        session: Session,
        cart_service: CartServiceClient,
        notifier: Optional[NotificationSink] = None,
    ):
        self.session = session
        self.cart_service = cart_service
        self.notifier = notifier or LoggingNotificationSink()
        self.state = CartState()
        self._in_flight = 0
        self._last_request_id = 0
        self._applied_request_id = 0
        session.on_logout(self.handle_logout)

    # -- state access -------------------------------------------------

    def dispatch(self, action: Action) -> CartState:
        self.state = cart_reducer(self.state, action)
        return self.state

    @property
    def items(self) -> List[CartLineItem]:
        return self.state.items

    @property
    def loading(self) -> bool:
        return self.state.loading

    @property
    def error(self) -> Optional[str]:
        return self.state.error

    @property
    def cart_stats(self) -> CartStats:
        return CartStats.from_items(self.state.items)

    def get_cart_item(self, product_id: str) -> Optional[CartLineItem]:
        for item in self.state.items:
            if item.product_id == product_id:
                return item
        return None

    def is_in_cart(self, product_id: str) -> bool:
        return self.get_cart_item(product_id) is not None

    # -- remote reconciliation ----------------------------------------

    def _next_request_id(self) -> int:
        self._last_request_id += 1
        return self._last_request_id

    def _apply_server_items(self, request_id: int, raw_items: Iterable[RawItem]) -> bool:
        """Overwrite local items with the service's cart unless a newer answer was applied"""
        if request_id < self._applied_request_id:
            logger.warning(
                f"Discarding stale cart response #{request_id} "
                f"(already applied #{self._applied_request_id})"
            )
            return False
        self._applied_request_id = request_id
        self.dispatch(Action(CartAction.LOAD_CART, normalize_items(raw_items)))
        return True

    @asynccontextmanager
    async def _loading(self):
        self._in_flight += 1
        self.dispatch(Action(CartAction.SET_LOADING, True))
        try:
            yield
        finally:
            self._in_flight -= 1
            self.dispatch(Action(CartAction.SET_LOADING, self._in_flight > 0))

    def _report(self, exc: StorefrontError, fallback: str) -> None:
        message = getattr(exc, "message", None) or str(exc) or fallback
        self.dispatch(Action(CartAction.SET_ERROR, message))
        if isinstance(exc, AuthenticationRequired):
            self.notifier.show_error(message, title="Login Required", duration=3000)
        else:
            self.notifier.show_error(message)

    async def _sync(
        self,
        call: Callable[[], Awaitable[List[RawItem]]],
        failure_message: str,
    ) -> CartState:
        request_id = self._next_request_id()
        async with self._loading():
            try:
                raw_items = await call()
            except StorefrontError as e:
                logger.warning(f"Cart request #{request_id} failed: {type(e).__name__}: {e}")
                self._report(e, failure_message)
                raise
            self._apply_server_items(request_id, raw_items)
        return self.state

    # -- operations ---------------------------------------------------

    async def load_cart(self) -> CartState:
        """Fetch the server cart, e.g. right after login"""
        if not self.session.is_authenticated:
            return self.state
        return await self._sync(self.cart_service.get_cart, "Failed to load cart")

    async def add_item(
        self,
        product: Union[Product, Mapping[str, Any]],
        quantity: int = 1,
        selected_size: Optional[str] = None,
    ) -> CartState:
        product = Product.from_raw(product)

        if not self.session.is_authenticated:
            error = AuthenticationRequired()
            self._report(error, error.message)
            raise error

        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", {"quantity": "Quantity must be at least 1"})

        existing = self.get_cart_item(product.product_id)
        already_in_cart = existing.quantity if existing else 0
        try:
            ensure_in_stock(product, already_in_cart + quantity, selected_size)
        except (StockExceeded, ValidationError) as e:
            self._report(e, "Failed to add item to cart")
            raise

        state = await self._sync(
            lambda: self.cart_service.add_to_cart(product.product_id, quantity, selected_size),
            "Failed to add item to cart",
        )
        suffix = f" (x{quantity})" if quantity > 1 else ""
        self.notifier.show_success(f"{product.title}{suffix} added to cart!", title="Added to Cart")
        return state

    async def remove_item(self, product_id: str) -> CartState:
        if not self.session.is_authenticated:
            return self.dispatch(Action(CartAction.REMOVE_ITEM, product_id))
        return await self._sync(
            lambda: self.cart_service.remove_from_cart(product_id),
            "Failed to remove item from cart",
        )

    async def update_quantity(self, product_id: str, quantity: int) -> CartState:
        """Set a line's quantity; anything below 1 removes the line"""
        if quantity < 1:
            return await self.remove_item(product_id)

        if not self.session.is_authenticated:
            item = self.get_cart_item(product_id)
            if item is None:
                raise ProductNotFoundError(product_id, "Item not found in cart")
            if item.stock is not None and quantity > item.stock:
                error = StockExceeded(stock_message(item.stock), available=item.stock)
                self._report(error, error.message)
                raise error
            return self.dispatch(Action(CartAction.UPDATE_QUANTITY, (product_id, quantity)))

        return await self._sync(
            lambda: self.cart_service.update_cart_item(product_id, quantity),
            "Failed to update cart item",
        )

    async def clear_cart(self) -> CartState:
        if not self.session.is_authenticated:
            return self.dispatch(Action(CartAction.CLEAR_CART))
        return await self._sync(self.cart_service.clear_cart, "Failed to clear cart")

    def handle_logout(self) -> None:
        """Drop the cart so it can't leak to the next account on this device"""
        # Anything still in flight belongs to the old session
        self._applied_request_id = self._next_request_id()
        self.dispatch(Action(CartAction.CLEAR_CART))
        logger.info("Cart cleared on logout")
