"""
Pydantic models for cart state, cart analysis, checkout forms and order payloads.

Python attributes are snake_case; the REST payloads exchanged with the
cart and order services are camelCase, hence the alias generator.
"""
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer
from pydantic.alias_generators import to_camel

from storefront.exceptions import ValidationError

# Money is kept exact in Python and emitted as a JSON number on the wire
Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

UNKNOWN_VENDOR_NAME = "Unknown Vendor"


def to_decimal(value: Any, default: str = "0") -> Decimal:
    """Coerce a price-like value to Decimal, falling back to ``default``"""
    if value is None or value == "":
        return Decimal(default)
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal(default)


class WireModel(BaseModel):
    """Base model accepting both snake_case and camelCase field names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VendorRef(WireModel):
    """Third-party seller owning a product"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    display_name: str = UNKNOWN_VENDOR_NAME

    @classmethod
    def from_raw(cls, raw: Any) -> Optional["VendorRef"]:
        """Build from a populated vendor document or a bare vendor id.

        Returns None when the vendor carries no id, which marks the
        product as platform-fulfilled.
        """
        if raw is None:
            return None
        if isinstance(raw, VendorRef):
            return raw
        if isinstance(raw, str):
            return cls(id=raw) if raw else None
        if isinstance(raw, Mapping):
            vendor_id = raw.get("_id") or raw.get("id")
            if not vendor_id:
                return None
            name = (
                raw.get("businessName")
                or raw.get("displayName")
                or raw.get("display_name")
                or raw.get("name")
                or UNKNOWN_VENDOR_NAME
            )
            return cls(id=str(vendor_id), display_name=name)
        return None


class Product(WireModel):
    """Catalog product as needed by the cart (subset of the catalog document)"""
    product_id: str
    title: str = ""
    price: Money = Field(Decimal("0"), ge=0)
    shipping_cost: Money = Field(Decimal("0"), ge=0)
    image: Optional[str] = None
    # None when the catalog does not track stock for the product
    stock: Optional[int] = Field(None, ge=0)
    available_sizes: List[str] = Field(default_factory=list)
    size_stock: Dict[str, int] = Field(default_factory=dict)
    vendor: Optional[VendorRef] = None

    @property
    def has_sizes(self) -> bool:
        return bool(self.available_sizes)

    @classmethod
    def from_raw(cls, raw: Any) -> "Product":
        """Parse a catalog document (``_id``/``name``/``images`` variants tolerated)"""
        if isinstance(raw, Product):
            return raw
        product_id = raw.get("_id") or raw.get("productId") or raw.get("product_id") or raw.get("id")
        if not product_id:
            raise ValidationError("Product is missing an id")
        images = raw.get("images") or []
        return cls(
            product_id=str(product_id),
            title=raw.get("title") or raw.get("name") or "",
            price=to_decimal(raw.get("price")),
            shipping_cost=to_decimal(raw.get("shipping") or raw.get("shippingCost")),
            image=raw.get("image") or (images[0] if images else None),
            stock=None if raw.get("stock") is None else max(int(raw["stock"]), 0),
            available_sizes=list(raw.get("availableSizes") or raw.get("available_sizes") or []),
            size_stock={k: int(v or 0) for k, v in (raw.get("sizeStock") or raw.get("size_stock") or {}).items()},
            vendor=VendorRef.from_raw(raw.get("vendor")),
        )


class CartLineItem(WireModel):
    """One cart entry: a product (plus optional size) and its quantity"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    product_id: str
    title: str = ""
    price: Money = Field(Decimal("0"), ge=0)
    shipping_cost: Money = Field(Decimal("0"), ge=0)
    image: Optional[str] = None
    stock: Optional[int] = Field(None, ge=0)
    quantity: int = Field(1, ge=1)
    selected_size: Optional[str] = None
    vendor: Optional[VendorRef] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity

    @property
    def is_vendor_fulfilled(self) -> bool:
        return self.vendor is not None and bool(self.vendor.id)

    @classmethod
    def from_product(
        cls,
        product: Product,
        quantity: int = 1,
        selected_size: Optional[str] = None,
    ) -> "CartLineItem":
        stock = product.size_stock.get(selected_size, 0) if selected_size and product.has_sizes else product.stock
        return cls(
            product_id=product.product_id,
            title=product.title,
            price=product.price,
            shipping_cost=product.shipping_cost,
            image=product.image,
            stock=stock,
            quantity=quantity,
            selected_size=selected_size,
            vendor=product.vendor,
        )


class CartState(BaseModel):
    """Cart contents plus transient UI-facing fields"""
    items: List[CartLineItem] = Field(default_factory=list)
    loading: bool = False
    error: Optional[str] = None


class CartStats(BaseModel):
    """Derived cart totals"""
    items: List[CartLineItem] = Field(default_factory=list)
    total_items: int = 0
    total_price: Money = Decimal("0")
    item_count: int = 0
    is_empty: bool = True

    @classmethod
    def from_items(cls, items: List[CartLineItem]) -> "CartStats":
        return cls(
            items=list(items),
            total_items=sum(item.quantity for item in items),
            total_price=sum((item.line_total for item in items), Decimal("0")),
            item_count=len(items),
            is_empty=not items,
        )


class OrderType(str, Enum):
    EMPTY = "empty"
    ADMIN_ONLY = "admin_only"
    VENDOR_ONLY = "vendor_only"
    MIXED = "mixed"


class VendorGroup(BaseModel):
    vendor_id: str
    vendor_name: str
    items: List[CartLineItem] = Field(default_factory=list)


class BreakdownLine(BaseModel):
    kind: str  # "platform" or "vendor"
    text: str


class OrderNotification(BaseModel):
    """Delivery notice shown before placing a mixed order"""
    type: str = "mixed_order"
    title: str
    message: str
    breakdown: List[BreakdownLine] = Field(default_factory=list)
    warning: str
    button_text: str


class CartAnalysis(BaseModel):
    order_type: OrderType
    platform_items: List[CartLineItem] = Field(default_factory=list)
    vendor_groups: List[VendorGroup] = Field(default_factory=list)
    total_vendors: int = 0
    notification: Optional[OrderNotification] = None


class PaymentMethod(str, Enum):
    CARD = "card"
    BANK = "bank"
    WALLET = "wallet"
    CASH = "cash"


class WalletProvider(str, Enum):
    JAZZCASH = "jazzcash"
    EASYPAISA = "easypaisa"


class CustomerInfo(WireModel):
    name: str = ""
    email: str = ""
    phone: str = ""


class ShippingAddress(WireModel):
    street: str = ""
    city: str = ""
    state: str = ""
    zip_code: str = ""
    country: str = ""


class CardDetails(WireModel):
    card_number: str = ""
    card_holder_name: str = ""
    expiry_month: str = ""
    expiry_year: str = ""
    cvv: str = ""


class BankDetails(WireModel):
    bank_name: str = ""
    account_number: str = ""
    account_holder_name: str = ""
    routing_number: str = ""


class WalletDetails(WireModel):
    provider: WalletProvider = WalletProvider.JAZZCASH
    wallet_number: str = ""
    wallet_pin: str = ""


class CheckoutForm(WireModel):
    """Everything the shopper types during checkout; lives in memory only"""
    customer: CustomerInfo = Field(default_factory=CustomerInfo)
    address: ShippingAddress = Field(default_factory=ShippingAddress)
    payment_method: PaymentMethod = PaymentMethod.CASH
    card: CardDetails = Field(default_factory=CardDetails)
    bank: BankDetails = Field(default_factory=BankDetails)
    wallet: WalletDetails = Field(default_factory=WalletDetails)


class PaymentData(WireModel):
    """Method-specific payment payload handed to the gateway"""
    method: PaymentMethod
    card: Optional[CardDetails] = None
    bank: Optional[BankDetails] = None
    wallet: Optional[WalletDetails] = None


class OrderItem(WireModel):
    product_id: str
    name: str
    price: Money
    quantity: int
    image: Optional[str] = None
    selected_size: Optional[str] = None
    vendor: Optional[str] = None
    handled_by: str = "admin"
    handler_name: Optional[str] = None


class PaymentInfo(WireModel):
    method: PaymentMethod
    transaction_id: Optional[str] = None
    payment_status: Optional[str] = None


class OrderTotals(WireModel):
    subtotal: Money = Decimal("0")
    shipping: Money = Decimal("0")
    tax: Money = Decimal("0")
    total: Money = Decimal("0")


class VendorBreakdown(WireModel):
    platform_items: int = 0
    vendor_groups: int = 0
    total_vendors: int = 0


class OrderSubmission(WireModel):
    """Order payload sent once to the order service"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: Optional[str] = None
    items: List[OrderItem]
    customer_info: CustomerInfo
    shipping_info: ShippingAddress
    payment_info: PaymentInfo
    totals: OrderTotals
    order_type: OrderType
    order_type_display: str
    vendor_breakdown: VendorBreakdown

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class SessionUser(WireModel):
    id: str
    name: str = ""
    email: str = ""
    phone: str = ""
    address: Optional[ShippingAddress] = None


class BuyNowSnapshot(WireModel):
    """Single item a shopper sends straight to checkout, skipping the cart"""
    item: CartLineItem
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AddToCartRequest(WireModel):
    """Body of ``POST /cart/add``"""
    product_id: str = Field(..., min_length=1)
    quantity: int = 1
    selected_size: Optional[str] = None


class UpdateCartRequest(WireModel):
    """Body of ``PUT /cart/update``"""
    product_id: str = Field(..., min_length=1)
    quantity: int
