"""
Cart analysis: split cart contents by who fulfils them.

Items without a vendor are shipped by the platform's own warehouse; vendor
items are grouped per vendor. The result drives the order type shown at
checkout and the notice warning shoppers that a mixed order may arrive in
several shipments.
"""
from typing import Dict, Iterable, List

from storefront.cart_store import RawItem, normalize_items
from storefront.models import (
    BreakdownLine,
    CartAnalysis,
    CartLineItem,
    OrderNotification,
    OrderType,
    VendorGroup,
)

MIXED_ORDER_TITLE = "Multi-Vendor Order Notice"
MIXED_ORDER_MESSAGE = "Your order contains items from different suppliers and will be handled as follows:"
MIXED_ORDER_WARNING = (
    "Important: Items may be shipped separately and arrive at different times. "
    "You'll receive tracking information for each shipment."
)

DELIVERY_ESTIMATES = {
    OrderType.ADMIN_ONLY: "Standard delivery: 3-5 business days",
    OrderType.VENDOR_ONLY: "Vendor delivery: 5-7 business days",
    OrderType.MIXED: "Mixed delivery: Items will arrive at different times (3-7 business days)",
}

DISPLAY_NAMES = {
    OrderType.ADMIN_ONLY: "Warehouse Order",
    OrderType.VENDOR_ONLY: "Vendor Order",
    OrderType.MIXED: "Multi-Vendor Order",
}


def place_order_label(order_type: OrderType) -> str:
    return "Place Multi-Vendor Order" if order_type is OrderType.MIXED else "Place Order"


def _order_type(platform_items: List[CartLineItem], vendor_groups: List[VendorGroup]) -> OrderType:
    if platform_items and vendor_groups:
        return OrderType.MIXED
    if len(vendor_groups) > 1:
        return OrderType.MIXED
    if len(vendor_groups) == 1:
        return OrderType.VENDOR_ONLY
    return OrderType.ADMIN_ONLY


def _mixed_order_notification(
    platform_items: List[CartLineItem], vendor_groups: List[VendorGroup]
) -> OrderNotification:
    breakdown = []
    if platform_items:
        breakdown.append(
            BreakdownLine(kind="platform", text=f"{len(platform_items)} items handled by our warehouse")
        )
    for group in vendor_groups:
        breakdown.append(
            BreakdownLine(kind="vendor", text=f"{len(group.items)} items from {group.vendor_name}")
        )
    return OrderNotification(
        title=MIXED_ORDER_TITLE,
        message=MIXED_ORDER_MESSAGE,
        breakdown=breakdown,
        warning=MIXED_ORDER_WARNING,
        button_text=place_order_label(OrderType.MIXED),
    )


def analyze_cart(items: Iterable[RawItem]) -> CartAnalysis:
    """Classify cart items by fulfilment owner.

    Accepts CartLineItems or raw cart payload items (flat or nested
    ``productData``). Pure and deterministic: the same input always gives
    an equal CartAnalysis.
    """
    line_items = normalize_items(items)
    if not line_items:
        return CartAnalysis(order_type=OrderType.EMPTY)

    platform_items: List[CartLineItem] = []
    groups: Dict[str, VendorGroup] = {}
    for item in line_items:
        if not item.is_vendor_fulfilled:
            platform_items.append(item)
            continue
        group = groups.get(item.vendor.id)
        if group is None:
            group = groups[item.vendor.id] = VendorGroup(
                vendor_id=item.vendor.id, vendor_name=item.vendor.display_name
            )
        group.items.append(item)

    vendor_groups = list(groups.values())
    order_type = _order_type(platform_items, vendor_groups)
    notification = None
    if order_type is OrderType.MIXED:
        notification = _mixed_order_notification(platform_items, vendor_groups)

    return CartAnalysis(
        order_type=order_type,
        platform_items=platform_items,
        vendor_groups=vendor_groups,
        total_vendors=len(vendor_groups),
        notification=notification,
    )


def should_show_delivery_notification(analysis: CartAnalysis) -> bool:
    return analysis.order_type is OrderType.MIXED and analysis.total_vendors > 0


def generate_delivery_estimate(analysis: CartAnalysis) -> str:
    return DELIVERY_ESTIMATES.get(
        analysis.order_type, "Delivery time will be confirmed after order placement"
    )


def get_order_type_display_name(order_type: OrderType) -> str:
    return DISPLAY_NAMES.get(order_type, "Standard Order")
