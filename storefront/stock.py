"""
Stock checks for cart quantities, overall or per size.
"""
from dataclasses import dataclass
from typing import List, Optional

from storefront.exceptions import StockExceeded, ValidationError
from storefront.models import Product


@dataclass(frozen=True)
class StockCheck:
    ok: bool
    available: Optional[int]
    requested: int
    message: Optional[str] = None


def stock_message(available: int) -> str:
    return f"Only {available} items available in stock"


def requires_size(product: Product) -> bool:
    """Size-variant products can only be added with a size selected"""
    return product.has_sizes


def in_stock_sizes(product: Product) -> List[str]:
    """Declared sizes that still have stock, in declared order"""
    return [size for size in product.available_sizes if product.size_stock.get(size, 0) > 0]


def available_stock(product: Product, selected_size: Optional[str] = None) -> Optional[int]:
    """Units on hand, or None when the catalog does not track stock"""
    if selected_size and product.has_sizes:
        return max(product.size_stock.get(selected_size, 0), 0)
    if product.stock is None:
        return None
    return max(product.stock, 0)


def check_stock(product: Product, requested: int, selected_size: Optional[str] = None) -> StockCheck:
    available = available_stock(product, selected_size)
    if available is None or requested <= available:
        return StockCheck(ok=True, available=available, requested=requested)
    return StockCheck(
        ok=False,
        available=available,
        requested=requested,
        message=stock_message(available),
    )


def ensure_in_stock(product: Product, requested: int, selected_size: Optional[str] = None) -> None:
    """Raise StockExceeded (or ValidationError for a missing size) when the request can't be met"""
    if requires_size(product):
        if not selected_size:
            raise ValidationError("Please select a size", {"selected_size": "Please select a size"})
        if selected_size not in product.available_sizes:
            raise ValidationError(
                f"Size {selected_size} is not available",
                {"selected_size": f"Size {selected_size} is not available"},
            )

    result = check_stock(product, requested, selected_size)
    if not result.ok:
        raise StockExceeded(result.message, available=result.available)
