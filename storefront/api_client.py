"""
HTTP clients for the backend collaborators: cart service, order service and
product catalog.

Timeouts are whatever ``Config.HTTP_TIMEOUT_SECONDS`` gives the httpx client;
there is no retry policy at this level.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx

from storefront.cache import ReadThroughCache
from storefront.config import Config
from storefront.exceptions import (
    AuthenticationRequired,
    CartServiceError,
    ProductNotFoundError,
    StockExceeded,
    StorefrontError,
    SubmissionFailed,
)
from storefront.models import Product
from storefront.session import Session

logger = logging.getLogger(__name__)


def _json_body(response: httpx.Response) -> Dict[str, Any]:
    try:
        body = response.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


class CartServiceClient(ABC):
    """Remote cart contract. Every mutating call returns the full resulting cart."""

    @abstractmethod
    async def get_cart(self) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def add_to_cart(
        self, product_id: str, quantity: int, selected_size: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def remove_from_cart(self, product_id: str) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def update_cart_item(self, product_id: str, quantity: int) -> List[Dict[str, Any]]:
        ...

    @abstractmethod
    async def clear_cart(self) -> List[Dict[str, Any]]:
        ...


class OrderServiceClient(ABC):
    """Remote order contract"""

    @abstractmethod
    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create an order; the response carries ``orderNumber`` and ``order``"""
        ...


class ProductCatalog(ABC):
    """Read access to catalog products"""

    @abstractmethod
    def get_product(self, product_id: str) -> Product:
        ...


class ApiClient:
    """Thin async wrapper around httpx that maps HTTP failures to storefront errors"""

    default_error = "Request failed"

    def __init__(
        self,
        session: Session,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.session = session
        self._client = httpx.AsyncClient(
            base_url=base_url or Config.API_BASE_URL,
            timeout=timeout if timeout is not None else Config.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    async def request(self, method: str, path: str, json: Optional[dict] = None) -> Dict[str, Any]:
        try:
            response = await self._client.request(
                method, path, json=json, headers=self.session.auth_headers()
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {type(e).__name__}: {e}")
            raise self.network_error(e) from e

        body = _json_body(response)
        if response.is_success:
            return body

        message = body.get("message") or self.default_error
        if response.status_code == 401:
            raise AuthenticationRequired()
        raise self.error_for(response.status_code, message, body)

    def network_error(self, exc: httpx.HTTPError) -> StorefrontError:
        return CartServiceError(f"{self.default_error}: {exc}")

    def error_for(self, status_code: int, message: str, body: Dict[str, Any]) -> StorefrontError:
        return CartServiceError(message)

    async def aclose(self) -> None:
        await self._client.aclose()


class HttpCartServiceClient(ApiClient, CartServiceClient):
    """Cart service over REST (``/cart`` endpoints)"""

    default_error = "Cart request failed"

    def error_for(self, status_code: int, message: str, body: Dict[str, Any]) -> StorefrontError:
        # Stock rejections are surfaced verbatim
        if status_code == 400 and "stock" in message.lower():
            return StockExceeded(message, available=body.get("availableStock"))
        return CartServiceError(message)

    @staticmethod
    def _items(body: Dict[str, Any]) -> List[Dict[str, Any]]:
        cart = body.get("cart") or {}
        return list(cart.get("items") or [])

    async def get_cart(self) -> List[Dict[str, Any]]:
        return self._items(await self.request("GET", "/cart"))

    async def add_to_cart(
        self, product_id: str, quantity: int, selected_size: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        payload = {"productId": product_id, "quantity": quantity}
        if selected_size:
            payload["selectedSize"] = selected_size
        return self._items(await self.request("POST", "/cart/add", json=payload))

    async def remove_from_cart(self, product_id: str) -> List[Dict[str, Any]]:
        return self._items(await self.request("DELETE", f"/cart/remove/{product_id}"))

    async def update_cart_item(self, product_id: str, quantity: int) -> List[Dict[str, Any]]:
        payload = {"productId": product_id, "quantity": quantity}
        return self._items(await self.request("PUT", "/cart/update", json=payload))

    async def clear_cart(self) -> List[Dict[str, Any]]:
        return self._items(await self.request("DELETE", "/cart/clear"))


class HttpOrderServiceClient(ApiClient, OrderServiceClient):
    """Order service over REST (``POST /orders``)"""

    default_error = "Failed to place order"

    def network_error(self, exc: httpx.HTTPError) -> StorefrontError:
        return SubmissionFailed(f"{self.default_error}: {exc}")

    def error_for(self, status_code: int, message: str, body: Dict[str, Any]) -> StorefrontError:
        return SubmissionFailed(message, status_code=status_code)

    async def create_order(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self.request("POST", "/orders", json=payload)


class HttpProductCatalog(ProductCatalog):
    """Catalog lookups with a read-through cache owned by this client"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        cache: Optional[ReadThroughCache] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.cache = cache or ReadThroughCache(Config.PRODUCT_CACHE_TTL_SECONDS)
        self._client = httpx.Client(
            base_url=base_url or Config.API_BASE_URL,
            timeout=timeout if timeout is not None else Config.HTTP_TIMEOUT_SECONDS,
            transport=transport,
        )

    def _fetch(self, product_id: str) -> Product:
        try:
            response = self._client.get(f"/products/{product_id}")
        except httpx.HTTPError as e:
            raise CartServiceError(f"Catalog unavailable: {e}") from e

        if response.status_code == 404:
            raise ProductNotFoundError(product_id)
        if not response.is_success:
            raise CartServiceError(f"Catalog request failed with status {response.status_code}")

        body = _json_body(response)
        return Product.from_raw(body.get("product") or body)

    def get_product(self, product_id: str) -> Product:
        return self.cache.get_or_load(product_id, lambda: self._fetch(product_id))

    def close(self) -> None:
        self._client.close()
