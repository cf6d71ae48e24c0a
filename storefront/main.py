"""
FastAPI application exposing the Redis-backed cart service.

Routes mirror the REST contract ``HttpCartServiceClient`` speaks: every
cart response is ``{"success": true, "cart": {"items": [...]}}`` and every
failure is ``{"success": false, "message": ...}``.
"""
import logging
import time
from typing import Optional

from fastapi import Depends, FastAPI, Header
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from storefront.api_client import HttpProductCatalog
from storefront.cart_service import RedisCartService
from storefront.config import Config
from storefront.exceptions import (
    AuthenticationRequired,
    CartServiceError,
    LimitExceededError,
    ProductNotFoundError,
    StockExceeded,
    ValidationError,
)
from storefront.middleware import MetricsMiddleware
from storefront.models import AddToCartRequest, UpdateCartRequest
from storefront.redis_client import get_redis_client

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Storefront Cart API",
    description="Shopping cart service with Redis storage",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)

_cart_service: Optional[RedisCartService] = None


def get_cart_service() -> RedisCartService:
    """Get or create the cart service (singleton)"""
    global _cart_service
    if _cart_service is None:
        _cart_service = RedisCartService(HttpProductCatalog())
    return _cart_service


def current_user_id(user_id: Optional[str] = Header(None, alias="X-User-ID")) -> str:
    if not user_id or not user_id.strip():
        raise AuthenticationRequired("Authentication required")
    return user_id.strip()


def _cart_response(cart: dict, message: Optional[str] = None) -> dict:
    body = {"success": True, "cart": cart}
    if message:
        body["message"] = message
    return body


@app.get("/health")
async def health_check():
    """
    Health check endpoint.
    Always returns HTTP 200 while the application runs; Redis state is reported, not enforced.
    """
    redis_status = "healthy"
    redis_latency_ms = None

    try:
        redis_client = get_redis_client()
        ping_start = time.time()
        ping_result = redis_client.ping()
        redis_latency_ms = round((time.time() - ping_start) * 1000, 2)
        if not ping_result:
            redis_status = "unhealthy"
    except CartServiceError as e:
        logger.warning(f"Health check could not reach Redis: {e}")
        redis_status = "unhealthy"

    return JSONResponse(
        status_code=200,
        content={
            "status": "healthy",
            "service": Config.PROJECT_NAME,
            "redis": {
                "status": redis_status,
                "latency_ms": redis_latency_ms
            },
            "timestamp": time.time()
        }
    )


@app.get("/cart")
async def get_cart(
    user_id: str = Depends(current_user_id),
    cart_service: RedisCartService = Depends(get_cart_service),
):
    return _cart_response(cart_service.get_cart(user_id))


@app.post("/cart/add")
async def add_to_cart(
    request: AddToCartRequest,
    user_id: str = Depends(current_user_id),
    cart_service: RedisCartService = Depends(get_cart_service),
):
    cart = cart_service.add_item(user_id, request.product_id, request.quantity, request.selected_size)
    return _cart_response(cart, "Item added to cart")


@app.put("/cart/update")
async def update_cart_item(
    request: UpdateCartRequest,
    user_id: str = Depends(current_user_id),
    cart_service: RedisCartService = Depends(get_cart_service),
):
    cart = cart_service.update_quantity(user_id, request.product_id, request.quantity)
    return _cart_response(cart, "Cart updated")


@app.delete("/cart/remove/{product_id}")
async def remove_from_cart(
    product_id: str,
    user_id: str = Depends(current_user_id),
    cart_service: RedisCartService = Depends(get_cart_service),
):
    return _cart_response(cart_service.remove_item(user_id, product_id), "Item removed from cart")


@app.delete("/cart/clear")
async def clear_cart(
    user_id: str = Depends(current_user_id),
    cart_service: RedisCartService = Depends(get_cart_service),
):
    return _cart_response(cart_service.clear_cart(user_id), "Cart cleared")


# Error handlers
def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message, **extra})


@app.exception_handler(AuthenticationRequired)
async def authentication_error_handler(request, exc):
    return _error(401, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request, exc):
    first = exc.errors()[0] if exc.errors() else {}
    field = ".".join(str(part) for part in first.get("loc", ())[1:])
    message = f"{field}: {first.get('msg')}" if field else "Invalid request"
    return _error(400, message)


@app.exception_handler(StockExceeded)
async def stock_error_handler(request, exc):
    return _error(400, exc.message, availableStock=exc.available)


@app.exception_handler(ValidationError)
async def validation_error_handler(request, exc):
    return _error(400, exc.message, errors=exc.errors)


@app.exception_handler(LimitExceededError)
async def limit_error_handler(request, exc):
    return _error(400, exc.message)


@app.exception_handler(ProductNotFoundError)
async def product_not_found_handler(request, exc):
    return _error(404, str(exc))


@app.exception_handler(CartServiceError)
async def cart_service_error_handler(request, exc):
    logger.error(f"Cart service unavailable: {exc}")
    return _error(503, "Service unavailable")


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(
        f"Unhandled exception: {type(exc).__name__}: {exc}",
        exc_info=True
    )
    return _error(500, "Internal server error")


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=Config.APP_PORT)
