"""
Buy-now snapshot: a single item sent straight to checkout, bypassing the cart.

Product pages write the snapshot; the checkout entry point reads it as an
alternative to the cart contents.
"""
import logging
from typing import Optional

from pydantic import ValidationError as ModelValidationError

from storefront.config import Config
from storefront.models import BuyNowSnapshot, CartLineItem
from storefront.redis_client import RedisClient

logger = logging.getLogger(__name__)


class BuyNowStore:
    """Redis-backed buy-now snapshot for one shopper"""

    def __init__(self, redis_client: RedisClient, owner_id: str, ttl: Optional[int] = None):
        self.redis = redis_client
        self.owner_id = owner_id
        self.ttl = ttl or Config.BUY_NOW_TTL_SECONDS

    @property
    def key(self) -> str:
        return f"buy_now:{self.owner_id}"

    def save(self, item: CartLineItem) -> BuyNowSnapshot:
        snapshot = BuyNowSnapshot(item=item)
        self.redis.set(self.key, snapshot.model_dump_json(by_alias=True), ex=self.ttl)
        return snapshot

    def load(self) -> Optional[BuyNowSnapshot]:
        raw = self.redis.get(self.key)
        if not raw:
            return None
        try:
            return BuyNowSnapshot.model_validate_json(raw)
        except ModelValidationError as e:
            # A snapshot written by an older release; drop it
            logger.warning(f"Discarding unreadable buy-now snapshot: {e}")
            self.clear()
            return None

    def clear(self) -> None:
        self.redis.delete(self.key)
