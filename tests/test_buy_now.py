"""Tests for the buy-now snapshot store."""

from conftest import FakeRedis, vendor_product
from storefront.buy_now import BuyNowStore
from storefront.models import CartLineItem


class TestBuyNowStore:
    def test_save_and_load(self):
        redis = FakeRedis()
        store = BuyNowStore(redis, "user-1", ttl=120)
        item = CartLineItem.from_product(vendor_product(), 2)
        store.save(item)

        snapshot = store.load()
        assert snapshot.item == item
        assert redis.ttls["buy_now:user-1"] == 120

    def test_load_without_snapshot(self):
        assert BuyNowStore(FakeRedis(), "user-1").load() is None

    def test_unreadable_snapshot_is_dropped(self):
        redis = FakeRedis()
        redis.set("buy_now:user-1", '{"item": {"title": "no id"}}')
        store = BuyNowStore(redis, "user-1")
        assert store.load() is None
        assert redis.get("buy_now:user-1") is None

    def test_snapshots_are_per_owner(self):
        redis = FakeRedis()
        BuyNowStore(redis, "user-1").save(CartLineItem.from_product(vendor_product(), 1))
        assert BuyNowStore(redis, "user-2").load() is None
