"""Tests for overall and per-size stock checks."""

import pytest

from conftest import platform_product, sized_product
from storefront.exceptions import StockExceeded, ValidationError
from storefront.stock import (
    available_stock,
    check_stock,
    ensure_in_stock,
    in_stock_sizes,
    requires_size,
    stock_message,
)


class TestAvailableStock:
    def test_plain_product_uses_overall_stock(self):
        assert available_stock(platform_product(stock=4)) == 4

    def test_sized_product_uses_size_stock(self):
        product = sized_product()
        assert available_stock(product, "40") == 2
        assert available_stock(product, "42") == 7

    def test_unknown_size_has_no_stock(self):
        assert available_stock(sized_product(), "45") == 0

    def test_in_stock_sizes_skip_sold_out(self):
        assert in_stock_sizes(sized_product()) == ["40", "42"]

    def test_requires_size(self):
        assert requires_size(sized_product())
        assert not requires_size(platform_product())


    def test_untracked_stock_is_none(self):
        assert available_stock(platform_product(stock=None)) is None

class TestCheckStock:
    def test_within_stock(self):
        result = check_stock(platform_product(stock=3), 3)
        assert result.ok
        assert result.message is None

    def test_over_stock_reports_available(self):
        result = check_stock(platform_product(stock=3), 4)
        assert not result.ok
        assert result.available == 3
        assert result.message == "Only 3 items available in stock"

    def test_untracked_stock_always_passes(self):
        result = check_stock(platform_product(stock=None), 1000)
        assert result.ok
        assert result.available is None

    def test_message_format(self):
        assert stock_message(0) == "Only 0 items available in stock"


class TestEnsureInStock:
    def test_passes_when_available(self):
        ensure_in_stock(platform_product(stock=2), 2)

    def test_raises_stock_exceeded(self):
        with pytest.raises(StockExceeded) as excinfo:
            ensure_in_stock(platform_product(stock=2), 3)
        assert excinfo.value.available == 2

    def test_size_required(self):
        with pytest.raises(ValidationError) as excinfo:
            ensure_in_stock(sized_product(), 1)
        assert "selected_size" in excinfo.value.errors

    def test_undeclared_size_rejected(self):
        with pytest.raises(ValidationError):
            ensure_in_stock(sized_product(), 1, "39")

    def test_sold_out_size(self):
        with pytest.raises(StockExceeded):
            ensure_in_stock(sized_product(), 1, "41")
