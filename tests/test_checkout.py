"""Tests for the checkout wizard and order submission."""

from decimal import Decimal

import pytest

from conftest import FakeRedis, platform_product, run, vendor_product
from storefront.buy_now import BuyNowStore
from storefront.checkout import (
    CASH_ONLY_MESSAGE,
    CheckoutOrchestrator,
    CheckoutStatus,
    CheckoutStep,
)
from storefront.exceptions import PaymentDeclined, SubmissionFailed, ValidationError
from storefront.models import CartLineItem, OrderType, PaymentMethod
from storefront.payment_gateway import PaymentGateway
from storefront.payment_simulator import SimulatedPaymentGateway

ALL_METHODS = ("card", "bank", "wallet", "cash")


class BrokenGateway(PaymentGateway):
    def __init__(self):
        self.broken = True
        self.fallback = SimulatedPaymentGateway(card_success_rate=1.0, bank_success_rate=1.0)

    def process_payment(self, payment_data, amount):
        if self.broken:
            raise RuntimeError("gateway timed out")
        return self.fallback.process_payment(payment_data, amount)


def start(store, session, order_service, **kwargs):
    kwargs.setdefault("gateway", SimulatedPaymentGateway(card_success_rate=1.0, bank_success_rate=1.0))
    return CheckoutOrchestrator.start(store, session, order_service, **kwargs)


def walk_to_review(checkout):
    while checkout.step is not CheckoutStep.REVIEW:
        assert checkout.next_step(), checkout.errors


def use_card(checkout, number="4111111111111111"):
    checkout.form.payment_method = PaymentMethod.CARD
    card = checkout.form.card
    card.card_number = number
    card.card_holder_name = "Ayesha Khan"
    card.expiry_month = "12"
    card.expiry_year = "2035"
    card.cvv = "123"


class TestStart:
    def test_empty_cart_cannot_start(self, store, session, order_service):
        with pytest.raises(ValidationError) as excinfo:
            start(store, session, order_service)
        assert "cart" in excinfo.value.errors

    def test_form_prefilled_from_profile(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        assert checkout.form.customer.email == "ayesha@example.com"
        assert checkout.form.address.city == "Lahore"
        assert checkout.form.address.country == "Pakistan"
        assert checkout.step is CheckoutStep.CUSTOMER_INFO
        assert checkout.source == "cart"


class TestNavigation:
    def test_invalid_step_blocks_advance(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        checkout.form.customer.email = "not-an-email"
        assert not checkout.next_step()
        assert checkout.step is CheckoutStep.CUSTOMER_INFO
        assert checkout.errors == {"email": "Email format is invalid"}

    def test_previous_step_never_validates(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        assert checkout.next_step()
        checkout.form.customer.name = ""
        assert checkout.previous_step() is CheckoutStep.CUSTOMER_INFO
        assert checkout.previous_step() is CheckoutStep.CUSTOMER_INFO

    def test_address_requires_all_fields(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        checkout.form.address.zip_code = ""
        assert checkout.next_step()
        assert not checkout.next_step()
        assert checkout.errors == {"zip_code": "ZIP code is required"}

    def test_disabled_method_coerced_to_cash(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service, enabled_methods=("cash",))
        checkout.next_step()
        checkout.next_step()
        use_card(checkout)
        assert not checkout.next_step()
        assert checkout.errors == {"payment_method": CASH_ONLY_MESSAGE}
        assert checkout.form.payment_method is PaymentMethod.CASH
        assert checkout.next_step()

    def test_enabled_card_fields_validated(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service, enabled_methods=ALL_METHODS)
        checkout.next_step()
        checkout.next_step()
        use_card(checkout, number="4111111111111112")
        checkout.form.card.cvv = "12"
        assert not checkout.next_step()
        assert set(checkout.errors) == {"card_number", "cvv"}


class TestSubmitOrder:
    def test_cash_order_end_to_end(self, store, session, cart_service, order_service, notifier):
        run(store.add_item(platform_product(), 2))
        gateway = SimulatedPaymentGateway()
        checkout = start(store, session, order_service, gateway=gateway)
        walk_to_review(checkout)

        confirmation = run(checkout.submit_order())

        assert confirmation.order_number == "IT-000123"
        assert confirmation.path == "/order-confirmation/IT-000123"
        assert not confirmation.placeholder
        assert checkout.status is CheckoutStatus.SUBMITTED
        assert gateway.calls == []
        assert store.items == []
        assert cart_service.calls[-1] == ("clear_cart",)

        [payload] = order_service.payloads
        assert payload["userId"] == "user-1"
        assert payload["orderType"] == "admin_only"
        assert payload["orderTypeDisplay"] == "Warehouse Order"
        assert payload["totals"] == {"subtotal": 200.0, "shipping": 0.0, "tax": 0.0, "total": 200.0}
        assert payload["paymentInfo"] == {"method": "cash"}
        assert payload["items"][0]["handledBy"] == "admin"
        assert "vendor" not in payload["items"][0]
        assert "Order placed successfully" in notifier.messages("success")

    def test_mixed_order_payload(self, store, session, order_service):
        run(store.add_item(platform_product()))
        run(store.add_item(vendor_product(), 2))
        checkout = start(store, session, order_service)
        assert checkout.analysis.order_type is OrderType.MIXED
        walk_to_review(checkout)
        run(checkout.submit_order())

        [payload] = order_service.payloads
        handled = {item["productId"]: (item["handledBy"], item.get("vendor")) for item in payload["items"]}
        assert handled == {"p-100": ("admin", None), "p-200": ("vendor", "v-1")}
        handlers = {item["productId"]: item["handlerName"] for item in payload["items"]}
        assert handlers == {"p-100": "International Tijarat", "p-200": "Acme Crafts"}
        assert payload["vendorBreakdown"] == {"platformItems": 1, "vendorGroups": 1, "totalVendors": 1}
        assert payload["totals"]["total"] == 200.0

    def test_session_email_overrides_form(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        checkout.form.customer.email = "typed@example.org"
        walk_to_review(checkout)
        run(checkout.submit_order())
        assert order_service.payloads[0]["customerInfo"]["email"] == "ayesha@example.com"

    def test_card_payment_recorded_on_order(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service, enabled_methods=ALL_METHODS)
        use_card(checkout)
        walk_to_review(checkout)
        confirmation = run(checkout.submit_order())

        payment_info = order_service.payloads[0]["paymentInfo"]
        assert payment_info["method"] == "card"
        assert payment_info["paymentStatus"] == "completed"
        assert payment_info["transactionId"] == confirmation.payment_result.transaction_id

    def test_declined_payment_creates_no_order(self, store, session, order_service, notifier):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service, enabled_methods=ALL_METHODS)
        use_card(checkout, number="4000000000000002")
        walk_to_review(checkout)

        with pytest.raises(PaymentDeclined) as excinfo:
            run(checkout.submit_order())

        assert excinfo.value.reason == "card_declined"
        assert order_service.payloads == []
        assert len(store.items) == 1
        assert checkout.status is CheckoutStatus.IN_PROGRESS
        assert checkout.step is CheckoutStep.REVIEW
        assert notifier.notifications[-1].title == "Payment Failed"

    def test_order_service_failure_keeps_cart_and_allows_retry(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        walk_to_review(checkout)
        order_service.fail_with = SubmissionFailed("Order service unavailable", status_code=503)

        with pytest.raises(SubmissionFailed):
            run(checkout.submit_order())
        assert len(store.items) == 1
        assert checkout.status is CheckoutStatus.IN_PROGRESS

        order_service.fail_with = None
        run(checkout.submit_order())
        assert store.items == []
        assert len(order_service.payloads) == 2

    def test_unexpected_order_service_error_allows_retry(self, store, session, order_service, notifier):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        walk_to_review(checkout)
        order_service.fail_with = ConnectionError("network down")

        with pytest.raises(SubmissionFailed, match="network down"):
            run(checkout.submit_order())
        assert checkout.status is CheckoutStatus.IN_PROGRESS
        assert checkout.step is CheckoutStep.REVIEW
        assert len(store.items) == 1
        assert notifier.notifications[-1].title == "Order Failed"

        order_service.fail_with = None
        assert run(checkout.submit_order()).order_number == "IT-000123"
        assert checkout.status is CheckoutStatus.SUBMITTED

    def test_gateway_crash_allows_retry(self, store, session, order_service, notifier):
        run(store.add_item(platform_product()))
        gateway = BrokenGateway()
        checkout = start(store, session, order_service, gateway=gateway, enabled_methods=ALL_METHODS)
        use_card(checkout)
        walk_to_review(checkout)

        with pytest.raises(SubmissionFailed):
            run(checkout.submit_order())
        assert order_service.payloads == []
        assert checkout.status is CheckoutStatus.IN_PROGRESS
        assert notifier.notifications[-1].title == "Payment Failed"

        gateway.broken = False
        run(checkout.submit_order())
        assert checkout.status is CheckoutStatus.SUBMITTED
        assert len(order_service.payloads) == 1

    def test_missing_order_number_uses_placeholder(self, store, session):
        from conftest import FakeOrderService

        run(store.add_item(platform_product()))
        checkout = start(store, session, FakeOrderService(response={"success": True}))
        walk_to_review(checkout)
        confirmation = run(checkout.submit_order())
        assert confirmation.placeholder
        assert confirmation.order_number == "IT-TEMP-ORDER"

    def test_order_number_nested_under_order(self, store, session):
        from conftest import FakeOrderService

        run(store.add_item(platform_product()))
        service = FakeOrderService(response={"success": True, "order": {"orderNumber": "IT-777"}})
        checkout = start(store, session, service)
        walk_to_review(checkout)
        assert run(checkout.submit_order()).order_number == "IT-777"

    def test_cannot_submit_twice(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        walk_to_review(checkout)
        run(checkout.submit_order())
        with pytest.raises(SubmissionFailed):
            run(checkout.submit_order())
        assert len(order_service.payloads) == 1

    def test_invalid_form_blocks_submission(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        walk_to_review(checkout)
        checkout.form.customer.phone = "12"
        with pytest.raises(ValidationError) as excinfo:
            run(checkout.submit_order())
        assert "phone" in excinfo.value.errors
        assert order_service.payloads == []


class TestDerivedViews:
    def test_totals_ignore_item_shipping(self, store, session, order_service):
        run(store.add_item(platform_product(shipping=15)))
        checkout = start(store, session, order_service)
        totals = checkout.totals
        assert totals.shipping == Decimal("0")
        assert totals.total == Decimal("100")

    def test_analysis_recomputed_only_when_items_change(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(store, session, order_service)
        first = checkout.analysis
        assert checkout.analysis is first
        run(store.add_item(vendor_product()))
        assert checkout.analysis is not first
        assert checkout.analysis.order_type is OrderType.MIXED


class TestBuyNow:
    def test_buy_now_checkout_leaves_cart_alone(self, store, session, cart_service, order_service):
        run(store.add_item(platform_product()))
        buy_now = BuyNowStore(FakeRedis(), "user-1")
        buy_now.save(CartLineItem.from_product(vendor_product(), 1))

        checkout = start(store, session, order_service, buy_now_store=buy_now, use_buy_now=True)
        assert checkout.source == "buy_now"
        assert checkout.analysis.order_type is OrderType.VENDOR_ONLY
        walk_to_review(checkout)
        run(checkout.submit_order())

        assert [item["productId"] for item in order_service.payloads[0]["items"]] == ["p-200"]
        assert buy_now.load() is None
        assert len(store.items) == 1
        assert ("clear_cart",) not in cart_service.calls

    def test_falls_back_to_cart_without_snapshot(self, store, session, order_service):
        run(store.add_item(platform_product()))
        checkout = start(
            store, session, order_service, buy_now_store=BuyNowStore(FakeRedis(), "user-1"), use_buy_now=True
        )
        assert checkout.source == "cart"
