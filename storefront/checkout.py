"""
Checkout orchestration: the four-step wizard that turns a cart into an order.

Steps run customer info -> address -> payment -> review. Moving forward
requires the current step to validate; moving back never validates. On
submit the payment is authorized through the configured ``PaymentGateway``
(cash skips it), the order payload is assembled from the cart, its analysis
and the form, and sent once to the order service. The cart is cleared only
after the order service accepts the order.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from storefront.api_client import OrderServiceClient
from storefront.buy_now import BuyNowStore
from storefront.cart_analysis import analyze_cart, get_order_type_display_name
from storefront.cart_store import CartStore
from storefront.config import Config
from storefront.exceptions import (
    PaymentDeclined,
    StorefrontError,
    SubmissionFailed,
    ValidationError,
)
from storefront.models import (
    CartAnalysis,
    CartLineItem,
    CheckoutForm,
    CustomerInfo,
    OrderItem,
    OrderSubmission,
    OrderTotals,
    PaymentData,
    PaymentInfo,
    PaymentMethod,
    SessionUser,
    VendorBreakdown,
)
from storefront.notifications import LoggingNotificationSink, NotificationSink
from storefront.payment_gateway import PaymentGateway, PaymentResult
from storefront.payment_simulator import SimulatedPaymentGateway
from storefront.session import Session
from storefront.utils import hash_identifier
from storefront.validators import (
    get_card_type,
    is_valid_card_number,
    is_valid_cvv,
    is_valid_email,
    is_valid_expiry,
    is_valid_phone_number,
    validate_bank_account,
)

logger = logging.getLogger(__name__)

CASH_ONLY_MESSAGE = "Only Cash on Delivery is currently available"
EMPTY_CART_MESSAGE = "Your cart is empty"


class CheckoutStep(IntEnum):
    CUSTOMER_INFO = 1
    ADDRESS = 2
    PAYMENT = 3
    REVIEW = 4


class CheckoutStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUBMITTING = "submitting"
    SUBMITTED = "submitted"


@dataclass(frozen=True)
class OrderConfirmation:
    """What the confirmation view needs after a successful order"""
    order_number: str
    order: Dict[str, Any]
    submission: OrderSubmission
    payment_result: Optional[PaymentResult] = None
    placeholder: bool = False

    @property
    def path(self) -> str:
        return f"/order-confirmation/{self.order_number}"


def prefilled_form(user: Optional[SessionUser]) -> CheckoutForm:
    """Start a form from the session profile where one is available"""
    form = CheckoutForm()
    form.address.country = Config.DEFAULT_COUNTRY
    if user is None:
        return form

    form.customer = CustomerInfo(name=user.name, email=user.email, phone=user.phone)
    if user.address is not None:
        form.address = user.address.model_copy(
            update={"country": user.address.country or Config.DEFAULT_COUNTRY}
        )
    return form


class CheckoutOrchestrator:
    """Drives one checkout from the first step to a submitted order"""

    def __init__(
        self,
        cart_store: CartStore,
        session: Session,
        order_service: OrderServiceClient,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationSink] = None,
        buy_now_store: Optional[BuyNowStore] = None,
        buy_now_item: Optional[CartLineItem] = None,
        enabled_methods: Optional[Iterable[str]] = None,
    ):
        self.cart_store = cart_store
        self.session = session
        self.order_service = order_service
        self.gateway = gateway or SimulatedPaymentGateway()
        self.notifier = notifier or cart_store.notifier or LoggingNotificationSink()
        self.buy_now_store = buy_now_store
        self.buy_now_item = buy_now_item
        self.enabled_methods: Tuple[str, ...] = tuple(enabled_methods or Config.ENABLED_PAYMENT_METHODS)

        if not self.items:
            raise ValidationError(EMPTY_CART_MESSAGE, {"cart": EMPTY_CART_MESSAGE})

        self.form = prefilled_form(session.user if session.is_authenticated else None)
        self.step = CheckoutStep.CUSTOMER_INFO
        self.status = CheckoutStatus.IN_PROGRESS
        self.errors: Dict[str, str] = {}
        self.confirmation: Optional[OrderConfirmation] = None
        self._analysis_key: Optional[Tuple[CartLineItem, ...]] = None
        self._analysis: Optional[CartAnalysis] = None

    @classmethod
    def start(
        cls,
        cart_store: CartStore,
        session: Session,
        order_service: OrderServiceClient,
        gateway: Optional[PaymentGateway] = None,
        buy_now_store: Optional[BuyNowStore] = None,
        use_buy_now: bool = False,
        **kwargs,
    ) -> "CheckoutOrchestrator":
        """Enter checkout from the cart, or from the buy-now snapshot when asked and present"""
        buy_now_item = None
        if use_buy_now and buy_now_store is not None:
            snapshot = buy_now_store.load()
            if snapshot is not None:
                buy_now_item = snapshot.item
        return cls(
            cart_store,
            session,
            order_service,
            gateway=gateway,
            buy_now_store=buy_now_store if buy_now_item is not None else None,
            buy_now_item=buy_now_item,
            **kwargs,
        )

    # -- derived views ------------------------------------------------

    @property
    def source(self) -> str:
        return "buy_now" if self.buy_now_item is not None else "cart"

    @property
    def items(self) -> List[CartLineItem]:
        if self.buy_now_item is not None:
            return [self.buy_now_item]
        return list(self.cart_store.items)

    @property
    def analysis(self) -> CartAnalysis:
        key = tuple(self.items)
        if self._analysis is None or key != self._analysis_key:
            self._analysis = analyze_cart(key)
            self._analysis_key = key
        return self._analysis

    @property
    def totals(self) -> OrderTotals:
        # Shipping is not charged at checkout, whatever the items carry
        subtotal = sum((item.line_total for item in self.items), Decimal("0"))
        return OrderTotals(subtotal=subtotal, shipping=Decimal("0"), tax=Decimal("0"), total=subtotal)

    # -- validation ---------------------------------------------------

    def _customer_errors(self) -> Dict[str, str]:
        errors = {}
        customer = self.form.customer
        if not customer.name.strip():
            errors["name"] = "Name is required"
        if not customer.email.strip():
            errors["email"] = "Email is required"
        elif not is_valid_email(customer.email):
            errors["email"] = "Email format is invalid"
        if not customer.phone.strip():
            errors["phone"] = "Phone is required"
        elif not is_valid_phone_number(customer.phone):
            errors["phone"] = "Please enter a valid phone number (Pakistani: +92xxxxxxxxxx or 0xxxxxxxxxx)"
        return errors

    def _address_errors(self) -> Dict[str, str]:
        address = self.form.address
        required = (
            ("street", address.street, "Street address is required"),
            ("city", address.city, "City is required"),
            ("state", address.state, "State is required"),
            ("zip_code", address.zip_code, "ZIP code is required"),
            ("country", address.country, "Country is required"),
        )
        return {field: message for field, value, message in required if not value.strip()}

    def _card_errors(self) -> Dict[str, str]:
        card = self.form.card
        errors = {}
        if not card.card_number.strip():
            errors["card_number"] = "Card number is required"
        elif not is_valid_card_number(card.card_number):
            errors["card_number"] = "Invalid card number"
        if not card.card_holder_name.strip():
            errors["card_holder_name"] = "Cardholder name is required"
        if not is_valid_cvv(card.cvv, get_card_type(card.card_number)):
            errors["cvv"] = "Invalid CVV"
        if not is_valid_expiry(card.expiry_month, card.expiry_year):
            errors["expiry"] = "Invalid expiry date"
        return errors

    def _bank_errors(self) -> Dict[str, str]:
        bank = self.form.bank
        errors = validate_bank_account(bank.account_number, bank.routing_number)
        if not bank.bank_name.strip():
            errors["bank_name"] = "Bank name is required"
        if not bank.account_holder_name.strip():
            errors["account_holder_name"] = "Account holder name is required"
        return errors

    def _wallet_errors(self) -> Dict[str, str]:
        wallet = self.form.wallet
        errors = {}
        number = "".join(wallet.wallet_number.split())
        if not number:
            errors["wallet_number"] = "Wallet number is required"
        elif not (number.isdigit() and len(number) == 11 and number.startswith("0")):
            errors["wallet_number"] = "Wallet number must be 11 digits starting with 0"
        if not (wallet.wallet_pin.isdigit() and 4 <= len(wallet.wallet_pin) <= 6):
            errors["wallet_pin"] = "PIN must be 4 to 6 digits"
        return errors

    def _payment_errors(self) -> Dict[str, str]:
        method = self.form.payment_method
        if method.value not in self.enabled_methods:
            fallback = PaymentMethod.CASH if "cash" in self.enabled_methods else PaymentMethod(self.enabled_methods[0])
            logger.info(f"Payment method {method.value} is disabled, reverting to {fallback.value}")
            self.form.payment_method = fallback
            if self.enabled_methods == ("cash",):
                return {"payment_method": CASH_ONLY_MESSAGE}
            return {"payment_method": "Selected payment method is not available"}

        if method is PaymentMethod.CARD:
            return self._card_errors()
        if method is PaymentMethod.BANK:
            return self._bank_errors()
        if method is PaymentMethod.WALLET:
            return self._wallet_errors()
        return {}

    def _step_errors(self, step: CheckoutStep) -> Dict[str, str]:
        if step is CheckoutStep.CUSTOMER_INFO:
            return self._customer_errors()
        if step is CheckoutStep.ADDRESS:
            return self._address_errors()
        if step is CheckoutStep.PAYMENT:
            return self._payment_errors()
        errors = {}
        for earlier in (CheckoutStep.CUSTOMER_INFO, CheckoutStep.ADDRESS, CheckoutStep.PAYMENT):
            errors.update(self._step_errors(earlier))
        return errors

    def validate_step(self, step: Optional[CheckoutStep] = None) -> bool:
        """Validate a step (the current one by default); errors land in ``self.errors``"""
        step = self.step if step is None else CheckoutStep(step)
        self.errors = self._step_errors(step)
        return not self.errors

    # -- navigation ---------------------------------------------------

    def next_step(self) -> bool:
        if not self.validate_step(self.step):
            return False
        self.step = CheckoutStep(min(self.step + 1, CheckoutStep.REVIEW))
        return True

    def previous_step(self) -> CheckoutStep:
        self.step = CheckoutStep(max(self.step - 1, CheckoutStep.CUSTOMER_INFO))
        return self.step

    # -- submission ---------------------------------------------------

    def build_payment_data(self) -> PaymentData:
        method = self.form.payment_method
        if method is PaymentMethod.CARD:
            return PaymentData(method=method, card=self.form.card.model_copy())
        if method is PaymentMethod.BANK:
            return PaymentData(method=method, bank=self.form.bank.model_copy())
        if method is PaymentMethod.WALLET:
            return PaymentData(method=method, wallet=self.form.wallet.model_copy())
        return PaymentData(method=method)

    def build_submission(self, payment_result: Optional[PaymentResult] = None) -> OrderSubmission:
        user = self.session.user if self.session.is_authenticated else None
        # The account email beats whatever was typed into the form
        email = user.email if user is not None and user.email else self.form.customer.email
        analysis = self.analysis

        items = [
            OrderItem(
                product_id=item.product_id,
                name=item.title,
                price=item.price,
                quantity=item.quantity,
                image=item.image,
                selected_size=item.selected_size,
                vendor=item.vendor.id if item.is_vendor_fulfilled else None,
                handled_by="vendor" if item.is_vendor_fulfilled else "admin",
                handler_name=item.vendor.display_name if item.is_vendor_fulfilled else Config.PLATFORM_NAME,
            )
            for item in self.items
        ]
        payment_info = PaymentInfo(method=self.form.payment_method)
        if payment_result is not None:
            payment_info = PaymentInfo(
                method=self.form.payment_method,
                transaction_id=payment_result.transaction_id,
                payment_status=payment_result.status.value,
            )

        return OrderSubmission(
            user_id=user.id if user is not None else None,
            items=items,
            customer_info=self.form.customer.model_copy(update={"email": email}),
            shipping_info=self.form.address.model_copy(),
            payment_info=payment_info,
            totals=self.totals,
            order_type=analysis.order_type,
            order_type_display=get_order_type_display_name(analysis.order_type),
            vendor_breakdown=VendorBreakdown(
                platform_items=len(analysis.platform_items),
                vendor_groups=len(analysis.vendor_groups),
                total_vendors=analysis.total_vendors,
            ),
        )

    def _authorize_payment(self) -> Optional[PaymentResult]:
        if self.form.payment_method is PaymentMethod.CASH:
            return None

        try:
            result = self.gateway.process_payment(self.build_payment_data(), self.totals.total)
        except Exception as e:
            logger.error(f"Payment gateway raised {type(e).__name__}: {e}", exc_info=True)
            self.notifier.show_error("Payment could not be processed. Please try again.", title="Payment Failed")
            raise SubmissionFailed("Payment could not be processed") from e
        if not result.success:
            logger.warning(f"Payment declined: {result.failure_reason.value if result.failure_reason else 'unknown'}")
            self.notifier.show_error(result.message, title="Payment Failed")
            raise PaymentDeclined(
                result.message,
                reason=result.failure_reason.value if result.failure_reason else None,
            )
        return result

    def _order_failed(self, error: SubmissionFailed) -> None:
        logger.error(f"Order submission failed: {error.message}")
        self.notifier.show_error(f"Failed to place order: {error.message}", title="Order Failed")

    async def _create_order(self, submission: OrderSubmission) -> Dict[str, Any]:
        try:
            return await self.order_service.create_order(submission.to_payload())
        except SubmissionFailed as e:
            self._order_failed(e)
            raise
        except StorefrontError as e:
            error = SubmissionFailed(getattr(e, "message", None) or str(e))
            self._order_failed(error)
            raise error from e
        except Exception as e:
            logger.error(f"Order service raised {type(e).__name__}: {e}", exc_info=True)
            error = SubmissionFailed(str(e) or type(e).__name__)
            self._order_failed(error)
            raise error from e

    async def _clear_source(self) -> None:
        if self.buy_now_item is not None:
            if self.buy_now_store is not None:
                self.buy_now_store.clear()
            return
        try:
            await self.cart_store.clear_cart()
        except StorefrontError as e:
            # The order exists already; the store has reported the failure
            logger.warning(f"Order placed but the cart could not be cleared: {e}")

    def _confirmation(
        self,
        response: Dict[str, Any],
        submission: OrderSubmission,
        payment_result: Optional[PaymentResult],
    ) -> OrderConfirmation:
        order = response.get("order") or response
        order_number = response.get("orderNumber") or (order.get("orderNumber") if isinstance(order, dict) else None)
        placeholder = not order_number
        if placeholder:
            logger.warning("Order service returned no order number, using placeholder")
            order_number = Config.ORDER_NUMBER_PLACEHOLDER
        return OrderConfirmation(
            order_number=str(order_number),
            order=order,
            submission=submission,
            payment_result=payment_result,
            placeholder=placeholder,
        )

    async def submit_order(self) -> OrderConfirmation:
        """Authorize payment, create the order, clear the cart.

        Raises ValidationError (nothing sent), PaymentDeclined (no order
        created) or SubmissionFailed (cart kept, still on the review step).
        """
        if self.status is not CheckoutStatus.IN_PROGRESS:
            raise SubmissionFailed(f"Checkout is already {self.status.value}")
        if not self.validate_step(CheckoutStep.REVIEW):
            raise ValidationError.from_errors(self.errors)
        if not self.items:
            raise ValidationError(EMPTY_CART_MESSAGE, {"cart": EMPTY_CART_MESSAGE})

        self.status = CheckoutStatus.SUBMITTING
        try:
            payment_result = self._authorize_payment()
            submission = self.build_submission(payment_result)
            response = await self._create_order(submission)
        except BaseException:
            # Any failure leaves the checkout on the review step, ready to retry
            self.status = CheckoutStatus.IN_PROGRESS
            self.step = CheckoutStep.REVIEW
            raise

        await self._clear_source()
        self.status = CheckoutStatus.SUBMITTED
        self.confirmation = self._confirmation(response, submission, payment_result)

        user_ref = hash_identifier(submission.user_id) if submission.user_id else "guest"
        logger.info(
            f"Order {self.confirmation.order_number} placed for {user_ref}: "
            f"type={submission.order_type.value} total={submission.totals.total}"
        )
        if payment_result is not None:
            self.notifier.show_success(f"Payment Successful! {payment_result.message}")
        self.notifier.show_success("Order placed successfully", title="Order Confirmed")
        return self.confirmation
