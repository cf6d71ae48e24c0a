"""Simulated payment gateway for development and testing.

No external calls are made. Well-known test numbers give deterministic
outcomes; other valid card and bank details succeed with a configurable
probability to mimic real-world declines. Pass a seeded ``random.Random``
for reproducible runs.
"""

import logging
import random
import time
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from storefront.config import Config
from storefront.models import PaymentData, PaymentMethod, WalletProvider
from storefront.payment_gateway import (
    PaymentFailureReason,
    PaymentGateway,
    PaymentResult,
)
from storefront.validators import (
    digits_only,
    is_valid_card_number,
    validate_account_number,
    validate_routing_number,
)

logger = logging.getLogger(__name__)

# Test card numbers with fixed outcomes
DENIED_CARDS = {
    "1234567890123456": (
        PaymentFailureReason.INVALID_CARD,
        "Invalid card number. Please use a valid test card.",
    ),
    "4000000000000002": (
        PaymentFailureReason.CARD_DECLINED,
        "Card declined. Please try a different card.",
    ),
    "4000000000000119": (
        PaymentFailureReason.PROCESSING_ERROR,
        "Processing error. Please try again.",
    ),
}
APPROVED_CARDS = frozenset({
    "4111111111111111",  # Visa
    "5555555555554444",  # MasterCard
    "378282246310005",  # Amex
    "6011111111111117",  # Discover
})

DENIED_WALLET_NUMBER = "03000000000"
DENIED_WALLET_PIN = "0000"

WALLET_NAMES = {
    WalletProvider.JAZZCASH: "JazzCash",
    WalletProvider.EASYPAISA: "EasyPaisa",
}


def _reference(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}_{uuid4().hex[:9]}"


class SimulatedPaymentGateway(PaymentGateway):
    """Per-method payment simulator."""

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        card_success_rate: Optional[float] = None,
        bank_success_rate: Optional[float] = None,
    ) -> None:
        self.rng = rng or random.Random()
        self.card_success_rate = Config.CARD_SUCCESS_RATE if card_success_rate is None else card_success_rate
        self.bank_success_rate = Config.BANK_SUCCESS_RATE if bank_success_rate is None else bank_success_rate
        self.calls: List[dict] = []

    def process_payment(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        self.calls.append({"method": payment_data.method, "amount": amount})

        handlers = {
            PaymentMethod.CARD: self._process_card,
            PaymentMethod.BANK: self._process_bank,
            PaymentMethod.WALLET: self._process_wallet,
            PaymentMethod.CASH: self._process_cash,
        }
        handler = handlers.get(payment_data.method)
        if handler is None:
            return PaymentResult.failed(
                payment_data.method, amount, PaymentFailureReason.UNSUPPORTED_METHOD, "Unsupported payment method"
            )

        result = handler(payment_data, amount)
        if result.success:
            logger.info(f"Simulated {payment_data.method.value} payment approved: {result.transaction_id}")
        else:
            logger.info(f"Simulated {payment_data.method.value} payment failed: {result.failure_reason.value}")
        return result

    def _process_card(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        method = PaymentMethod.CARD
        if payment_data.card is None:
            return PaymentResult.failed(method, amount, PaymentFailureReason.MISSING_DETAILS, "Card details are required")

        card_number = "".join(payment_data.card.card_number.split())
        if card_number in DENIED_CARDS:
            reason, message = DENIED_CARDS[card_number]
            return PaymentResult.failed(method, amount, reason, message)

        if not is_valid_card_number(card_number):
            return PaymentResult.failed(method, amount, PaymentFailureReason.INVALID_CARD, "Invalid card number")

        if card_number in APPROVED_CARDS or self.rng.random() < self.card_success_rate:
            return PaymentResult(
                success=True,
                method=method,
                amount=amount,
                message="Payment processed successfully",
                transaction_id=_reference("txn"),
            )
        return PaymentResult.failed(
            method,
            amount,
            PaymentFailureReason.PAYMENT_DECLINED,
            "Payment failed. Please check your card details and try again.",
        )

    def _process_bank(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        method = PaymentMethod.BANK
        bank = payment_data.bank
        if bank is None:
            return PaymentResult.failed(method, amount, PaymentFailureReason.MISSING_DETAILS, "Bank details are required")

        account_error = validate_account_number(bank.account_number)
        if account_error:
            return PaymentResult.failed(method, amount, PaymentFailureReason.INVALID_ACCOUNT, account_error)
        routing_error = validate_routing_number(bank.routing_number)
        if routing_error:
            return PaymentResult.failed(method, amount, PaymentFailureReason.INVALID_ROUTING, routing_error)

        if self.rng.random() >= self.bank_success_rate:
            return PaymentResult.failed(
                method,
                amount,
                PaymentFailureReason.BANK_TRANSFER_FAILED,
                "Bank transfer failed. Please verify your account details and try again.",
            )

        account_number = digits_only(bank.account_number)
        return PaymentResult(
            success=True,
            method=method,
            amount=amount,
            message=(
                "Bank transfer initiated successfully. Please complete the transfer within "
                "24 hours using the provided reference number."
            ),
            transaction_id=_reference("bank"),
            bank_details={
                "account_number": f"****{account_number[-4:]}",
                "routing_number": digits_only(bank.routing_number),
                "bank_name": bank.bank_name,
            },
        )

    def _process_wallet(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        method = PaymentMethod.WALLET
        wallet = payment_data.wallet
        if wallet is None:
            return PaymentResult.failed(method, amount, PaymentFailureReason.MISSING_DETAILS, "Wallet details are required")

        if "".join(wallet.wallet_number.split()) == DENIED_WALLET_NUMBER:
            return PaymentResult.failed(
                method, amount, PaymentFailureReason.INVALID_WALLET, "Invalid wallet number. Please check and try again."
            )
        if wallet.wallet_pin == DENIED_WALLET_PIN:
            return PaymentResult.failed(
                method, amount, PaymentFailureReason.INVALID_PIN, "Invalid PIN. Please enter the correct PIN."
            )

        return PaymentResult(
            success=True,
            method=method,
            amount=amount,
            message=f"{WALLET_NAMES[wallet.provider]} payment successful",
            transaction_id=_reference(wallet.provider.value),
        )

    def _process_cash(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        return PaymentResult(
            success=True,
            method=PaymentMethod.CASH,
            amount=amount,
            message="Order placed successfully. Pay on delivery.",
            transaction_id=f"cod_{int(time.time() * 1000)}",
        )
