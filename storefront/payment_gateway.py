"""Payment gateway port (abstract interface).

Checkout talks to payments only through ``PaymentGateway``, so the simulator
can be swapped for a real provider without touching the orchestrator.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Dict, Optional

from storefront.models import PaymentData, PaymentMethod


class PaymentStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


class PaymentFailureReason(str, Enum):
    INVALID_CARD = "invalid_card"
    CARD_DECLINED = "card_declined"
    PROCESSING_ERROR = "processing_error"
    PAYMENT_DECLINED = "payment_declined"
    INVALID_ACCOUNT = "invalid_account"
    INVALID_ROUTING = "invalid_routing"
    BANK_TRANSFER_FAILED = "bank_transfer_failed"
    INVALID_WALLET = "invalid_wallet"
    INVALID_PIN = "invalid_pin"
    MISSING_DETAILS = "missing_details"
    UNSUPPORTED_METHOD = "unsupported_method"


@dataclass(frozen=True)
class PaymentResult:
    """Outcome of a payment attempt."""

    success: bool
    method: PaymentMethod
    amount: Decimal
    message: str
    transaction_id: Optional[str] = None
    status: PaymentStatus = PaymentStatus.COMPLETED
    failure_reason: Optional[PaymentFailureReason] = None
    bank_details: Optional[Dict[str, str]] = None

    @classmethod
    def failed(
        cls,
        method: PaymentMethod,
        amount: Decimal,
        reason: PaymentFailureReason,
        message: str,
    ) -> "PaymentResult":
        return cls(
            success=False,
            method=method,
            amount=amount,
            message=message,
            status=PaymentStatus.FAILED,
            failure_reason=reason,
        )


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def process_payment(self, payment_data: PaymentData, amount: Decimal) -> PaymentResult:
        """Authorize ``amount`` with the given payment details.

        Declines are reported through ``PaymentResult.success``; only
        unexpected infrastructure failures raise.
        """
        ...
