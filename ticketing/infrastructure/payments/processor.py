# ticketing/infrastructure/payments/processor.py

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Protocol


class ProcessorStatus(str, Enum):
    COMPLETED = "completed"
    PENDING = "pending"
    FAILED = "failed"


@dataclass(frozen=True)
class ProcessorOrder:
    order_id: str
    approval_url: str


@dataclass(frozen=True)
class ProcessorCapture:
    status: ProcessorStatus
    payment_id: str
    raw_status: str = ""


class PaymentProcessor(Protocol):
    """External processor seam. Implementations raise PaymentGatewayError on failure."""

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference: str,
        return_url: str,
        cancel_url: str,
    ) -> ProcessorOrder:
        ...

    def capture_order(self, order_id: str) -> ProcessorCapture:
        ...
