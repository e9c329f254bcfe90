# ticketing/infrastructure/payments/razorpay_processor.py

import logging
from decimal import ROUND_HALF_UP, Decimal

import razorpay
import requests

from ticketing.domain.exceptions import PaymentConfigurationError, PaymentGatewayError
from ticketing.infrastructure.payments.processor import (
    ProcessorCapture,
    ProcessorOrder,
    ProcessorStatus,
)

logger = logging.getLogger(__name__)

_GATEWAY_ERRORS = (
    razorpay.errors.BadRequestError,
    razorpay.errors.GatewayError,
    razorpay.errors.ServerError,
    requests.RequestException,
)

# Razorpay payment link states, normalised.
_STATUS_MAP = {
    "paid": ProcessorStatus.COMPLETED,
    "created": ProcessorStatus.PENDING,
    "partially_paid": ProcessorStatus.PENDING,
    "expired": ProcessorStatus.FAILED,
    "cancelled": ProcessorStatus.FAILED,
}


def to_minor_units(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


class RazorpayProcessor:
    """
    Payment orders backed by Razorpay payment links.
    The link's short_url is the approval page the buyer is redirected to.
    """

    def __init__(self, key_id: str, key_secret: str, timeout: float = 15.0):
        self.key_id = key_id
        self.key_secret = key_secret
        self.timeout = timeout
        self._client: razorpay.Client | None = None

    def _razorpay_client(self) -> razorpay.Client:
        if not self.key_id or not self.key_secret:
            raise PaymentConfigurationError(
                "Razorpay keys not configured. Set RAZORPAY_KEY_ID and RAZORPAY_KEY_SECRET."
            )
        if self._client is None:
            self._client = razorpay.Client(auth=(self.key_id, self.key_secret))
        return self._client

    def create_order(
        self,
        amount: Decimal,
        currency: str,
        description: str,
        reference: str,
        return_url: str,
        cancel_url: str,
    ) -> ProcessorOrder:
        client = self._razorpay_client()
        payload = {
            "amount": to_minor_units(amount),
            "currency": currency,
            "description": description,
            "reference_id": reference,
            "callback_url": return_url,
            "callback_method": "get",
            "notes": {
                "booking_id": reference,
                "cancel_url": cancel_url,
            },
        }
        try:
            link = client.payment_link.create(payload, timeout=self.timeout)
        except _GATEWAY_ERRORS as exc:
            logger.exception("Razorpay order creation failed for booking %s", reference)
            raise PaymentGatewayError(f"Payment creation failed: {exc}") from exc

        return ProcessorOrder(order_id=link["id"], approval_url=link["short_url"])

    def capture_order(self, order_id: str) -> ProcessorCapture:
        client = self._razorpay_client()
        try:
            link = client.payment_link.fetch(order_id, timeout=self.timeout)
        except _GATEWAY_ERRORS as exc:
            logger.exception("Razorpay capture failed for order %s", order_id)
            raise PaymentGatewayError(f"Payment capture failed: {exc}") from exc

        raw_status = str(link.get("status", ""))
        status = _STATUS_MAP.get(raw_status, ProcessorStatus.PENDING)

        payment_id = ""
        for payment in link.get("payments") or []:
            if payment.get("status") == "captured":
                payment_id = payment.get("payment_id", "")
                break

        if status == ProcessorStatus.COMPLETED and not payment_id:
            # Paid link without a captured payment entry yet.
            status = ProcessorStatus.PENDING

        return ProcessorCapture(status=status, payment_id=payment_id, raw_status=raw_status)
