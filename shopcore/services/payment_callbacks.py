import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from ..errors import SignatureError, ValidationError
from .logging import log_event
from .order_service import OrderService
from .payment_service import PaymentService


logger = logging.getLogger(__name__)

PAYFAST_SUCCESS_STATUS = "COMPLETE"
JAZZCASH_SUCCESS_CODE = "000"


@dataclass(frozen=True)
class CallbackNotification:
    gateway: str
    order_id: str
    success: bool
    transaction_id: Optional[str]
    amount: Optional[str]
    message: Optional[str]


@dataclass(frozen=True)
class CallbackResult:
    success: bool
    order_id: str
    redirect_path: str


def detect_gateway(pairs: Sequence[Tuple[str, str]]) -> str:
    data = dict(pairs)
    explicit = (data.get("payment_gateway") or "").strip().lower()
    if explicit in ("payfast", "jazzcash"):
        return explicit
    if any(key.startswith("pp_") for key in data):
        return "jazzcash"
    return "payfast"


def parse_notification(gateway: str, pairs: Sequence[Tuple[str, str]]) -> CallbackNotification:
    data = dict(pairs)
    if gateway == "jazzcash":
        code = data.get("pp_ResponseCode", "")
        notification = CallbackNotification(
            gateway=gateway,
            order_id=data.get("pp_BillReference") or data.get("pp_TxnRefNo") or "",
            success=code == JAZZCASH_SUCCESS_CODE,
            transaction_id=data.get("pp_TxnRefNo"),
            amount=data.get("pp_Amount"),
            message=data.get("pp_ResponseMessage"),
        )
    else:
        notification = CallbackNotification(
            gateway=gateway,
            order_id=data.get("m_payment_id") or data.get("custom_str1") or "",
            success=data.get("payment_status", "") == PAYFAST_SUCCESS_STATUS,
            transaction_id=data.get("pf_payment_id"),
            amount=data.get("amount_gross"),
            message=data.get("payment_status"),
        )
    if not notification.order_id:
        raise ValidationError("Callback is missing the order reference", field="order_id")
    return notification


def success_path(order_id: str) -> str:
    return f"/orders/success?{urlencode({'orderId': order_id})}"


def failure_path(message: Optional[str]) -> str:
    return f"/checkout?{urlencode({'error': message or 'Payment failed'})}"


class PaymentCallbackHandler:
    """Turns gateway notifications into order updates and redirect targets."""

    def __init__(self, order_service: OrderService, payment_service: PaymentService):
        self._orders = order_service
        self._payments = payment_service

    def _verified_notification(self, pairs: List[Tuple[str, str]]) -> CallbackNotification:
        gateway = detect_gateway(pairs)
        signed_pairs = [(k, v) for k, v in pairs if k != "payment_gateway"]
        if not self._payments.verify_callback(gateway, signed_pairs):
            log_event("warning", "payment.callback_rejected", gateway=gateway)
            raise SignatureError(gateway)
        return parse_notification(gateway, signed_pairs)

    def handle_notification(self, pairs: List[Tuple[str, str]]) -> CallbackResult:
        """Apply a POSTed notification to its order.

        Raises ``SignatureError`` when the signature does not match; nothing
        is written in that case.
        """
        notification = self._verified_notification(pairs)
        log_event(
            "info",
            "payment.callback",
            gateway=notification.gateway,
            order_id=notification.order_id,
            success=notification.success,
            transaction_id=notification.transaction_id,
            amount=notification.amount,
        )
        self._orders.apply_payment_outcome(
            notification.order_id,
            success=notification.success,
            transaction_id=notification.transaction_id,
        )
        if notification.success:
            return CallbackResult(True, notification.order_id, success_path(notification.order_id))
        message = notification.message if notification.gateway == "jazzcash" else None
        return CallbackResult(False, notification.order_id, failure_path(message))

    def handle_return(self, pairs: List[Tuple[str, str]]) -> CallbackResult:
        """Browser return (GET): pick a redirect target without writing anything."""
        try:
            notification = self._verified_notification(pairs)
        except (SignatureError, ValidationError) as exc:
            logger.warning("Rejected payment return: %s", exc.message)
            return CallbackResult(False, "", failure_path("Payment verification failed"))
        if notification.success:
            return CallbackResult(True, notification.order_id, success_path(notification.order_id))
        return CallbackResult(False, notification.order_id, failure_path(notification.message))
