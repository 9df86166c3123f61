from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional

from ..errors import ValidationError
from ..utils.validators import validate_card_number, validate_cvv, validate_expiry_date
from .cart_service import CartService
from .logging import log_event
from .order_service import OrderLine, OrderService, ShippingAddress
from .payment_gateways import BillingAddress, CardInfo, CustomerInfo, PaymentRequest
from .payment_service import PaymentService


REQUIRED_FIELDS = ("items", "shippingAddress", "paymentMethod", "cardInfo", "userId")


@dataclass
class CheckoutRequest:
    user_id: str
    items: List[OrderLine]
    shipping_address: ShippingAddress
    payment_method: str
    card: CardInfo
    email: str = ""

    @classmethod
    def from_payload(cls, body) -> "CheckoutRequest":
        if not isinstance(body, dict):
            raise ValidationError("Missing required fields")
        missing = [name for name in REQUIRED_FIELDS if not body.get(name)]
        if missing:
            raise ValidationError("Missing required fields", field=missing[0])
        if not isinstance(body["items"], list):
            raise ValidationError("Items must be a list", field="items")

        card_data = body["cardInfo"]
        if not isinstance(card_data, dict):
            raise ValidationError("Invalid card details", field="cardInfo")
        card = CardInfo(
            number=str(card_data.get("number") or ""),
            expiry_month=str(card_data.get("expiryMonth") or ""),
            expiry_year=str(card_data.get("expiryYear") or ""),
            cvv=str(card_data.get("cvv") or ""),
            name=str(card_data.get("name") or ""),
        )
        shipping = body["shippingAddress"]
        return cls(
            user_id=str(body["userId"]),
            items=[OrderLine.from_payload(item) for item in body["items"]],
            shipping_address=ShippingAddress.from_payload(shipping),
            payment_method=str(body["paymentMethod"]),
            card=card,
            email=str(shipping.get("email") or body.get("email") or ""),
        )


def validate_card(card: CardInfo) -> None:
    if not validate_card_number(card.number):
        raise ValidationError("Invalid card number", field="cardInfo.number")
    if not validate_expiry_date(card.expiry):
        raise ValidationError("Invalid or expired card expiry date", field="cardInfo.expiry")
    if not validate_cvv(card.cvv):
        raise ValidationError("Invalid CVV", field="cardInfo.cvv")


def compute_total(items: List[OrderLine], tax_rate: Decimal) -> Decimal:
    """Tax-inclusive total: the full pre-tax sum, taxed once, rounded to cents."""
    subtotal = sum((line.line_total for line in items), Decimal("0"))
    return (subtotal + subtotal * tax_rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


@dataclass
class CheckoutResult:
    success: bool
    order: Dict
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    redirect_url: Optional[str] = None


class CheckoutService:
    """Order creation followed by payment, then the payment-status update.

    A declined payment leaves the pending order in place with
    ``payment_status = failed`` as the record of the attempt.
    """

    def __init__(
        self,
        order_service: OrderService,
        payment_service: PaymentService,
        cart_service: Optional[CartService] = None,
        *,
        tax_rate: Decimal = Decimal("0.15"),
        currency: str = "PKR",
    ):
        self._orders = order_service
        self._payments = payment_service
        self._cart = cart_service
        self._tax_rate = tax_rate
        self._currency = currency

    @property
    def tax_rate(self) -> Decimal:
        return self._tax_rate

    def configure_pricing(self, *, tax_rate: Decimal, currency: str) -> None:
        self._tax_rate = tax_rate
        self._currency = currency

    def place_order(self, request: CheckoutRequest) -> CheckoutResult:
        validate_card(request.card)
        total = compute_total(request.items, self._tax_rate)

        order = self._orders.create_order(
            user_id=request.user_id,
            items=request.items,
            shipping_address=request.shipping_address,
            payment_method=request.payment_method,
            total_amount=total,
        )
        address = request.shipping_address
        payment = self._payments.process_payment(
            PaymentRequest(
                amount=total,
                currency=self._currency,
                order_id=order["id"],
                customer=CustomerInfo(name=address.name, email=request.email, phone=address.phone),
                card=request.card,
                billing=BillingAddress(
                    address=address.address,
                    city=address.city,
                    postal_code=address.postal_code,
                ),
            )
        )

        if not payment.success:
            order = self._orders.update_payment_status(order["id"], "failed")
            log_event("info", "checkout.payment_failed", order_id=order["id"], error=payment.error)
            return CheckoutResult(False, order, error=payment.error, message=payment.message)

        self._orders.update_payment_status(order["id"], "completed", payment_id=payment.transaction_id)
        order = self._orders.update_order_status(order["id"], "confirmed")
        if self._cart is not None:
            self._cart.clear(request.user_id)
        log_event("info", "checkout.completed", order_id=order["id"], transaction_id=payment.transaction_id)
        return CheckoutResult(
            True,
            order,
            transaction_id=payment.transaction_id,
            message="Order created and payment processed successfully",
            redirect_url=payment.redirect_url,
        )
