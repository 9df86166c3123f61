import logging
import random
from decimal import Decimal
from typing import Dict, Optional, Sequence, Tuple

from ..config import PaymentGatewayConfig
from ..errors import GatewayError
from .logging import log_event
from .payment_gateways import (
    JazzCashGateway,
    MockGateway,
    PayFastGateway,
    PaymentRequest,
    PaymentResponse,
    mock_outcome,
)


logger = logging.getLogger(__name__)


class PaymentService:
    """Single payment contract over PayFast, JazzCash or the mock gateway.

    The gateway is chosen once, when the service is built: the preferred
    gateway if its credentials are present, otherwise whichever one is
    configured, otherwise the mock. Outside production a gateway transport
    failure falls back to a mock outcome; in production it becomes a failed
    payment response.
    """

    def __init__(
        self,
        config: PaymentGatewayConfig,
        *,
        app_base_url: str,
        production: bool = False,
        currency: str = "PKR",
        rng: Optional[random.Random] = None,
        http=None,
    ):
        self._config = config
        self._production = production
        self._rng = rng or random.Random()
        self._gateways: Dict[str, object] = {}
        if config.payfast_configured:
            self._gateways["payfast"] = PayFastGateway(
                merchant_id=config.payfast_merchant_id,
                merchant_key=config.payfast_merchant_key,
                passphrase=config.payfast_passphrase,
                base_url=config.payfast_base_url,
                app_base_url=app_base_url,
                rng=self._rng,
            )
        if config.jazzcash_configured:
            self._gateways["jazzcash"] = JazzCashGateway(
                merchant_id=config.jazzcash_merchant_id,
                password=config.jazzcash_password,
                integrity_salt=config.jazzcash_integrity_salt,
                base_url=config.jazzcash_base_url,
                app_base_url=app_base_url,
                currency=currency,
                timeout=config.timeout_seconds,
                http=http,
            )
        self.gateway = self._select_gateway(config.preferred)
        logger.info("Payment gateway selected: %s", self.gateway.name)

    def _select_gateway(self, preferred: str):
        if preferred in self._gateways:
            return self._gateways[preferred]
        for name in ("payfast", "jazzcash"):
            if name in self._gateways:
                return self._gateways[name]
        return MockGateway(self._rng)

    @property
    def gateway_name(self) -> str:
        return self.gateway.name

    def gateway_for(self, name: str):
        """Configured adapter by name, or None."""
        return self._gateways.get(name)

    def process_payment(self, request: PaymentRequest) -> PaymentResponse:
        log_event(
            "info",
            "payment.processing",
            gateway=self.gateway.name,
            order_id=request.order_id,
            amount=request.amount,
            card_last4=request.card.last4,
        )
        if self._production and isinstance(self.gateway, MockGateway):
            logger.error("No payment gateway configured in production")
            return PaymentResponse(
                success=False,
                error="Payment gateway not configured",
                message="Payments are temporarily unavailable. Please try again later.",
            )
        try:
            response = self.gateway.process(request)
        except GatewayError as exc:
            logger.warning("Payment processing error via %s: %s", exc.gateway, exc.reason)
            if not self._production:
                log_event("warning", "payment.fallback_mock", gateway=exc.gateway, order_id=request.order_id)
                return mock_outcome(self._rng)
            return PaymentResponse(
                success=False,
                error="Payment processing failed",
                message="An error occurred while processing your payment. Please try again.",
            )
        log_event(
            "info",
            "payment.processed",
            gateway=self.gateway.name,
            order_id=request.order_id,
            success=response.success,
            transaction_id=response.transaction_id,
        )
        return response

    def verify_payment(self, transaction_id: str) -> PaymentResponse:
        # Placeholder: always succeeds. A real check would query the
        # gateway's transaction status endpoint.
        logger.info("Verifying payment %s (simulated)", transaction_id)
        return PaymentResponse(
            success=True,
            transaction_id=transaction_id,
            message="Payment verified successfully",
        )

    def refund_payment(self, transaction_id: str, amount: Decimal) -> PaymentResponse:
        # Placeholder: always succeeds. A real refund would call the
        # gateway's refund endpoint.
        log_event("info", "payment.refund", transaction_id=transaction_id, amount=amount, simulated=True)
        return PaymentResponse(
            success=True,
            transaction_id=transaction_id,
            message="Refund processed successfully",
        )

    def verify_callback(self, gateway: str, pairs: Sequence[Tuple[str, str]]) -> bool:
        """Check a callback's signature with the named gateway's credentials.

        Without credentials for that gateway nothing can be checked; the
        callback is accepted outside production and rejected in production.
        """
        handler = self.gateway_for(gateway)
        if handler is None:
            if self._production:
                return False
            logger.warning("Accepting unsigned %s callback: gateway not configured", gateway)
            return True
        return handler.verify(pairs)
