"""
Payment gateway adapters for Pakistani card/wallet payments.

PayFast (https://developers.payfast.co.za) is redirect based: the shop signs
a set of form fields and sends the customer's browser to the hosted payment
page; the outcome arrives later as an ITN callback.

JazzCash (https://sandbox.jazzcash.com.pk) accepts a server-to-server form
POST and answers with a JSON body whose ``ResponseCode`` is ``000`` on
success.

Each gateway builds a typed field object from the normalized request and
serializes it to ordered wire pairs; signatures are computed over those
pairs so callbacks can be checked byte-for-byte with the same functions.
"""
import hashlib
import hmac
import logging
import random
import string
import time
from dataclasses import dataclass, fields
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import quote_plus, urlencode

import requests

from ..errors import GatewayError


logger = logging.getLogger(__name__)

WirePairs = List[Tuple[str, str]]

MOCK_SUCCESS_RATE = 0.9
FAILED_PAYMENT_ERROR = "Payment failed"
FAILED_PAYMENT_MESSAGE = "Your payment could not be processed. Please try again."
_TXN_ALPHABET = string.ascii_lowercase + string.digits


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str


@dataclass(frozen=True)
class CardInfo:
    number: str
    expiry_month: str
    expiry_year: str
    cvv: str
    name: str

    @property
    def last4(self) -> str:
        digits = "".join(ch for ch in self.number if ch.isdigit())
        return digits[-4:]

    @property
    def expiry(self) -> str:
        """``MMYY`` built from the separate month/year inputs."""
        month = "".join(ch for ch in str(self.expiry_month) if ch.isdigit()).zfill(2)
        year = "".join(ch for ch in str(self.expiry_year) if ch.isdigit())
        return month[-2:] + year[-2:]

    def __repr__(self) -> str:
        return f"CardInfo(last4={self.last4!r}, name={self.name!r})"


@dataclass(frozen=True)
class BillingAddress:
    address: str
    city: str
    postal_code: str
    country: str = "Pakistan"


@dataclass(frozen=True)
class PaymentRequest:
    amount: Decimal
    currency: str
    order_id: str
    customer: CustomerInfo
    card: CardInfo
    billing: BillingAddress


@dataclass
class PaymentResponse:
    success: bool
    transaction_id: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    redirect_url: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "success": self.success,
            "transactionId": self.transaction_id,
            "error": self.error,
            "message": self.message,
            "redirectUrl": self.redirect_url,
        }


def mock_outcome(
    rng: random.Random,
    *,
    prefix: str = "TXN",
    label: str = "Mock",
    clock: Callable[[], float] = time.time,
) -> PaymentResponse:
    """Succeed with probability 0.9 and a synthetic transaction id."""
    if rng.random() < MOCK_SUCCESS_RATE:
        millis = int(clock() * 1000)
        suffix = "".join(rng.choice(_TXN_ALPHABET) for _ in range(9))
        return PaymentResponse(
            success=True,
            transaction_id=f"{prefix}_{millis}_{suffix}",
            message=f"Payment processed successfully ({label})",
        )
    return PaymentResponse(success=False, error=FAILED_PAYMENT_ERROR, message=FAILED_PAYMENT_MESSAGE)


def format_decimal_amount(amount: Decimal) -> str:
    return str(Decimal(amount).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def format_minor_units(amount: Decimal) -> str:
    return str(int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def _dataclass_pairs(obj, wire_names: Dict[str, str]) -> WirePairs:
    return [(wire_names.get(f.name, f.name), str(getattr(obj, f.name) or "")) for f in fields(obj)]


def signatures_match(expected: str, received: Optional[str]) -> bool:
    if not received:
        return False
    return hmac.compare_digest(expected.lower(), received.strip().lower())


# -- PayFast -------------------------------------------------------------------


@dataclass
class PayFastFields:
    merchant_id: str
    merchant_key: str
    return_url: str
    cancel_url: str
    notify_url: str
    name_first: str
    name_last: str
    email_address: str
    cell_number: str
    m_payment_id: str
    amount: str
    item_name: str
    item_description: str
    custom_int1: str
    custom_str1: str
    custom_str2: str
    custom_str3: str
    custom_str4: str
    custom_str5: str

    def to_pairs(self) -> WirePairs:
        return _dataclass_pairs(self, {})


def payfast_signature(pairs: Sequence[Tuple[str, str]], passphrase: str = "") -> str:
    """MD5 over ``key=quote_plus(value)`` for every non-empty field, joined by ``&``.

    Field order is the order given; ``signature`` itself is skipped and the
    passphrase, when set, is appended last.
    """
    parts = [
        f"{key}={quote_plus(str(value).strip())}"
        for key, value in pairs
        if key != "signature" and str(value).strip() != ""
    ]
    if passphrase:
        parts.append(f"passphrase={quote_plus(passphrase.strip())}")
    return hashlib.md5("&".join(parts).encode("utf-8")).hexdigest()


class PayFastGateway:
    name = "payfast"
    PROCESS_PATH = "/eng/process"

    def __init__(
        self,
        *,
        merchant_id: str,
        merchant_key: str,
        passphrase: str,
        base_url: str,
        app_base_url: str,
        rng: Optional[random.Random] = None,
    ):
        self.merchant_id = merchant_id
        self.merchant_key = merchant_key
        self.passphrase = passphrase
        self.base_url = base_url.rstrip("/")
        self.app_base_url = app_base_url.rstrip("/")
        self._rng = rng or random.Random()

    def build_fields(self, request: PaymentRequest) -> PayFastFields:
        first, _, last = request.customer.name.strip().partition(" ")
        return PayFastFields(
            merchant_id=self.merchant_id,
            merchant_key=self.merchant_key,
            return_url=f"{self.app_base_url}/orders/success?{urlencode({'orderId': request.order_id})}",
            cancel_url=f"{self.app_base_url}/checkout?{urlencode({'error': 'Payment cancelled'})}",
            notify_url=f"{self.app_base_url}/api/payment/callback",
            name_first=first,
            name_last=last.strip(),
            email_address=request.customer.email,
            cell_number=request.customer.phone,
            m_payment_id=request.order_id,
            amount=format_decimal_amount(request.amount),
            item_name=f"Mobile Shop Order #{request.order_id}",
            item_description=f"Payment for mobile phone order #{request.order_id}",
            custom_int1="1",
            custom_str1=request.order_id,
            custom_str2=request.customer.email,
            custom_str3=request.billing.city,
            custom_str4=request.billing.country,
            custom_str5=request.card.last4,
        )

    def sign(self, pairs: Sequence[Tuple[str, str]]) -> str:
        return payfast_signature(pairs, self.passphrase)

    def verify(self, pairs: Sequence[Tuple[str, str]]) -> bool:
        received = dict(pairs).get("signature")
        return signatures_match(self.sign(pairs), received)

    def process(self, request: PaymentRequest) -> PaymentResponse:
        pairs = [(k, v) for k, v in self.build_fields(request).to_pairs() if v != ""]
        signature = self.sign(pairs)
        redirect_url = f"{self.base_url}{self.PROCESS_PATH}?{urlencode(pairs + [('signature', signature)])}"
        logger.info("PayFast payment prepared for order %s (amount=%s)", request.order_id, dict(pairs)["amount"])
        # The real outcome arrives through the ITN callback once the customer
        # leaves the hosted page; until then the outcome is simulated.
        response = mock_outcome(self._rng, prefix="PF", label="PayFast")
        response.redirect_url = redirect_url
        if response.success:
            response.message = "Payment processed successfully via PayFast"
        return response


# -- JazzCash ------------------------------------------------------------------


_JAZZCASH_WIRE_NAMES = {
    "version": "pp_Version",
    "txn_type": "pp_TxnType",
    "language": "pp_Language",
    "merchant_id": "pp_MerchantID",
    "sub_merchant_id": "pp_SubMerchantID",
    "password": "pp_Password",
    "bank_id": "pp_BankID",
    "product_id": "pp_ProductID",
    "txn_ref_no": "pp_TxnRefNo",
    "amount": "pp_Amount",
    "txn_currency": "pp_TxnCurrency",
    "txn_date_time": "pp_TxnDateTime",
    "bill_reference": "pp_BillReference",
    "description": "pp_Description",
    "txn_expiry_date_time": "pp_TxnExpiryDateTime",
    "return_url": "pp_ReturnURL",
    "secure_hash": "pp_SecureHash",
    "customer_name": "ppmpf_1",
    "customer_email": "ppmpf_2",
    "customer_phone": "ppmpf_3",
    "card_last4": "ppmpf_4",
    "billing_address": "ppmpf_7",
    "billing_city": "ppmpf_8",
    "billing_postal_code": "ppmpf_9",
    "billing_country": "ppmpf_10",
}


@dataclass
class JazzCashFields:
    merchant_id: str
    password: str
    txn_ref_no: str
    amount: str
    txn_date_time: str
    bill_reference: str
    description: str
    txn_expiry_date_time: str
    return_url: str
    customer_name: str
    customer_email: str
    customer_phone: str
    card_last4: str
    billing_address: str
    billing_city: str
    billing_postal_code: str
    billing_country: str
    version: str = "1.1"
    txn_type: str = "MWALLET"
    language: str = "EN"
    txn_currency: str = "PKR"
    sub_merchant_id: str = ""
    bank_id: str = ""
    product_id: str = ""
    secure_hash: str = ""

    def to_pairs(self) -> WirePairs:
        return _dataclass_pairs(self, _JAZZCASH_WIRE_NAMES)


def jazzcash_secure_hash(pairs: Sequence[Tuple[str, str]], integrity_salt: str, secret: str) -> str:
    """SHA-256 over ``salt & <pp_ values> & secret``.

    The ``pp_`` fields are taken sorted by name, skipping empty values and
    ``pp_SecureHash``; ``ppmpf_`` fields are not signed.
    """
    values = [
        str(value)
        for key, value in sorted(pairs, key=lambda kv: kv[0])
        if key.startswith("pp_") and key != "pp_SecureHash" and str(value) != ""
    ]
    hash_string = "&".join([integrity_salt, *values, secret])
    return hashlib.sha256(hash_string.encode("utf-8")).hexdigest()


def _jazzcash_timestamp(moment: datetime) -> str:
    return moment.strftime("%Y%m%d%H%M%S")


class JazzCashGateway:
    name = "jazzcash"
    TRANSACTION_PATH = "/ApplicationAPI/API/Payment/DoTransaction"
    SUCCESS_CODE = "000"
    EXPIRY_MINUTES = 30

    def __init__(
        self,
        *,
        merchant_id: str,
        password: str,
        integrity_salt: str,
        base_url: str,
        app_base_url: str,
        currency: str = "PKR",
        timeout: float = 30.0,
        http=None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.merchant_id = merchant_id
        self.password = password
        self.integrity_salt = integrity_salt
        self.base_url = base_url.rstrip("/")
        self.app_base_url = app_base_url.rstrip("/")
        self.currency = currency
        self.timeout = timeout
        self._http = http or requests.Session()
        self._clock = clock

    def build_fields(self, request: PaymentRequest) -> JazzCashFields:
        now = self._clock()
        return JazzCashFields(
            merchant_id=self.merchant_id,
            password=self.password,
            txn_ref_no=request.order_id,
            amount=format_minor_units(request.amount),
            txn_currency=request.currency or self.currency,
            txn_date_time=_jazzcash_timestamp(now),
            bill_reference=request.order_id,
            description=f"Payment for Order #{request.order_id}",
            txn_expiry_date_time=_jazzcash_timestamp(now + timedelta(minutes=self.EXPIRY_MINUTES)),
            return_url=f"{self.app_base_url}/api/payment/callback",
            customer_name=request.customer.name,
            customer_email=request.customer.email,
            customer_phone=request.customer.phone,
            card_last4=request.card.last4,
            billing_address=request.billing.address,
            billing_city=request.billing.city,
            billing_postal_code=request.billing.postal_code,
            billing_country=request.billing.country,
        )

    def sign(self, pairs: Sequence[Tuple[str, str]]) -> str:
        return jazzcash_secure_hash(pairs, self.integrity_salt, self.password)

    def verify(self, pairs: Sequence[Tuple[str, str]]) -> bool:
        received = dict(pairs).get("pp_SecureHash")
        return signatures_match(self.sign(pairs), received)

    def process(self, request: PaymentRequest) -> PaymentResponse:
        payment_fields = self.build_fields(request)
        payment_fields.secure_hash = self.sign(payment_fields.to_pairs())
        url = f"{self.base_url}{self.TRANSACTION_PATH}"
        try:
            response = self._http.post(
                url,
                data=payment_fields.to_pairs(),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            result = response.json()
        except requests.exceptions.Timeout as exc:
            raise GatewayError(self.name, "timeout") from exc
        except (requests.exceptions.RequestException, ValueError) as exc:
            raise GatewayError(self.name, str(exc)) from exc
        if not isinstance(result, dict):
            raise GatewayError(self.name, "unexpected response body")

        code = str(result.get("pp_ResponseCode") or result.get("ResponseCode") or "")
        message = result.get("pp_ResponseMessage") or result.get("ResponseMessage")
        if code == self.SUCCESS_CODE:
            return PaymentResponse(
                success=True,
                transaction_id=result.get("pp_TxnRefNo") or payment_fields.txn_ref_no,
                message="Payment processed successfully via JazzCash",
            )
        logger.info("JazzCash declined order %s with code %s", request.order_id, code or "<none>")
        return PaymentResponse(
            success=False,
            error=message or FAILED_PAYMENT_ERROR,
            message=message or FAILED_PAYMENT_MESSAGE,
        )


# -- Mock ----------------------------------------------------------------------


class MockGateway:
    name = "mock"

    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()

    def process(self, request: PaymentRequest) -> PaymentResponse:
        return mock_outcome(self._rng)
