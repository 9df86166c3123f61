import random
import string
import time
from decimal import Decimal
from typing import Optional, Union


Money = Union[Decimal, int, float, str]

# (exclusive upper bound, fee); the last tier has no upper bound
CANCELLATION_FEE_TIERS = (
    (Decimal("50000"), Decimal("3000")),
    (Decimal("80000"), Decimal("5000")),
    (Decimal("150000"), Decimal("8000")),
)
MAX_CANCELLATION_FEE = Decimal("10000")

TRACKING_PREFIX = "MS"
_TRACKING_ALPHABET = string.ascii_uppercase + string.digits


def to_money(value: Money) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() keeps floats like 0.1 from dragging binary noise into Decimal
    return Decimal(str(value))


def calculate_cancellation_fee(total_amount: Money) -> Decimal:
    """Flat cancellation fee for an order total, in the order's currency unit.

    < 50,000 -> 3,000; < 80,000 -> 5,000; < 150,000 -> 8,000; else 10,000.
    """
    amount = to_money(total_amount)
    for upper, fee in CANCELLATION_FEE_TIERS:
        if amount < upper:
            return fee
    return MAX_CANCELLATION_FEE


def generate_tracking_number(now: Optional[float] = None, rng: Optional[random.Random] = None) -> str:
    """Return ``MS`` + last 6 digits of the epoch millis + 4 random [A-Z0-9].

    Uniqueness is best effort only: two calls in the same millisecond can
    collide, so this must never be used as a key.
    """
    millis = int((time.time() if now is None else now) * 1000)
    suffix = "".join((rng or random).choice(_TRACKING_ALPHABET) for _ in range(4))
    return f"{TRACKING_PREFIX}{str(millis)[-6:].zfill(6)}{suffix}"
