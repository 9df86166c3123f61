import re
from datetime import date
from typing import Optional


_NON_DIGITS = re.compile(r"\D")


def digits_only(value: Optional[str]) -> str:
    return _NON_DIGITS.sub("", str(value or ""))


def validate_card_number(card_number: str) -> bool:
    """Length 13-19 after stripping non-digits, and a valid Luhn checksum."""
    cleaned = digits_only(card_number)
    if len(cleaned) < 13 or len(cleaned) > 19:
        return False
    total = 0
    for index, char in enumerate(reversed(cleaned)):
        digit = int(char)
        if index % 2 == 1:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
    return total % 10 == 0


def validate_expiry_date(expiry: str, today: Optional[date] = None) -> bool:
    """Accept ``MMYY`` (any separators); the current month is still valid."""
    cleaned = digits_only(expiry)
    if len(cleaned) != 4:
        return False
    month = int(cleaned[:2])
    year = int(cleaned[2:])
    if month < 1 or month > 12:
        return False
    today = today or date.today()
    current_year = today.year % 100
    if year < current_year or (year == current_year and month < today.month):
        return False
    return True


def validate_cvv(cvv: str) -> bool:
    return len(digits_only(cvv)) in (3, 4)


def format_card_number(card_number: str) -> str:
    cleaned = digits_only(card_number)
    return " ".join(cleaned[i:i + 4] for i in range(0, len(cleaned), 4))


def format_expiry_date(expiry: str) -> str:
    cleaned = digits_only(expiry)
    if len(cleaned) >= 2:
        return cleaned[:2] + "/" + cleaned[2:4]
    return cleaned
