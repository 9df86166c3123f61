"""Tests for card validation and formatting helpers."""

from datetime import date

import pytest

from shopcore.utils.validators import (
    format_card_number,
    format_expiry_date,
    validate_card_number,
    validate_cvv,
    validate_expiry_date,
)


class TestCardNumber:
    @pytest.mark.parametrize(
        "number",
        ["4111111111111111", "4111 1111 1111 1111", "4111-1111-1111-1111", "5555555555554444", "378282246310005"],
    )
    def test_valid_numbers(self, number):
        assert validate_card_number(number)

    def test_rejects_bad_checksum(self):
        assert not validate_card_number("4111111111111112")

    def test_rejects_short_and_long(self):
        assert not validate_card_number("4111111111")
        assert not validate_card_number("4" * 20)

    def test_rejects_empty(self):
        assert not validate_card_number("")


class TestExpiry:
    today = date(2026, 5, 15)

    def test_current_month_is_valid(self):
        assert validate_expiry_date("0526", today=self.today)

    def test_previous_month_is_expired(self):
        assert not validate_expiry_date("0426", today=self.today)

    def test_previous_year_is_expired(self):
        assert not validate_expiry_date("1225", today=self.today)

    def test_future_with_separator(self):
        assert validate_expiry_date("01/30", today=self.today)

    @pytest.mark.parametrize("value", ["1326", "0026", "526", "052026", ""])
    def test_malformed(self, value):
        assert not validate_expiry_date(value, today=self.today)


class TestCvv:
    @pytest.mark.parametrize("value", ["123", "1234"])
    def test_valid(self, value):
        assert validate_cvv(value)

    @pytest.mark.parametrize("value", ["12", "12345", ""])
    def test_invalid(self, value):
        assert not validate_cvv(value)


def test_format_card_number_groups_of_four():
    assert format_card_number("4111111111111111") == "4111 1111 1111 1111"
    assert format_card_number("3782-822463-10005") == "3782 8224 6310 005"


def test_format_expiry_date():
    assert format_expiry_date("1229") == "12/29"
    assert format_expiry_date("1") == "1"
