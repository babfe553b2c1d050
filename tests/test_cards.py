"""Tests for card validation and network detection."""

from datetime import date

import pytest

from storefront.domain.cards import (
    check_cvv, clean_card_holder, clean_card_number, detect_card_type, parse_expiry, validate_card
)
from storefront.domain.exceptions import InvalidInputError
from storefront.domain.models import CardType

TODAY = date(2026, 6, 15)


class TestDetectCardType:
    @pytest.mark.parametrize(
        "number,expected",
        [
            ("4111111111111111", CardType.VISA),
            ("5105105105105100", CardType.MASTERCARD),
            ("2221000000000009", CardType.MASTERCARD),
            ("2720990000000007", CardType.MASTERCARD),
            ("378282246310005", CardType.AMEX),
            ("341111111111111", CardType.AMEX),
            ("6011111111111117", CardType.DISCOVER),
            ("6221260000000000", CardType.DISCOVER),
            ("6229250000000000", CardType.DISCOVER),
            ("6445644564456445", CardType.DISCOVER),
            ("6500000000000002", CardType.DISCOVER),
            ("3530111333300000", CardType.UNKNOWN),
        ],
    )
    def test_prefix_ranges(self, number, expected):
        assert detect_card_type(number) == expected

    def test_boundaries_outside_ranges(self):
        assert detect_card_type("2220990000000000") == CardType.UNKNOWN
        assert detect_card_type("2721000000000000") == CardType.UNKNOWN
        assert detect_card_type("5600000000000000") == CardType.UNKNOWN
        assert detect_card_type("6221250000000000") == CardType.UNKNOWN


class TestCardNumber:
    def test_strips_spaces_and_dashes(self):
        assert clean_card_number("4111 1111-1111 1111") == "4111111111111111"

    def test_rejects_letters(self):
        with pytest.raises(InvalidInputError, match="only contain numbers"):
            clean_card_number("4111 1111 1111 abcd")

    @pytest.mark.parametrize("number", ["411111111111", "41111111111111111111"])
    def test_rejects_bad_length(self, number):
        with pytest.raises(InvalidInputError, match="between 13 and 19"):
            clean_card_number(number)


class TestExpiry:
    def test_two_digit_year_is_expanded(self):
        assert parse_expiry("07/28", today=TODAY) == ("07", "2028")

    def test_four_digit_year(self):
        assert parse_expiry("12/2030", today=TODAY) == ("12", "2030")

    def test_current_month_is_still_valid(self):
        assert parse_expiry("06/26", today=TODAY) == ("06", "2026")

    @pytest.mark.parametrize("month", ["13", "00", "1", "7"])
    def test_month_must_be_two_digits_in_range(self, month):
        with pytest.raises(InvalidInputError, match="Month must be between 01 and 12"):
            parse_expiry(f"{month}/28", today=TODAY)

    def test_expired(self):
        with pytest.raises(InvalidInputError, match="Card has expired"):
            parse_expiry("05/26", today=TODAY)

    def test_too_far_in_future(self):
        with pytest.raises(InvalidInputError, match="too far in the future"):
            parse_expiry("01/2047", today=TODAY)

    @pytest.mark.parametrize("value", ["0728", "07/", "07/2x"])
    def test_bad_format(self, value):
        with pytest.raises(InvalidInputError, match="Invalid expiry date format"):
            parse_expiry(value, today=TODAY)


class TestCvvAndHolder:
    def test_amex_requires_four_digits(self):
        check_cvv("1234", CardType.AMEX)
        with pytest.raises(InvalidInputError, match="4-digit CVV"):
            check_cvv("123", CardType.AMEX)

    def test_other_networks_require_three_digits(self):
        check_cvv("123", CardType.VISA)
        with pytest.raises(InvalidInputError, match="CVV must be 3 digits"):
            check_cvv("1234", CardType.VISA)

    def test_cvv_digits_only(self):
        with pytest.raises(InvalidInputError, match="CVV can only contain numbers"):
            check_cvv("12a", CardType.VISA)

    def test_holder_letters_and_spaces(self):
        assert clean_card_holder("  Alice Smith ") == "Alice Smith"
        with pytest.raises(InvalidInputError, match="letters and spaces"):
            clean_card_holder("Alice 2nd")


class TestValidateCard:
    def test_returns_only_last_four_and_metadata(self):
        card = validate_card("4111 1111 1111 1234", "Alice Smith", "07/28", "123", today=TODAY)
        assert card.last_four == "1234"
        assert card.card_type == CardType.VISA
        assert (card.expiry_month, card.expiry_year) == ("07", "2028")
        assert not hasattr(card, "cvv")

    def test_missing_fields(self):
        with pytest.raises(InvalidInputError, match="All fields are required"):
            validate_card("4111111111111111", "Alice", "07/28", None, today=TODAY)

    def test_number_checked_before_expiry(self):
        with pytest.raises(InvalidInputError, match="only contain numbers"):
            validate_card("abcd", "Alice", "13/28", "123", today=TODAY)
