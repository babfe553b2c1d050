"""Проверка реквизитов карты перед сохранением в хранилище способов оплаты.

Полный номер и CVV никуда не сохраняются: наружу отдаются только последние
четыре цифры и производные метаданные (тип карты, срок действия).
"""
import re
from dataclasses import dataclass
from datetime import date
from typing import Optional

from storefront.domain.exceptions import InvalidInputError
from storefront.domain.models import CardType

_SEPARATORS = re.compile(r"[\s-]")
_DIGITS = re.compile(r"^\d+$")
_MONTH = re.compile(r"^(0[1-9]|1[0-2])$")
_YEAR = re.compile(r"^(\d{2}|\d{4})$")
_HOLDER = re.compile(r"^[a-zA-Z\s]+$")

MAX_YEARS_AHEAD = 20
HOLDER_MAX_LENGTH = 50


@dataclass(frozen=True)
class CardDetails:
    last_four: str
    card_holder: str
    expiry_month: str
    expiry_year: str
    card_type: CardType


def _prefix_in(number: str, length: int, low: int, high: int) -> bool:
    return len(number) >= length and low <= int(number[:length]) <= high


def detect_card_type(number: str) -> CardType:
    """Тип карты по диапазонам начальных цифр (BIN)."""
    if number.startswith("4"):
        return CardType.VISA
    if _prefix_in(number, 2, 51, 55) or _prefix_in(number, 4, 2221, 2720):
        return CardType.MASTERCARD
    if number.startswith(("34", "37")):
        return CardType.AMEX
    if (
        number.startswith(("6011", "65"))
        or _prefix_in(number, 6, 622126, 622925)
        or _prefix_in(number, 3, 644, 649)
    ):
        return CardType.DISCOVER
    return CardType.UNKNOWN


def clean_card_number(card_number: str) -> str:
    cleaned = _SEPARATORS.sub("", card_number)
    if not _DIGITS.match(cleaned):
        raise InvalidInputError("Card number can only contain numbers")
    if not 13 <= len(cleaned) <= 19:
        raise InvalidInputError("Card number must be between 13 and 19 digits")
    return cleaned


def parse_expiry(expiry_date: str, today: Optional[date] = None) -> tuple[str, str]:
    """MM/YY или MM/YYYY -> (MM, YYYY)"""
    parts = [part.strip() for part in expiry_date.split("/")]
    if len(parts) != 2 or not all(parts):
        raise InvalidInputError("Invalid expiry date format (use MM/YY)")
    month, year = parts
    if not _MONTH.match(month):
        raise InvalidInputError("Month must be between 01 and 12")
    if not _YEAR.match(year):
        raise InvalidInputError("Invalid expiry date format (use MM/YY)")

    today = today or date.today()
    full_year = 2000 + int(year) if len(year) == 2 else int(year)
    if (full_year, int(month)) < (today.year, today.month):
        raise InvalidInputError("Card has expired")
    if full_year > today.year + MAX_YEARS_AHEAD:
        raise InvalidInputError("Expiry date too far in the future")
    return month, str(full_year)


def check_cvv(cvv: str, card_type: CardType) -> None:
    if not _DIGITS.match(cvv):
        raise InvalidInputError("CVV can only contain numbers")
    if card_type == CardType.AMEX:
        if len(cvv) != 4:
            raise InvalidInputError("American Express cards require a 4-digit CVV")
    elif len(cvv) != 3:
        raise InvalidInputError("CVV must be 3 digits")


def clean_card_holder(card_holder: str) -> str:
    holder = card_holder.strip()
    if not _HOLDER.match(holder):
        raise InvalidInputError("Card holder name can only contain letters and spaces")
    if len(holder) > HOLDER_MAX_LENGTH:
        raise InvalidInputError("Card holder name cannot exceed 50 characters")
    return holder


def validate_card(
    card_number: Optional[str],
    card_holder: Optional[str],
    expiry_date: Optional[str],
    cvv: Optional[str],
    today: Optional[date] = None,
) -> CardDetails:
    if not (card_number and card_holder and expiry_date and cvv):
        raise InvalidInputError("All fields are required")

    number = clean_card_number(card_number)
    month, year = parse_expiry(expiry_date, today)
    card_type = detect_card_type(number)
    check_cvv(cvv.strip(), card_type)
    holder = clean_card_holder(card_holder)

    return CardDetails(
        last_four=number[-4:],
        card_holder=holder,
        expiry_month=month,
        expiry_year=year,
        card_type=card_type,
    )
