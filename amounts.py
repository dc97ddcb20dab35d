from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from babel.numbers import format_currency, format_decimal

Number = Union[Decimal, int, float]


def parse_amount(value: Optional[str], *, allow_negative: bool = False) -> Decimal:
    """Parse a user-typed amount such as ``"₹1,23,456.50"``.

    Commas are digit grouping here (Indian or Western), never a decimal mark.
    """
    clean = (value or "").strip().replace("₹", "").replace(" ", "").replace(",", "")
    if not clean:
        raise ValueError("Amount is required")
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    if amount < 0 and not allow_negative:
        raise ValueError("Amount must be positive")
    return amount.quantize(Decimal("0.01"))


def format_money(amount: Number, *, currency: str = "INR", locale: str = "en_IN") -> str:
    return format_currency(amount, currency, locale=locale)


def format_percent(value: Number, *, locale: str = "en_IN") -> str:
    return f"{format_decimal(value, format='#,##0', locale=locale)}%"
