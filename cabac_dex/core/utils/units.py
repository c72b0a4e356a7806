"""Decimal string <-> integer token unit conversion.

Token quantities travel through the engine as integers scaled by the token's
decimals; these helpers are the only place human strings are parsed or
produced.
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal, InvalidOperation


def _to_decimal(value: str | int | float | Decimal) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    return Decimal(str(value).strip())


def parse_units(amount: str | int | float | Decimal, decimals: int) -> int:
    """``"1.5"`` with 18 decimals -> ``1500000000000000000``.

    Digits beyond ``decimals`` are truncated. Empty input parses as zero.
    """
    if isinstance(amount, str) and not amount.strip():
        return 0
    try:
        amt = _to_decimal(amount)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid token amount: {amount}") from exc
    if not amt.is_finite():
        raise ValueError(f"Invalid token amount: {amount}")
    if amt < 0:
        raise ValueError("Amount must be non-negative")
    scale = Decimal(10) ** int(decimals)
    return int((amt * scale).to_integral_value(rounding=ROUND_DOWN))


def format_units(raw: int, decimals: int) -> str:
    """``1500000000000000000`` with 18 decimals -> ``"1.5"`` (no trailing zeros)."""
    raw = int(raw)
    sign = "-" if raw < 0 else ""
    whole, frac = divmod(abs(raw), 10 ** int(decimals))
    if decimals == 0 or frac == 0:
        return f"{sign}{whole}"
    frac_str = str(frac).rjust(int(decimals), "0").rstrip("0")
    return f"{sign}{whole}.{frac_str}"


def is_positive_amount(text: str | None) -> bool:
    """True when ``text`` parses to a strictly positive number."""
    if text is None or not str(text).strip():
        return False
    try:
        value = _to_decimal(text)
    except InvalidOperation:
        return False
    return value.is_finite() and value > 0
