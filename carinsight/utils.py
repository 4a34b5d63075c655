"""Shared utilities used across the sales assistant."""

import re
from typing import Optional


def format_brl(value: Optional[float]) -> str:
    """Format a value as whole Brazilian reais, using '.' as thousands separator.

    Examples:
        >>> format_brl(95000)
        '95.000'
        >>> format_brl(1234567.8)
        '1.234.568'
        >>> format_brl(None)
        'Consulte'
    """
    if value is None or value <= 0:
        return "Consulte"
    return f"{round(value):,}".replace(",", ".")


def first_name(full_name: Optional[str]) -> str:
    """Return the first token of a name, or an empty string."""
    if not full_name:
        return ""
    return full_name.strip().split(" ")[0]


def parse_amount(digits: str, unit: Optional[str] = None) -> int:
    """Parse an amount written in pt-BR style into an integer.

    ``digits`` may carry '.' thousands separators. A ``mil``/``k`` unit
    multiplies by one thousand.

    Examples:
        >>> parse_amount("85.000")
        85000
        >>> parse_amount("20", "mil")
        20000
    """
    value = int(re.sub(r"[^\d]", "", digits) or "0")
    if unit and unit.lower() in ("mil", "k"):
        value *= 1000
    return value
