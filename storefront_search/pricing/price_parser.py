# storefront_search/pricing/price_parser.py

"""Locale-aware price parsing and currency conversion."""

import logging
import math
import re

logger = logging.getLogger("storefront_search.pricing")

_NON_NUMERIC_RE = re.compile(r"[^\d,.]")


def parse_price(text: str | None) -> float:
    """Parse a price like ``'€59,99'`` or ``'$1,234.56'`` into a float.

    Whichever of ``,`` / ``.`` appears last is the decimal separator
    when it is followed by at most two digits; otherwise every comma
    and dot is a thousands separator.  Anything unparseable is ``0.0``.
    """
    if not text:
        return 0.0
    cleaned = _NON_NUMERIC_RE.sub("", text)
    if not cleaned:
        return 0.0

    separator_at = max(cleaned.rfind(","), cleaned.rfind("."))
    if separator_at >= 0 and len(cleaned) - separator_at - 1 <= 2:
        integer_part = re.sub(r"[,.]", "", cleaned[:separator_at])
        fraction = cleaned[separator_at + 1:]
        normalised = f"{integer_part}.{fraction}"
    else:
        normalised = re.sub(r"[,.]", "", cleaned)

    if normalised in ("", "."):
        return 0.0
    try:
        value = float(normalised)
    except ValueError:
        logger.debug("Unparseable price text %r", text)
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return value


def convert(
    amount: float,
    currency_code: str,
    rates: dict[str, float],
) -> tuple[float, float]:
    """Convert *amount* into the reference currency.

    Returns ``(converted_amount, rate_used)``.  Unknown currencies are
    treated as already being in the reference currency (rate 1.0).
    """
    rate = rates.get(currency_code.upper()) if currency_code else None
    if rate is None:
        logger.debug(
            "No rate for %r, assuming reference currency", currency_code
        )
        rate = 1.0
    return amount * rate, rate


def format_price(amount: float | None, symbol: str) -> str:
    """Render an amount with its currency symbol, e.g. ``'€59.99'``."""
    if amount is None:
        return "Price not available"
    return f"{symbol}{amount:.2f}"


def discount_percentage(
    original: float | None,
    current: float | None,
) -> int | None:
    """Whole-percent saving of *current* against *original*.

    Clamped to ``0..100``; ``None`` when there is no usable original
    price to compare against.
    """
    if original is None or current is None:
        return None
    if not (math.isfinite(original) and math.isfinite(current)) or original <= 0:
        return None
    percent = (original - current) / original * 100
    return round(min(max(percent, 0.0), 100.0))
