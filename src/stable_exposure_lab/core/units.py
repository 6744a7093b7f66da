"""Token amount conversions."""

from __future__ import annotations

import math
from decimal import Decimal, InvalidOperation


def format_token_amount(raw_value: object, decimals: object = 18) -> float:
    """Scale a raw integer token amount by ``10**decimals``.

    Accepts ints, decimal strings and hex strings (``"0x..."``) as returned by
    JSON-RPC. Invalid input yields ``0.0`` rather than raising.
    """

    try:
        places = int(decimals)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        places = 18
    if places < 0:
        places = 0

    if raw_value is None:
        return 0.0
    try:
        if isinstance(raw_value, str) and raw_value.lower().startswith("0x"):
            amount = Decimal(int(raw_value, 16))
        else:
            amount = Decimal(str(raw_value))
    except (InvalidOperation, ValueError):
        return 0.0
    if not amount.is_finite():
        return 0.0

    scaled = float(amount.scaleb(-places))
    return scaled if math.isfinite(scaled) else 0.0


__all__ = ["format_token_amount"]
