from __future__ import annotations

from decimal import Decimal


def money_to_json(value: Decimal | None) -> float | None:
    """Render a Numeric column for JSON responses."""
    if value is None:
        return None
    return float(value)
