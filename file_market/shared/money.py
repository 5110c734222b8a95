from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation

SATS_PER_COIN = 100_000_000


def to_sats(value: str | int | float | Decimal) -> int:
    """
    "2.5" -> 250000000. Rounds down to a whole sat; anything unparsable -> 0.
    """
    try:
        raw = str(value).strip().replace(",", ".")
        d = Decimal(raw)
    except (InvalidOperation, ValueError):
        return 0
    if not d.is_finite():
        return 0
    return int((d * SATS_PER_COIN).to_integral_value(rounding=ROUND_FLOOR))


def from_sats(sats: int) -> str:
    return f"{Decimal(int(sats or 0)) / SATS_PER_COIN:.8f}"


def sats_to_coins(sats: int) -> float:
    # ledger API takes coins as a JSON number
    return int(sats or 0) / SATS_PER_COIN
