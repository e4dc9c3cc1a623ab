from decimal import Decimal, ROUND_HALF_UP

MONEY_QUANT = Decimal("0.01")
UNIT_COST_QUANT = Decimal("0.0001")
ZERO_MONEY = Decimal("0.00")


def to_money(value: Decimal | int | float | str) -> Decimal:
    return Decimal(str(value)).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def to_unit_cost(value: Decimal | int | float | str) -> Decimal:
    # Per-unit cost shares keep extra precision; only totals are rounded to cents.
    return Decimal(str(value)).quantize(UNIT_COST_QUANT, rounding=ROUND_HALF_UP)


def money_out(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(to_money(value))
