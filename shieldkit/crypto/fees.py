"""
Relayer fee formula.

Units
-----
- `amount`, `gas_price`, `refund` and the result are integers in smallest units
  (`amount` and the fee in the pool currency, gas in the native coin).
- `currency_price` is the price of one smallest unit of the pool currency in
  smallest native units, already scaled by the caller for any decimal
  difference between the two.
- `service_fee_percent` is a percentage in [0, 100] and may be fractional.

    fee = (gas_price * gas_limit + refund) // currency_price
          + floor(amount * service_fee_percent / 100)
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation, localcontext
from typing import Union

from shieldkit.errors import EncodingError, InvalidPrice

Number = Union[int, str, Decimal, float]


def _decimal(value: Number, name: str) -> Decimal:
    try:
        # str() keeps floats like 0.1 exact as written
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise EncodingError(f"{name} is not a number", value=str(value)).with_cause(e) from e


def calculate_fee(
    amount: int,
    currency_price: Number,
    service_fee_percent: Number,
    gas_price: int,
    gas_limit: int,
    refund: int = 0,
) -> int:
    price = _decimal(currency_price, "currency_price")
    if not price.is_finite() or price <= 0:
        raise InvalidPrice(currency_price)
    percent = _decimal(service_fee_percent, "service_fee_percent")
    if not percent.is_finite() or percent < 0:
        raise EncodingError("service fee percent must be >= 0", value=str(service_fee_percent))

    with localcontext() as ctx:
        ctx.prec = 120
        gas_cost = Decimal(int(gas_price) * int(gas_limit) + int(refund))
        gas_in_currency = (gas_cost / price).to_integral_value(rounding=ROUND_FLOOR)
        service = (Decimal(int(amount)) * percent / Decimal(100)).to_integral_value(rounding=ROUND_FLOOR)
    return int(gas_in_currency) + int(service)


def with_fee_buffer(fee: int, per_mille: int = 1) -> int:
    """Add a safety margin of `per_mille`/1000 (default 0.1 %), rounding down."""
    return int(fee) * (1000 + int(per_mille)) // 1000


__all__ = ["calculate_fee", "with_fee_buffer"]
