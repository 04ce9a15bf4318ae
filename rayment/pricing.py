"""
Price estimation: tariff + job characteristics → PriceBreakdown.

Client and provider must arrive at the same transfer amount, so the fees are
summed in Decimal and the total is rounded exactly once, at the end, up to
AMOUNT_DECIMALS places. Rounding up keeps the total at or above
minimum_price * (1 + platform_fee_rate) for every tariff.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Union

from rayment.errors import ValidationError
from rayment.schema import JobCharacteristics, PriceBreakdown, Tariff

PLATFORM_FEE_RATE = 0.05
AMOUNT_DECIMALS = 6
BYTES_PER_GB = 1024 ** 3

_QUANTUM = Decimal(1).scaleb(-AMOUNT_DECIMALS)

Number = Union[int, float, Decimal]


def to_decimal(value: Number) -> Decimal:
    """Exact decimal form of a tariff or amount (floats via their shortest repr)."""
    if isinstance(value, Decimal):
        return value
    return Decimal(repr(value))


def round_amount(value: Number) -> float:
    """Round a currency amount to AMOUNT_DECIMALS places, half-up."""
    return float(to_decimal(value).quantize(_QUANTUM, rounding=ROUND_HALF_UP))


def ceil_amount(value: Number) -> float:
    """Round a currency amount up to AMOUNT_DECIMALS places."""
    return float(to_decimal(value).quantize(_QUANTUM, rounding=ROUND_CEILING))


def estimate(
    tariff: Tariff,
    characteristics: JobCharacteristics,
    platform_fee_rate: float = PLATFORM_FEE_RATE,
) -> PriceBreakdown:
    """
    Price one job. Pure: no I/O, no clock, no randomness.

    A subtotal under tariff.minimum_price is lifted to the minimum. The
    platform fee is charged on top of the base price.
    """
    if platform_fee_rate < 0:
        raise ValidationError(f"platform_fee_rate must be >= 0, got {platform_fee_rate}")

    rate = to_decimal(platform_fee_rate)
    size_fee = Decimal(characteristics.size_bytes) / BYTES_PER_GB * to_decimal(tariff.price_per_unit_size)
    work_fee = characteristics.work_units * to_decimal(tariff.price_per_unit_work)
    time_fee = to_decimal(characteristics.estimated_time_seconds) * to_decimal(tariff.price_per_unit_time)

    subtotal = size_fee + work_fee + time_fee
    base_price = max(subtotal, to_decimal(tariff.minimum_price))
    platform_fee = base_price * rate

    return PriceBreakdown(
        base_price=float(base_price),
        size_fee=float(size_fee),
        work_fee=float(work_fee),
        time_fee=float(time_fee),
        platform_fee=float(platform_fee),
        total=ceil_amount(base_price + platform_fee),
    )
