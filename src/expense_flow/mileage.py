from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

from expense_flow.repositories import RecordStore

logger = logging.getLogger(__name__)

MILEAGE_RATE_VERSION = "MILEAGE_RATE_2025_CA"
MILEAGE_RATE_SETTING = "mileage_rate"
DEFAULT_MILEAGE_RATE = Decimal("0.68")

CENT = Decimal("0.01")

Number = Union[Decimal, str, int, float]


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        # Go through repr so 0.1 stays 0.1 rather than its binary expansion.
        value = repr(value)
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Not a decimal number: {value!r}") from exc


def quantize_amount(value: Decimal) -> Decimal:
    try:
        return value.quantize(CENT, rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"Amount out of range: {value}") from exc


def calculate_amount(distance: Number, rate: Number) -> Decimal:
    """Reimbursement for a mileage claim, rounded half-up to cents.

    A zero distance is a valid claim worth 0.00.
    """
    distance_value = to_decimal(distance)
    rate_value = to_decimal(rate)
    if not distance_value.is_finite() or distance_value < 0:
        raise ValueError(f"Distance must be zero or positive, got {distance_value}")
    if not rate_value.is_finite() or rate_value <= 0:
        raise ValueError(f"Mileage rate must be positive, got {rate_value}")
    try:
        product = distance_value * rate_value
    except ArithmeticError as exc:
        raise ValueError(f"Distance out of range: {distance_value}") from exc
    return quantize_amount(product)


def get_mileage_rate(store: RecordStore) -> Decimal:
    raw = store.get_setting(MILEAGE_RATE_SETTING)
    if raw is None:
        return DEFAULT_MILEAGE_RATE
    try:
        rate = to_decimal(raw)
    except ValueError:
        rate = None
    if rate is None or not rate.is_finite() or rate <= 0:
        logger.warning(
            "Ignoring invalid mileage rate setting %r, using default %s (%s)",
            raw,
            DEFAULT_MILEAGE_RATE,
            MILEAGE_RATE_VERSION,
        )
        return DEFAULT_MILEAGE_RATE
    return rate
