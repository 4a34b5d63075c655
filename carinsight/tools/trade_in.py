"""
Trade-in value estimation.

A flat baseline depreciates geometrically with age, then is adjusted by a
brand resale multiplier and by how far the odometer is from the mileage
expected for the car's age. Real appraisals happen in person; this only
gives the customer a ballpark band.
"""

import logging
from datetime import date
from typing import Optional

from carinsight.config import settings
from carinsight.schemas.quote_schema import Confidence, TradeInEstimate

logger = logging.getLogger(__name__)

BRAND_MULTIPLIERS: dict[str, float] = {
    "toyota": 1.1,
    "honda": 1.1,
    "volkswagen": 1.0,
    "chevrolet": 0.95,
    "fiat": 0.9,
    "hyundai": 1.0,
    "jeep": 1.15,
    "ford": 0.95,
    "renault": 0.9,
    "nissan": 0.95,
}


def mileage_factor(mileage: int, age: int) -> float:
    """Value correction for mileage above or below the expected for ``age``.

    Every 100k km of deviation shifts the value by 10%, clamped to the
    configured range.
    """
    cfg = settings.trade_in
    expected = age * cfg.km_per_year
    factor = 1 - ((mileage - expected) / 100_000) * 0.1
    return max(cfg.min_mileage_factor, min(cfg.max_mileage_factor, factor))


def confidence_for_age(age: int) -> Confidence:
    if age <= 5:
        return Confidence.HIGH
    if age <= 10:
        return Confidence.MEDIUM
    return Confidence.LOW


def estimate_trade_in(
    brand: str,
    year: int,
    mileage: Optional[int] = None,
    current_year: Optional[int] = None,
) -> TradeInEstimate:
    """Estimate a [min, max] value band for a used car.

    Raises:
        ValueError: If ``year`` lies in the future or mileage is negative.
    """
    cfg = settings.trade_in
    current_year = current_year or date.today().year
    age = current_year - year
    if age < 0:
        raise ValueError(f"year {year} is after {current_year}")
    if mileage is not None and mileage < 0:
        raise ValueError(f"mileage must not be negative, got {mileage}")

    value = cfg.base_value * (1 - cfg.annual_depreciation) ** age
    value *= BRAND_MULTIPLIERS.get(brand.lower(), 1.0)
    if mileage:
        value *= mileage_factor(mileage, age)

    estimate = TradeInEstimate(
        min_value=round(value * cfg.low_band),
        max_value=round(value * cfg.high_band),
        confidence=confidence_for_age(age),
    )
    logger.debug(
        "Trade-in estimated: %s %d (%s km) -> %d-%d",
        brand, year, mileage, estimate.min_value, estimate.max_value,
    )
    return estimate
