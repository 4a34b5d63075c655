"""
Vehicle financing simulation.

Standard amortizing-loan (Price table) payment at a fixed monthly rate.
The rate approximates typical Brazilian used-car financing and is set in
``settings.finance``.
"""

import logging
from typing import Optional

from carinsight.config import settings
from carinsight.schemas.quote_schema import FinancingSimulation

logger = logging.getLogger(__name__)


def annual_rate(monthly_rate: float) -> float:
    """Effective annual rate obtained by compounding the monthly rate."""
    return (1 + monthly_rate) ** 12 - 1


def monthly_payment(principal: float, monthly_rate: float, months: int) -> float:
    """Unrounded monthly installment for ``principal`` over ``months``."""
    if months <= 0:
        raise ValueError(f"months must be positive, got {months}")
    if principal <= 0:
        return 0.0
    if monthly_rate == 0:
        return principal / months
    growth = (1 + monthly_rate) ** months
    return principal * monthly_rate * growth / (growth - 1)


def simulate_financing(
    vehicle_price: float,
    down_payment: Optional[float] = None,
    months: Optional[int] = None,
    monthly_rate: Optional[float] = None,
) -> FinancingSimulation:
    """Simulate financing ``vehicle_price`` after ``down_payment``.

    Defaults to the configured down payment share and term when those are
    not given.

    Raises:
        ValueError: If the price is not positive, the down payment is
            negative or covers the whole price, or the term is not positive.
    """
    if vehicle_price <= 0:
        raise ValueError(f"vehicle_price must be positive, got {vehicle_price}")

    finance = settings.finance
    rate = finance.monthly_rate if monthly_rate is None else monthly_rate
    term = finance.default_months if months is None else months
    down = vehicle_price * finance.default_down_payment_pct if down_payment is None else down_payment

    if down < 0:
        raise ValueError(f"down_payment must not be negative, got {down}")
    if down >= vehicle_price:
        raise ValueError("down_payment must be lower than the vehicle price")

    principal = vehicle_price - down
    payment = monthly_payment(principal, rate, term)
    total = payment * term + down

    logger.debug(
        "Financing simulated: price=%.0f down=%.0f months=%d payment=%.2f",
        vehicle_price, down, term, payment,
    )
    return FinancingSimulation(
        vehicle_price=round(vehicle_price),
        down_payment=round(down),
        financed_amount=round(principal),
        months=term,
        monthly_payment=round(payment),
        total_amount=round(total),
        monthly_rate=rate,
        annual_rate_pct=round(annual_rate(rate) * 100, 2),
    )


def simulate_alternatives(
    vehicle_price: float,
    down_payment: float,
    terms: Optional[tuple[int, ...]] = None,
) -> list[FinancingSimulation]:
    """Simulations for the alternative terms shown next to the main one."""
    terms = settings.finance.alternative_months if terms is None else terms
    return [simulate_financing(vehicle_price, down_payment, months) for months in terms]
