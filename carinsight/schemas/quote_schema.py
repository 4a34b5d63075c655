"""Financing and trade-in calculation results."""

from enum import Enum

from pydantic import BaseModel


class FinancingSimulation(BaseModel):
    """Amortized loan simulation for a single term."""
    vehicle_price: int
    down_payment: int
    financed_amount: int
    months: int
    monthly_payment: int
    total_amount: int
    monthly_rate: float
    annual_rate_pct: float


class Confidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TradeInEstimate(BaseModel):
    """Estimated value band for the customer's current car."""
    min_value: int
    max_value: int
    confidence: Confidence

    @property
    def mid_value(self) -> int:
        return round((self.min_value + self.max_value) / 2)
