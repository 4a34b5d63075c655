"""Buyer profile models accumulated over a conversation."""

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class UsageCategory(str, Enum):
    CITY = "city"
    TRIP = "trip"
    WORK = "work"
    MIXED = "mixed"
    RIDESHARE = "rideshare"


class BodyType(str, Enum):
    SEDAN = "sedan"
    HATCH = "hatch"
    SUV = "suv"
    PICKUP = "pickup"
    MINIVAN = "minivan"


class Transmission(str, Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class FuelType(str, Enum):
    GASOLINE = "gasoline"
    FLEX = "flex"
    DIESEL = "diesel"
    HYBRID = "hybrid"
    ELECTRIC = "electric"


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    ONE_MONTH = "one_month"
    THREE_MONTHS = "three_months"
    FLEXIBLE = "flexible"


class TradeInInfo(BaseModel):
    """The customer's current car, offered as part of the payment."""
    has_trade_in: bool = False
    brand: Optional[str] = None
    model: Optional[str] = None
    year: Optional[int] = None
    mileage: Optional[int] = None
    estimated_value: Optional[int] = None


class FinancingInfo(BaseModel):
    """Financing preferences captured during the conversation."""
    wants_financing: bool = False
    down_payment: Optional[int] = None
    months: Optional[int] = None


class ShownVehicle(BaseModel):
    """Compact memory of a vehicle already presented to the customer."""
    vehicle_id: str
    brand: str
    model: str
    year: int
    price: float


class CustomerProfile(BaseModel):
    """
    Accumulated, partial facts about the buyer.

    Fields are enriched over time: ``merged()`` only overwrites a field when
    the update carries a concrete value, so a later turn that says nothing
    about the budget never clears a budget learned earlier.
    """

    customer_name: Optional[str] = None
    budget: Optional[int] = None
    budget_min: Optional[int] = None
    budget_max: Optional[int] = None
    budget_flexibility: Optional[float] = None
    usage: Optional[UsageCategory] = None
    body_type: Optional[BodyType] = None
    transmission: Optional[Transmission] = None
    fuel_type: Optional[FuelType] = None
    min_year: Optional[int] = None
    max_mileage: Optional[int] = None
    min_seats: Optional[int] = None
    people: Optional[int] = None
    brand: Optional[str] = None
    model: Optional[str] = None
    priorities: list[str] = Field(default_factory=list)
    trade_in: TradeInInfo = Field(default_factory=TradeInInfo)
    financing: FinancingInfo = Field(default_factory=FinancingInfo)
    urgency: Optional[Urgency] = None
    selected_vehicle_id: Optional[str] = None
    last_shown_vehicles: list[ShownVehicle] = Field(default_factory=list)
    shown_recommendation: bool = False

    @property
    def has_trade_in(self) -> bool:
        return self.trade_in.has_trade_in

    @property
    def wants_financing(self) -> bool:
        return self.financing.wants_financing

    def merged(self, update: dict[str, Any]) -> "CustomerProfile":
        """Return a new profile with ``update`` applied.

        ``None`` values and empty lists are ignored. ``trade_in`` and
        ``financing`` merge field by field, and ``trade_in.has_trade_in``
        can only ever move from False to True.
        """
        data = self.model_dump()
        for key, value in update.items():
            if value is None:
                continue
            if key in ("trade_in", "financing"):
                if isinstance(value, BaseModel):
                    value = value.model_dump()
                sub = dict(data[key])
                for sub_key, sub_value in value.items():
                    if sub_value is not None:
                        sub[sub_key] = sub_value
                if key == "trade_in":
                    sub["has_trade_in"] = (
                        data[key]["has_trade_in"] or bool(sub.get("has_trade_in"))
                    )
                data[key] = sub
                continue
            if key == "priorities":
                data[key] = list(dict.fromkeys([*data[key], *value]))
                continue
            if key == "last_shown_vehicles":
                value = [
                    v.model_dump() if isinstance(v, BaseModel) else v for v in value
                ]
            data[key] = value
        return CustomerProfile.model_validate(data)
