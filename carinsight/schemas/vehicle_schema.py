"""Inventory and recommendation data models."""

from typing import Optional

from pydantic import BaseModel, Field


class VehicleSummary(BaseModel):
    """Inventory record as returned by the inventory store."""
    id: str
    make: str
    model: str
    year: int
    price: float
    mileage: int = 0
    body_type: str = ""
    condition: str = "used"
    transmission: Optional[str] = None
    fuel_type: Optional[str] = None
    tags: list[str] = Field(default_factory=list)
    features: list[str] = Field(default_factory=list)
    embedding: Optional[list[float]] = None


class SearchFilters(BaseModel):
    """Structural filters applied before any scoring."""
    price_max: Optional[float] = None
    year_min: Optional[int] = None
    body_type: Optional[str] = None
    make: Optional[str] = None
    exclude_ids: list[str] = Field(default_factory=list)

    def matches(self, vehicle: VehicleSummary) -> bool:
        if self.price_max is not None and vehicle.price > self.price_max:
            return False
        if self.year_min is not None and vehicle.year < self.year_min:
            return False
        if self.body_type and vehicle.body_type.lower() != self.body_type.lower():
            return False
        if self.make and vehicle.make.lower() != self.make.lower():
            return False
        if vehicle.id in self.exclude_ids:
            return False
        return True


class ScoredVehicle(BaseModel):
    """A search hit with its relevance score."""
    vehicle: VehicleSummary
    score: float


class SearchStats(BaseModel):
    """Inventory coverage of the semantic index."""
    total_vehicles: int
    vehicles_with_embedding: int
    embedding_coverage: str


class RecommendedVehicle(BaseModel):
    """Denormalized vehicle summary carried inside a recommendation."""
    id: str
    make: str
    model: str
    year: int
    price: float
    mileage: int = 0
    body_type: str = ""
    features: list[str] = Field(default_factory=list)

    @classmethod
    def from_summary(cls, vehicle: VehicleSummary) -> "RecommendedVehicle":
        return cls(
            id=vehicle.id,
            make=vehicle.make,
            model=vehicle.model,
            year=vehicle.year,
            price=vehicle.price,
            mileage=vehicle.mileage,
            body_type=vehicle.body_type,
            features=list(vehicle.features),
        )

    @property
    def display_name(self) -> str:
        return f"{self.make} {self.model} {self.year}"


class VehicleRecommendation(BaseModel):
    """A candidate surfaced to the customer."""
    vehicle_id: str
    match_score: int = Field(ge=0, le=100)
    reasoning: str
    highlights: list[str] = Field(default_factory=list, max_length=3)
    concerns: list[str] = Field(default_factory=list)
    vehicle: RecommendedVehicle
