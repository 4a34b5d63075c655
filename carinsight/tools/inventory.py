"""
Inventory store boundary and an in-memory implementation.

In production the store is backed by the listings database, where each
vehicle carries a precomputed embedding. The in-memory store serves the
console demo and the test suite.
"""

import logging
from typing import Optional, Protocol

from carinsight.schemas.vehicle_schema import SearchFilters, VehicleSummary

logger = logging.getLogger(__name__)

SAMPLE_INVENTORY: list[dict] = [
    {
        "id": "veh-001", "make": "Toyota", "model": "Corolla", "year": 2022,
        "price": 95000, "mileage": 30000, "body_type": "sedan",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["econômico", "confortável", "confiável"],
        "features": ["Central multimídia", "Câmera de ré", "Piloto automático"],
    },
    {
        "id": "veh-002", "make": "Honda", "model": "Civic", "year": 2021,
        "price": 105000, "mileage": 42000, "body_type": "sedan",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["confortável", "potente"],
        "features": ["Bancos em couro", "Teto solar", "Sensor de estacionamento"],
    },
    {
        "id": "veh-003", "make": "Chevrolet", "model": "Onix Plus", "year": 2023,
        "price": 82000, "mileage": 18000, "body_type": "sedan",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["econômico", "aplicativo", "seguro"],
        "features": ["6 airbags", "Wi-Fi nativo", "Partida por botão"],
    },
    {
        "id": "veh-004", "make": "Volkswagen", "model": "Virtus", "year": 2022,
        "price": 89000, "mileage": 35000, "body_type": "sedan",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["espaçoso", "econômico"],
        "features": ["Porta-malas de 521 litros", "Painel digital"],
    },
    {
        "id": "veh-005", "make": "Hyundai", "model": "HB20", "year": 2022,
        "price": 68000, "mileage": 25000, "body_type": "hatch",
        "transmission": "manual", "fuel_type": "flex",
        "tags": ["econômico", "cidade"],
        "features": ["Central multimídia", "Controle de tração"],
    },
    {
        "id": "veh-006", "make": "Volkswagen", "model": "Polo", "year": 2021,
        "price": 72000, "mileage": 40000, "body_type": "hatch",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["econômico", "cidade", "seguro"],
        "features": ["Motor TSI", "6 airbags"],
    },
    {
        "id": "veh-007", "make": "Fiat", "model": "Argo", "year": 2022,
        "price": 62000, "mileage": 28000, "body_type": "hatch",
        "transmission": "manual", "fuel_type": "flex",
        "tags": ["econômico", "cidade"],
        "features": ["Espelhamento de celular", "Ar-condicionado"],
    },
    {
        "id": "veh-008", "make": "Jeep", "model": "Compass", "year": 2021,
        "price": 128000, "mileage": 48000, "body_type": "suv",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["confortável", "seguro", "família"],
        "features": ["Tração 4x4", "Bancos em couro", "Frenagem autônoma"],
    },
    {
        "id": "veh-009", "make": "Hyundai", "model": "Creta", "year": 2022,
        "price": 112000, "mileage": 32000, "body_type": "suv",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["confortável", "família", "espaçoso"],
        "features": ["Câmera 360", "Chave presencial"],
    },
    {
        "id": "veh-010", "make": "Volkswagen", "model": "T-Cross", "year": 2022,
        "price": 108000, "mileage": 27000, "body_type": "suv",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["seguro", "econômico", "família"],
        "features": ["6 airbags", "Painel digital", "Motor TSI"],
    },
    {
        "id": "veh-011", "make": "Chevrolet", "model": "Tracker", "year": 2023,
        "price": 115000, "mileage": 15000, "body_type": "suv",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["seguro", "econômico"],
        "features": ["Wi-Fi nativo", "Alerta de ponto cego"],
    },
    {
        "id": "veh-012", "make": "Fiat", "model": "Toro", "year": 2021,
        "price": 118000, "mileage": 55000, "body_type": "pickup",
        "transmission": "automatic", "fuel_type": "diesel",
        "tags": ["trabalho", "potente"],
        "features": ["Tração 4x4", "Caçamba com capota"],
    },
    {
        "id": "veh-013", "make": "Fiat", "model": "Strada", "year": 2023,
        "price": 98000, "mileage": 12000, "body_type": "pickup",
        "transmission": "manual", "fuel_type": "flex",
        "tags": ["trabalho", "econômico"],
        "features": ["Cabine dupla", "Central multimídia"],
    },
    {
        "id": "veh-014", "make": "Toyota", "model": "Hilux", "year": 2020,
        "price": 189000, "mileage": 78000, "body_type": "pickup",
        "transmission": "automatic", "fuel_type": "diesel",
        "tags": ["trabalho", "potente", "confiável"],
        "features": ["Tração 4x4", "Controle de descida"],
    },
    {
        "id": "veh-015", "make": "Chevrolet", "model": "Spin", "year": 2021,
        "price": 85000, "mileage": 44000, "body_type": "minivan",
        "transmission": "automatic", "fuel_type": "flex",
        "tags": ["família", "espaçoso", "7 lugares"],
        "features": ["7 lugares", "Porta-malas amplo"],
    },
]


class InventoryStore(Protocol):
    """Read-only view of the vehicle listings."""

    async def find_by_filters(
        self, filters: SearchFilters, limit: int
    ) -> list[VehicleSummary]:
        ...

    async def find_by_id(self, vehicle_id: str) -> Optional[VehicleSummary]:
        ...


class InMemoryInventoryStore:
    """Inventory store over a list of vehicles held in memory."""

    def __init__(self, vehicles: Optional[list[VehicleSummary]] = None) -> None:
        if vehicles is None:
            vehicles = [VehicleSummary(**data) for data in SAMPLE_INVENTORY]
        self._vehicles: dict[str, VehicleSummary] = {v.id: v for v in vehicles}

    async def find_by_filters(
        self, filters: SearchFilters, limit: int
    ) -> list[VehicleSummary]:
        """Return up to ``limit`` vehicles matching ``filters``, cheapest first."""
        matches = [v for v in self._vehicles.values() if filters.matches(v)]
        matches.sort(key=lambda v: v.price)
        logger.debug("Inventory filter matched %d vehicles", len(matches))
        return matches[:limit]

    async def find_by_id(self, vehicle_id: str) -> Optional[VehicleSummary]:
        return self._vehicles.get(vehicle_id)

    def add(self, vehicle: VehicleSummary) -> None:
        self._vehicles[vehicle.id] = vehicle

    def __len__(self) -> int:
        return len(self._vehicles)
