# /carinsight/services/vehicle_repository.py

import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Protocol, Union

from pydantic import ValidationError

from carinsight.models.domain import Vehicle

logger = logging.getLogger(__name__)


class VehicleRepository(Protocol):
    async def get(self, vehicle_id: str) -> Optional[Vehicle]:
        ...

    async def get_many(self, vehicle_ids: Iterable[str]) -> Dict[str, Vehicle]:
        ...

    async def list(self, available_only: bool = True) -> List[Vehicle]:
        ...

    async def upsert(self, vehicle: Vehicle) -> Vehicle:
        ...

    async def delete(self, vehicle_id: str) -> bool:
        ...


class InMemoryVehicleRepository:
    def __init__(self, vehicles: Iterable[Vehicle] = ()):
        self._vehicles: Dict[str, Vehicle] = {vehicle.id: vehicle for vehicle in vehicles}

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "InMemoryVehicleRepository":
        """
        Loads a catalog exported as a JSON list of vehicles. Malformed entries
        are logged and skipped so one bad record does not block the catalog.
        """
        with open(path, "r", encoding="utf-8") as f:
            records = json.load(f)
        if not isinstance(records, list):
            raise ValueError(f"Vehicle catalog {path} must contain a JSON list")

        vehicles = []
        for record in records:
            try:
                vehicles.append(Vehicle.model_validate(record))
            except ValidationError as e:
                record_id = record.get("id") if isinstance(record, dict) else None
                logger.error(f"Skipping malformed vehicle {record_id}: {e.error_count()} validation errors")
        logger.info(f"Loaded {len(vehicles)} vehicles from {path}")
        return cls(vehicles)

    async def get(self, vehicle_id: str) -> Optional[Vehicle]:
        return self._vehicles.get(vehicle_id)

    async def get_many(self, vehicle_ids: Iterable[str]) -> Dict[str, Vehicle]:
        return {vid: self._vehicles[vid] for vid in vehicle_ids if vid in self._vehicles}

    async def list(self, available_only: bool = True) -> List[Vehicle]:
        return [v for v in self._vehicles.values() if v.available or not available_only]

    async def upsert(self, vehicle: Vehicle) -> Vehicle:
        self._vehicles[vehicle.id] = vehicle
        return vehicle

    async def delete(self, vehicle_id: str) -> bool:
        return self._vehicles.pop(vehicle_id, None) is not None
