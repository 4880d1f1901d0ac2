# /carinsight/services/catalog_service.py

import logging

from carinsight.models.domain import Vehicle
from carinsight.services.similarity_store import SimilarityStore
from carinsight.services.vehicle_repository import VehicleRepository

# Runtime catalog changes. Every write goes to the repository first and is
# then mirrored in the similarity index, so recommendations never see a
# vehicle the repository does not offer.

logger = logging.getLogger(__name__)


class CatalogService:
    def __init__(self, vehicle_repository: VehicleRepository, similarity_store: SimilarityStore):
        self.vehicle_repository = vehicle_repository
        self.similarity_store = similarity_store

    async def upsert_vehicle(self, vehicle: Vehicle) -> bool:
        """
        Saves the vehicle and keeps the index in step. Returns True when the
        vehicle was (re-)embedded, False when its indexed text was unchanged
        or it is no longer available and left the index.
        """
        await self.vehicle_repository.upsert(vehicle)
        if not vehicle.available:
            if self.similarity_store.remove(vehicle.id):
                logger.info(f"Vehicle {vehicle.id} is no longer available, removed from the index")
            return False

        embedded = await self.similarity_store.upsert_vehicle(vehicle)
        if embedded:
            logger.info(f"Vehicle {vehicle.id} indexed")
        return embedded

    async def remove_vehicle(self, vehicle_id: str) -> bool:
        """Deletes the vehicle from the repository and the index. True when either held it."""
        deleted = await self.vehicle_repository.delete(vehicle_id)
        removed = self.similarity_store.remove(vehicle_id)
        if deleted or removed:
            logger.info(f"Vehicle {vehicle_id} removed from the catalog")
        else:
            logger.warning(f"Vehicle {vehicle_id} not found, nothing removed")
        return deleted or removed
