import logging
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from app.core.errors import NotFoundError, ValidationError
from app.core.live_view import transform_callback
from app.models.cab import Cab, CabCreate, CabStatus, CabUpdate, Coordinate
from app.services.record_service import RecordService, describe_validation_error

logger = logging.getLogger(__name__)


class CabService(RecordService):
    collection = "cabs"
    create_schema = CabCreate
    update_schema = CabUpdate
    server_fields = RecordService.server_fields | {
        "total_earnings", "total_trips", "current_location", "last_location_update"
    }
    required_fields = frozenset({"registration_number", "status"})

    def _server_defaults(self) -> Dict[str, Any]:
        # Un cab nuevo siempre entra activo, sin ganancias y sin ubicación
        return {
            "status": CabStatus.ACTIVE,
            "total_earnings": 0,
            "total_trips": 0,
            "current_location": None,
            "last_location_update": None,
        }

    async def _check_create(self, values: Dict[str, Any]):
        await self._ensure_unique_registration(values["registration_number"])

    async def _check_update(self, record: Cab, changes: Dict[str, Any]):
        number = changes.get("registration_number")
        if number and number != record.registration_number:
            await self._ensure_unique_registration(number, exclude_id=record.id)

    async def _ensure_unique_registration(self, number: str, exclude_id: Optional[str] = None):
        existing = await self.get_by_registration_number(number)
        if existing and existing.id != exclude_id:
            raise ValidationError(
                f"Ya existe un cab con la placa {number}")

    async def get_by_registration_number(self, number: str) -> Optional[Cab]:
        found = await self._store_call(
            "buscar cab por placa",
            self.store.query, self.collection, equals={"registration_number": number})
        return found[0] if found else None

    async def get_active_cabs(self) -> List[Cab]:
        return await self._store_call(
            "leer cabs activos",
            self.store.query,
            self.collection,
            equals={"status": CabStatus.ACTIVE},
            order_by=["created_at"],
        )

    async def update_location(self, cab_id: str, coord: Union[Coordinate, Dict[str, float], Sequence[float]]) -> Cab:
        """
        Actualiza solo la ubicación actual y la hora del último reporte.

        Se llama con alta frecuencia desde el seguimiento, por eso no pasa por
        la validación completa de `update`.
        """
        if isinstance(coord, (list, tuple)) and len(coord) == 2:
            coord = {"lat": coord[0], "lng": coord[1]}
        try:
            point = coord if isinstance(coord, Coordinate) else Coordinate.model_validate(coord)
        except PydanticValidationError as e:
            raise ValidationError(
                f"Coordenada inválida: {describe_validation_error(e)}") from e

        values = {
            "current_location": {"lat": point.lat, "lng": point.lng},
            "last_location_update": self.store.now(),
        }
        updated = await self._store_call(
            f"actualizar la ubicación del cab {cab_id}",
            self.store.update, self.collection, cab_id, values)
        if updated is None:
            raise NotFoundError(self.collection, cab_id)
        return updated

    async def record_trip_completion(self, cab_id: str, fare: float) -> bool:
        """
        Suma la tarifa y un viaje a los acumulados del cab.

        Solo lo invoca `TripService.complete_trip`. Si el cab ya no existe no
        hace nada y devuelve False.
        """
        changed = await self._store_call(
            f"acumular el viaje en el cab {cab_id}",
            self.store.increment,
            self.collection,
            cab_id,
            {"total_earnings": fare, "total_trips": 1},
            values={"updated_at": self.store.now()},
        )
        if not changed:
            logger.warning(
                "Cab %s no existe; se omite el acumulado del viaje", cab_id)
        return changed

    async def subscribe_to_cab(self, cab_id: str, callback: Callable) -> Callable[[], None]:
        """Vista en vivo de un cab; no entrega nada mientras el cab no exista"""
        return await self.subscribe(transform_callback(callback, self._single(cab_id)))
