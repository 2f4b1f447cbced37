import logging
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from app.core.errors import (
    InvalidTransitionError, NotFoundError, StoreUnavailableError, ValidationError
)
from app.models.trip import (
    PaymentStatus, Trip, TripComplete, TripCreate, TripStatus, TripUpdate, can_transition
)
from app.services.cab_service import CabService
from app.services.record_service import Payload, RecordService

logger = logging.getLogger(__name__)

# Valores que quedan fijos al completar o cancelar el viaje
FINAL_FIELDS = frozenset({"cab_id", "fare", "distance", "duration"})


class TripService(RecordService):
    collection = "trips"
    create_schema = TripCreate
    update_schema = TripUpdate
    # El estado solo cambia con complete_trip / cancel_trip
    server_fields = RecordService.server_fields | {"completed_at", "status"}
    required_fields = frozenset(
        {"cab_id", "pickup_location", "destination", "payment_status"})

    def __init__(self, store, live_view):
        super().__init__(store, live_view)
        self.cab_service = CabService(store, live_view)

    def _server_defaults(self) -> Dict[str, Any]:
        return {
            "status": TripStatus.ACTIVE,
            "payment_status": PaymentStatus.PENDING,
            "completed_at": None,
        }

    def _final_changes(self, changes: Dict[str, Any]) -> List[str]:
        return sorted(set(changes) & FINAL_FIELDS)

    def _reject_final_changes(self, trip: Trip, fields: List[str]):
        raise ValidationError(
            f"El viaje {trip.id} está {TripStatus(trip.status).value}; "
            f"no se puede modificar: {', '.join(fields)}")

    async def _check_update(self, record: Trip, changes: Dict[str, Any]):
        fields = self._final_changes(changes)
        if fields and record.status != TripStatus.ACTIVE:
            self._reject_final_changes(record, fields)

    async def _apply_update(self, record: Trip, changes: Dict[str, Any]) -> Optional[Trip]:
        fields = self._final_changes(changes)
        if not fields:
            return await super()._apply_update(record, changes)
        # Solo mientras siga activo: un viaje completado en paralelo no se toca
        updated = await self._store_call(
            f"actualizar {record.id} en {self.collection}",
            self.store.update_where,
            self.collection, record.id, {"status": TripStatus.ACTIVE}, changes)
        if updated is None:
            current = await self._require(record.id)
            self._reject_final_changes(current, fields)
        return updated

    async def _require(self, trip_id: str) -> Trip:
        trip = await self.get_by_id(trip_id)
        if not trip:
            raise NotFoundError(self.collection, trip_id)
        return trip

    def _ensure_transition(self, trip: Trip, target: TripStatus):
        if not can_transition(trip.status, target):
            raise InvalidTransitionError(
                trip.id, TripStatus(trip.status).value, target.value)

    async def _transition(self, trip_id: str, target: TripStatus, values: Dict[str, Any]) -> Trip:
        """Escribe el nuevo estado solo si el viaje sigue activo en el almacén"""
        updated = await self._store_call(
            f"pasar el viaje {trip_id} a {target.value}",
            self.store.update_where,
            self.collection, trip_id, {"status": TripStatus.ACTIVE},
            {**values, "status": target})
        if updated is None:
            # Otro proceso lo cambió (o lo borró) entre la lectura y la escritura
            self._ensure_transition(await self._require(trip_id), target)
            raise InvalidTransitionError(trip_id, TripStatus.ACTIVE.value, target.value)
        return updated

    async def complete_trip(self, trip_id: str, final_data: Optional[Payload] = None) -> Trip:
        """
        Completa un viaje activo y acumula la tarifa en su cab.

        Args:
            trip_id: ID del viaje
            final_data: valores finales (fare, distance, duration, ...) que
                sobrescriben los registrados

        Returns:
            El viaje completado

        Raises:
            NotFoundError: el viaje no existe
            InvalidTransitionError: el viaje ya está completado o cancelado
            ValidationError: datos finales inválidos o viaje sin tarifa
        """
        final = self._validate(TripComplete, final_data or {}, partial=True)
        final = {k: v for k, v in final.items() if v is not None}

        trip = await self._require(trip_id)
        self._ensure_transition(trip, TripStatus.COMPLETED)
        fare = final.get("fare", trip.fare)
        if fare is None:
            raise ValidationError(
                f"El viaje {trip_id} no tiene tarifa; envíe fare para completarlo")

        now = self.store.now()
        completed = await self._transition(
            trip_id, TripStatus.COMPLETED,
            {**final, "fare": fare, "completed_at": now, "updated_at": now})
        logger.info("Viaje %s completado con tarifa %s", trip_id, fare)

        # Escritura aparte sobre otra colección: si falla, el viaje queda completado
        try:
            await self.cab_service.record_trip_completion(completed.cab_id, fare)
        except StoreUnavailableError as e:
            logger.error(
                "Viaje %s completado sin acumular en el cab %s: %s",
                trip_id, completed.cab_id, e.message)
        return completed

    async def cancel_trip(self, trip_id: str, reason: Optional[str] = None) -> Trip:
        trip = await self._require(trip_id)
        self._ensure_transition(trip, TripStatus.CANCELLED)
        values: Dict[str, Any] = {"updated_at": self.store.now()}
        if reason:
            notes = f"{trip.notes}\n" if trip.notes else ""
            values["notes"] = f"{notes}Cancelado: {reason}"[:500]
        cancelled = await self._transition(trip_id, TripStatus.CANCELLED, values)
        logger.info("Viaje %s cancelado", trip_id)
        return cancelled

    async def get_trips_by_cab(self, cab_id: str) -> List[Trip]:
        return await self._store_call(
            f"leer los viajes del cab {cab_id}",
            self.store.query, self.collection,
            equals={"cab_id": cab_id}, order_by=["created_at"])

    async def get_trips_by_date_range(self, start, end, cab_id: Optional[str] = None) -> List[Trip]:
        return await self.query_by_range("created_at", start, end, {"cab_id": cab_id})

    async def get_today_trips(self, today: Optional[date] = None) -> List[Trip]:
        today = today or self.store.now().date()
        return await self.get_trips_by_date_range(today, today)

    async def subscribe_to_today_trips(self, callback: Callable, today: Optional[date] = None) -> Callable[[], None]:
        today = today or self.store.now().date()
        return await self.subscribe_by_range("created_at", today, today, callback)
