from fastapi import APIRouter, Body, Query, status
from pydantic import BaseModel
from typing import List, Optional
from datetime import date

from app.core.db import StoreDep, LiveViewDep
from app.core.errors import NotFoundError
from app.models.trip import TripComplete, TripCreate, TripRead, TripUpdate
from app.services.trip_service import TripService

router = APIRouter(prefix="/trips", tags=["trips"])


class TripCancelRequest(BaseModel):
    reason: Optional[str] = None


@router.get("/", response_model=List[TripRead])
async def list_trips(
    store: StoreDep,
    live_view: LiveViewDep,
    cab_id: Optional[str] = Query(None, description="ID del cab para filtrar"),
    start_date: Optional[date] = Query(None, description="Fecha de inicio (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha de fin (YYYY-MM-DD)"),
    today: bool = Query(False, description="Solo los viajes creados hoy"),
):
    service = TripService(store, live_view)
    if today:
        return await service.get_today_trips()
    if start_date or end_date:
        return await service.get_trips_by_date_range(start_date, end_date, cab_id)
    if cab_id:
        return await service.get_trips_by_cab(cab_id)
    return await service.get_all()


@router.get("/{trip_id}", response_model=TripRead)
async def get_trip(trip_id: str, store: StoreDep, live_view: LiveViewDep):
    service = TripService(store, live_view)
    trip = await service.get_by_id(trip_id)
    if not trip:
        raise NotFoundError("trips", trip_id)
    return trip


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_trip(data: TripCreate, store: StoreDep, live_view: LiveViewDep):
    """Registra un viaje nuevo en estado `active` con pago `pending`"""
    service = TripService(store, live_view)
    trip_id = await service.create(data)
    return {"id": trip_id}


@router.patch("/{trip_id}", response_model=TripRead)
async def update_trip(trip_id: str, data: TripUpdate, store: StoreDep, live_view: LiveViewDep):
    service = TripService(store, live_view)
    return await service.update(trip_id, data)


@router.post("/{trip_id}/complete", response_model=TripRead)
async def complete_trip(
    trip_id: str,
    store: StoreDep,
    live_view: LiveViewDep,
    data: Optional[TripComplete] = Body(None),
):
    """
    Completa el viaje y suma la tarifa final al cab.

    **Respuesta:**
    - 409 si el viaje ya estaba completado o cancelado.
    """
    service = TripService(store, live_view)
    return await service.complete_trip(trip_id, data)


@router.post("/{trip_id}/cancel", response_model=TripRead)
async def cancel_trip(
    trip_id: str,
    store: StoreDep,
    live_view: LiveViewDep,
    data: Optional[TripCancelRequest] = Body(None),
):
    service = TripService(store, live_view)
    return await service.cancel_trip(trip_id, data.reason if data else None)


@router.delete("/{trip_id}")
async def delete_trip(trip_id: str, store: StoreDep, live_view: LiveViewDep):
    service = TripService(store, live_view)
    deleted = await service.delete(trip_id)
    return {"deleted": deleted}
