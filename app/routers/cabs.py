from fastapi import APIRouter, Query, status
from typing import List, Optional

from app.core.db import StoreDep, LiveViewDep
from app.core.errors import NotFoundError
from app.models.cab import CabCreate, CabRead, CabStatus, CabUpdate, Coordinate
from app.services.cab_service import CabService

router = APIRouter(prefix="/cabs", tags=["cabs"])


@router.get("/", response_model=List[CabRead])
async def list_cabs(
    store: StoreDep,
    live_view: LiveViewDep,
    status_filter: Optional[CabStatus] = Query(
        None, alias="status", description="Solo se admite 'active' como filtro")
):
    """
    Lista la flota completa, del más reciente al más antiguo.
    Con `status=active` devuelve solo los cabs activos.
    """
    service = CabService(store, live_view)
    if status_filter == CabStatus.ACTIVE:
        return await service.get_active_cabs()
    cabs = await service.get_all()
    if status_filter:
        cabs = [cab for cab in cabs if cab.status == status_filter]
    return cabs


@router.get("/{cab_id}", response_model=CabRead)
async def get_cab(cab_id: str, store: StoreDep, live_view: LiveViewDep):
    service = CabService(store, live_view)
    cab = await service.get_by_id(cab_id)
    if not cab:
        raise NotFoundError("cabs", cab_id)
    return cab


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_cab(data: CabCreate, store: StoreDep, live_view: LiveViewDep):
    """
    Agrega un cab a la flota. Siempre entra con estado `active`, contadores
    en cero y sin ubicación.
    """
    service = CabService(store, live_view)
    cab_id = await service.create(data)
    return {"id": cab_id}


@router.patch("/{cab_id}", response_model=CabRead)
async def update_cab(cab_id: str, data: CabUpdate, store: StoreDep, live_view: LiveViewDep):
    service = CabService(store, live_view)
    return await service.update(cab_id, data)


@router.put("/{cab_id}/location", response_model=CabRead)
async def update_cab_location(cab_id: str, data: Coordinate, store: StoreDep, live_view: LiveViewDep):
    """
    Registra la posición actual del cab.

    **Parámetros:**
    - `lat`: Latitud donde se encuentra el cab.
    - `lng`: Longitud donde se encuentra el cab.
    """
    service = CabService(store, live_view)
    return await service.update_location(cab_id, data)


@router.delete("/{cab_id}")
async def delete_cab(cab_id: str, store: StoreDep, live_view: LiveViewDep):
    """Borra el cab; sus viajes y gastos se conservan"""
    service = CabService(store, live_view)
    deleted = await service.delete(cab_id)
    return {"deleted": deleted}
