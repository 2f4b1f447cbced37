import socketio
import json
import logging
from typing import Callable, List
from fastapi.concurrency import run_in_threadpool

from app.core.db import store, live_view
from app.core.errors import FleetError
from app.models.cab import CabRead
from app.models.expense import ExpenseRead
from app.models.trip import TripRead
from app.services.cab_service import CabService

logger = logging.getLogger(__name__)

sio = socketio.AsyncServer(async_mode='asgi')

READ_MODELS = {
    "cabs": CabRead,
    "trips": TripRead,
    "expenses": ExpenseRead,
}


def snapshot_payload(collection: str, snapshot) -> list:
    """Convierte un snapshot a JSON serializable"""
    read_model = READ_MODELS[collection]
    return [
        read_model.model_validate(record, from_attributes=True).model_dump(mode="json")
        for record in snapshot
    ]


async def start_live_relay(coordinator=None) -> List[Callable[[], None]]:
    """
    Registra un observador por colección que retransmite cada snapshot a los
    clientes conectados en el evento `<colección>_snapshot`.
    """
    coordinator = coordinator or live_view
    unsubscribes = []
    for collection in READ_MODELS:
        async def relay(snapshot, collection=collection):
            await sio.emit(f'{collection}_snapshot', snapshot_payload(collection, snapshot))
        unsubscribes.append(await coordinator.add_observer(collection, relay))
    return unsubscribes


@sio.event
async def connect(sid, environ):
    logger.info(f'Cliente conectado: {sid}')
    # El cliente nuevo recibe el estado actual completo, no el historial
    for collection in READ_MODELS:
        await sio.emit(
            f'{collection}_snapshot',
            snapshot_payload(collection, await run_in_threadpool(store.snapshot, collection)),
            to=sid
        )


@sio.event
async def disconnect(sid):
    logger.info(f'Cliente desconectado: {sid}')


@sio.event
async def change_cab_position(sid, data):
    """
    El seguimiento reporta la posición de un cab.
    - Evento: change_cab_position
    - JSON de ejemplo para enviar:
        {
            "id": "5b1c...",
            "lat": 4.710989,
            "lng": -74.072092
        }
    - Todos los clientes reciben `new_cab_position` con el mismo contenido;
      si falla, solo el emisor recibe `cab_position_error`.
    """
    # Si data es string, conviértelo a dict
    if isinstance(data, str):
        data = json.loads(data)
    service = CabService(store, live_view)
    try:
        await service.update_location(data['id'], {'lat': data['lat'], 'lng': data['lng']})
    except FleetError as e:
        logger.warning(f'Posición rechazada en socket {sid}: {e.message}')
        await sio.emit(
            'cab_position_error',
            {'id': data.get('id'), 'error': e.error_kind, 'detail': e.message},
            to=sid
        )
        return
    await sio.emit(
        'new_cab_position',
        {
            'id_socket': sid,
            'id': data['id'],
            'lat': data['lat'],
            'lng': data['lng']
        }
    )
