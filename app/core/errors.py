"""
Errores de dominio del núcleo de flota.

Los repositorios lanzan estas excepciones; los routers las traducen a
respuestas HTTP en `app.main` mediante `register_exception_handlers`.
"""
import logging
from contextlib import contextmanager
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)


class FleetError(Exception):
    """Error base de la capa de datos de flota"""
    error_kind = "fleet_error"
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(FleetError):
    """Campo requerido ausente o con formato inválido en create/update"""
    error_kind = "validation_error"
    status_code = 422


class NotFoundError(FleetError):
    """La operación apunta a un id inexistente"""
    error_kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, collection: str, record_id: str):
        super().__init__(f"{collection}: no existe el registro {record_id}")
        self.collection = collection
        self.record_id = record_id


class InvalidTransitionError(FleetError):
    """Transición de estado no permitida (p. ej. desde un estado terminal)"""
    error_kind = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, record_id: str, current: str, target: str):
        super().__init__(
            f"El viaje {record_id} no puede pasar de '{current}' a '{target}'")
        self.record_id = record_id
        self.current = current
        self.target = target


class StoreUnavailableError(FleetError):
    """Falla del almacén de documentos (conexión, permisos, cuota)"""
    error_kind = "store_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.cause = cause


async def fleet_error_handler(request: Request, exc: FleetError):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": exc.error_kind}
    )


def register_exception_handlers(app: FastAPI):
    app.add_exception_handler(FleetError, fleet_error_handler)


@contextmanager
def store_errors(action: str):
    """Envuelve las fallas de SQLAlchemy como StoreUnavailableError"""
    try:
        yield
    except SQLAlchemyError as e:
        logger.error(f"Error del almacén al {action}: {e}")
        raise StoreUnavailableError(
            f"No se pudo {action}: almacén no disponible", cause=e) from e
