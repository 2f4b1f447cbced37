import logging
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from .core.db import create_all_tables
from .core.config import settings
from .core.errors import register_exception_handlers
from .core.sio_events import sio, start_live_relay
from .routers import cabs, trips, expenses, statistics
import socketio

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Iniciando la aplicación...")
    create_all_tables()
    unsubscribes = await start_live_relay()
    yield
    for unsubscribe in unsubscribes:
        unsubscribe()
    logger.info("Cerrando la aplicación...")

fastapi_app = FastAPI(
    lifespan=lifespan,
    title=settings.APP_NAME,
    description="Datos y estadísticas de una flota pequeña de cabs",
    version=settings.APP_VERSION
)

# Configuración CORS
fastapi_app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_CREDENTIALS,
    allow_methods=settings.CORS_METHODS,
    allow_headers=settings.CORS_HEADERS,
)

register_exception_handlers(fastapi_app)

# Agregar routers
fastapi_app.include_router(cabs.router)
fastapi_app.include_router(trips.router)
fastapi_app.include_router(expenses.router)
fastapi_app.include_router(statistics.router)

# Socket.IO debe ser lo último
app = socketio.ASGIApp(sio, other_asgi_app=fastapi_app)
