from typing import Annotated
from fastapi import Depends
from sqlmodel import create_engine, SQLModel
from sqlalchemy.pool import StaticPool
from .config import settings

# ✅ IMPORTAR TODOS LOS MODELOS
from app.models import Cab, Trip, Expense
from .store import DocumentStore
from .live_view import LiveViewCoordinator


def build_engine(database_url: str, echo: bool = False):
    """Crea el engine; SQLite en memoria comparte una sola conexión"""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url == "sqlite://":
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=echo, **kwargs)
    return create_engine(database_url, echo=echo, pool_pre_ping=True)


engine = build_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO)
store = DocumentStore(engine)
live_view = LiveViewCoordinator(store)


def create_all_tables(bind=None):
    """Crea todas las tablas en la base de datos"""
    SQLModel.metadata.create_all(bind or engine)


def get_store() -> DocumentStore:
    return store


def get_live_view() -> LiveViewCoordinator:
    return live_view


StoreDep = Annotated[DocumentStore, Depends(get_store)]
LiveViewDep = Annotated[LiveViewCoordinator, Depends(get_live_view)]
