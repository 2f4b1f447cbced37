import pytest
from fastapi.testclient import TestClient
from sqlmodel import SQLModel
from app.main import fastapi_app as app
from app.core.db import build_engine, get_store, get_live_view
from app.core.store import DocumentStore
from app.core.live_view import LiveViewCoordinator
from app.services.cab_service import CabService
from app.services.trip_service import TripService
from app.services.expense_service import ExpenseService
from app.services.statistics_service import StatisticsService

# Base de datos SQLite en memoria, nueva para cada test
TEST_DATABASE_URL = "sqlite://"


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(name="store")
def store_fixture():
    engine = build_engine(TEST_DATABASE_URL)
    SQLModel.metadata.create_all(engine)
    yield DocumentStore(engine)
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture(name="live_view")
def live_view_fixture(store):
    return LiveViewCoordinator(store)


@pytest.fixture(name="cab_service")
def cab_service_fixture(store, live_view):
    return CabService(store, live_view)


@pytest.fixture(name="trip_service")
def trip_service_fixture(store, live_view):
    return TripService(store, live_view)


@pytest.fixture(name="expense_service")
def expense_service_fixture(store, live_view):
    return ExpenseService(store, live_view, report_date_field="date")


@pytest.fixture(name="statistics_service")
def statistics_service_fixture(store, live_view):
    return StatisticsService(store, live_view)


@pytest.fixture(name="client")
def client_fixture(store, live_view):
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_live_view] = lambda: live_view
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


def cab_payload(registration_number: str = "ABC-123", **extra) -> dict:
    data = {
        "registration_number": registration_number,
        "model": "Toyota Corolla",
        "driver_name": "Carlos Gómez",
        "driver_phone": "3001234567",
        "year": 2020,
        "color": "Blanco",
    }
    data.update(extra)
    return data


def trip_payload(cab_id: str, **extra) -> dict:
    data = {
        "cab_id": cab_id,
        "pickup_location": "Aeropuerto",
        "destination": "Centro",
        "fare": 50,
        "distance": 12.5,
        "duration": 30,
    }
    data.update(extra)
    return data
