from datetime import datetime, timedelta, timezone

import pytest
from app.core.errors import (
    InvalidTransitionError, NotFoundError, StoreUnavailableError, ValidationError
)
from app.models.trip import PaymentStatus, TripStatus, can_transition
from conftest import cab_payload, trip_payload

pytestmark = pytest.mark.anyio


@pytest.fixture(name="cab_id")
async def cab_id_fixture(cab_service):
    return await cab_service.create(cab_payload())


async def test_create_forces_active_and_pending(trip_service, cab_id):
    trip_id = await trip_service.create(trip_payload(
        cab_id, status="completed", payment_status="paid", completed_at="2024-01-01T00:00:00"))

    trip = await trip_service.get_by_id(trip_id)
    assert trip.status == TripStatus.ACTIVE
    assert trip.payment_status == PaymentStatus.PENDING
    assert trip.completed_at is None
    assert trip.fare == 50


async def test_create_rejects_non_numeric_fare(trip_service, cab_id):
    with pytest.raises(ValidationError):
        await trip_service.create(trip_payload(cab_id, fare="cincuenta"))
    assert await trip_service.get_all() == []


async def test_create_requires_locations(trip_service, cab_id):
    payload = trip_payload(cab_id)
    del payload["destination"]
    with pytest.raises(ValidationError):
        await trip_service.create(payload)


async def test_complete_trip_updates_cab_counters(trip_service, cab_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id, fare=50))

    trip = await trip_service.complete_trip(trip_id, {"fare": 60})

    assert trip.status == TripStatus.COMPLETED
    assert trip.fare == 60
    assert trip.completed_at is not None
    cab = await cab_service.get_by_id(cab_id)
    assert cab.total_earnings == 60
    assert cab.total_trips == 1


async def test_complete_trip_uses_registered_fare(trip_service, cab_service, cab_id):
    first = await trip_service.create(trip_payload(cab_id, fare=50))
    second = await trip_service.create(trip_payload(cab_id, fare=25.5))

    await trip_service.complete_trip(first)
    await trip_service.complete_trip(second, {"payment_status": "paid"})

    cab = await cab_service.get_by_id(cab_id)
    assert cab.total_earnings == pytest.approx(75.5)
    assert cab.total_trips == 2
    assert (await trip_service.get_by_id(second)).payment_status == PaymentStatus.PAID


async def test_complete_trip_twice_is_rejected(trip_service, cab_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))
    completed = await trip_service.complete_trip(trip_id, {"fare": 60})

    with pytest.raises(InvalidTransitionError):
        await trip_service.complete_trip(trip_id, {"fare": 99})

    trip = await trip_service.get_by_id(trip_id)
    assert trip.fare == 60
    assert trip.completed_at == completed.completed_at
    cab = await cab_service.get_by_id(cab_id)
    assert cab.total_earnings == 60
    assert cab.total_trips == 1


async def test_complete_trip_without_fare(trip_service, cab_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id, fare=None))

    with pytest.raises(ValidationError):
        await trip_service.complete_trip(trip_id)

    trip = await trip_service.get_by_id(trip_id)
    assert trip.status == TripStatus.ACTIVE
    assert (await cab_service.get_by_id(cab_id)).total_trips == 0


async def test_complete_trip_rejects_bad_final_data(trip_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))
    with pytest.raises(ValidationError):
        await trip_service.complete_trip(trip_id, {"fare": "sesenta"})
    with pytest.raises(ValidationError):
        await trip_service.complete_trip(trip_id, {"status": "cancelled"})
    assert (await trip_service.get_by_id(trip_id)).status == TripStatus.ACTIVE


async def test_complete_missing_trip(trip_service):
    with pytest.raises(NotFoundError):
        await trip_service.complete_trip("no-existe", {"fare": 10})


async def test_complete_trip_after_cab_deleted(trip_service, cab_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))
    await cab_service.delete(cab_id)

    trip = await trip_service.complete_trip(trip_id)

    assert trip.status == TripStatus.COMPLETED
    assert await cab_service.get_by_id(cab_id) is None


async def test_cancel_trip_appends_reason(trip_service, cab_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id, notes="Equipaje grande"))

    trip = await trip_service.cancel_trip(trip_id, "cliente no llegó")

    assert trip.status == TripStatus.CANCELLED
    assert trip.notes == "Equipaje grande\nCancelado: cliente no llegó"
    assert trip.completed_at is None
    assert (await cab_service.get_by_id(cab_id)).total_trips == 0

    with pytest.raises(InvalidTransitionError):
        await trip_service.cancel_trip(trip_id)
    with pytest.raises(InvalidTransitionError):
        await trip_service.complete_trip(trip_id)


async def test_cannot_cancel_completed_trip(trip_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))
    await trip_service.complete_trip(trip_id)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await trip_service.cancel_trip(trip_id, "tarde")
    assert exc_info.value.current == "completed"
    assert exc_info.value.target == "cancelled"


async def test_update_rejects_status_changes(trip_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))

    with pytest.raises(ValidationError):
        await trip_service.update(trip_id, {"status": "completed"})
    with pytest.raises(ValidationError):
        await trip_service.update(trip_id, {"completed_at": "2024-01-01T00:00:00"})

    trip = await trip_service.update(trip_id, {"destination": "Terminal"})
    assert trip.destination == "Terminal"
    assert trip.status == TripStatus.ACTIVE


async def test_completed_trip_keeps_final_values(trip_service, cab_service, cab_id):
    other_cab = await cab_service.create(cab_payload("OTR-001"))
    trip_id = await trip_service.create(trip_payload(cab_id, fare=50))
    await trip_service.complete_trip(trip_id, {"fare": 60})

    for patch in ({"fare": 500}, {"cab_id": other_cab}, {"distance": 1}, {"duration": 2}):
        with pytest.raises(ValidationError):
            await trip_service.update(trip_id, patch)

    trip = await trip_service.get_by_id(trip_id)
    assert trip.fare == 60
    assert trip.cab_id == cab_id
    assert (await cab_service.get_by_id(cab_id)).total_earnings == 60
    assert (await cab_service.get_by_id(other_cab)).total_earnings == 0

    trip = await trip_service.update(trip_id, {"payment_status": "paid", "notes": "Pagado"})
    assert trip.payment_status == PaymentStatus.PAID
    assert trip.fare == 60


async def test_cancelled_trip_keeps_final_values(trip_service, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id, fare=50))
    await trip_service.update(trip_id, {"fare": 55})
    await trip_service.cancel_trip(trip_id)

    with pytest.raises(ValidationError):
        await trip_service.update(trip_id, {"fare": 80})
    assert (await trip_service.get_by_id(trip_id)).fare == 55


async def test_complete_trip_checks_status_at_write(trip_service, cab_service, store, cab_id, monkeypatch):
    trip_id = await trip_service.create(trip_payload(cab_id))
    read = trip_service._require

    async def read_then_cancel(record_id):
        trip = await read(record_id)
        # Otra petición cancela el viaje justo después de la lectura
        store.update("trips", record_id, {"status": TripStatus.CANCELLED})
        return trip

    monkeypatch.setattr(trip_service, "_require", read_then_cancel)

    with pytest.raises(InvalidTransitionError):
        await trip_service.complete_trip(trip_id, {"fare": 70})

    trip = await read(trip_id)
    assert trip.status == TripStatus.CANCELLED
    assert trip.completed_at is None
    assert trip.fare == 50
    assert (await cab_service.get_by_id(cab_id)).total_trips == 0


async def test_complete_trip_survives_counter_failure(trip_service, cab_service, cab_id, monkeypatch):
    trip_id = await trip_service.create(trip_payload(cab_id))

    async def unavailable(cab_id, fare):
        raise StoreUnavailableError("almacén caído")

    monkeypatch.setattr(trip_service.cab_service, "record_trip_completion", unavailable)

    trip = await trip_service.complete_trip(trip_id, {"fare": 65})

    assert trip.status == TripStatus.COMPLETED
    assert (await trip_service.get_by_id(trip_id)).status == TripStatus.COMPLETED
    assert (await cab_service.get_by_id(cab_id)).total_trips == 0


async def test_timestamps_are_utc(trip_service, store, cab_id):
    trip_id = await trip_service.create(trip_payload(cab_id))
    trip = await trip_service.complete_trip(trip_id)

    assert trip.created_at.utcoffset() == timedelta(0)
    assert trip.completed_at.tzinfo is not None
    assert trip.completed_at >= trip.created_at

    naive_start = (trip.created_at - timedelta(minutes=1)).replace(tzinfo=None)
    found = await trip_service.query_by_range(
        "created_at", naive_start, datetime.now(timezone.utc) + timedelta(minutes=1))
    assert [t.id for t in found] == [trip_id]


def test_transition_table():
    assert can_transition(TripStatus.ACTIVE, TripStatus.COMPLETED)
    assert can_transition("active", TripStatus.CANCELLED)
    assert not can_transition(TripStatus.COMPLETED, TripStatus.CANCELLED)
    assert not can_transition(TripStatus.CANCELLED, TripStatus.ACTIVE)


async def test_query_by_range_filters_and_orders(trip_service, cab_service, store):
    cab_a = await cab_service.create(cab_payload("AAA-111"))
    cab_b = await cab_service.create(cab_payload("BBB-222"))
    first = await trip_service.create(trip_payload(cab_a))
    await trip_service.create(trip_payload(cab_b))
    third = await trip_service.create(trip_payload(cab_a))

    today = store.now().date()
    trips = await trip_service.query_by_range(
        "created_at", today - timedelta(days=1), today + timedelta(days=1), {"cab_id": cab_a})

    assert [trip.id for trip in trips] == [third, first]
    assert all(trip.cab_id == cab_a for trip in trips)


async def test_query_by_range_unknown_field(trip_service):
    with pytest.raises(ValidationError):
        await trip_service.query_by_range("no_field", None, None)


async def test_today_trips_and_by_cab(trip_service, store, cab_id):
    first = await trip_service.create(trip_payload(cab_id))
    second = await trip_service.create(trip_payload(cab_id))
    today = store.now().date()

    assert [t.id for t in await trip_service.get_today_trips(today)] == [second, first]
    assert await trip_service.get_today_trips(today - timedelta(days=1)) == []
    assert [t.id for t in await trip_service.get_trips_by_cab(cab_id)] == [second, first]
    assert await trip_service.get_trips_by_cab("otro") == []
