import pytest
from app.core.errors import NotFoundError, ValidationError
from app.models.cab import CabStatus
from app.models.trip import TripStatus
from conftest import cab_payload, trip_payload

pytestmark = pytest.mark.anyio


async def test_create_forces_server_fields(cab_service):
    cab_id = await cab_service.create(cab_payload(
        status="inactive",
        total_earnings=999,
        total_trips=7,
        current_location={"lat": 1, "lng": 2},
    ))

    cab = await cab_service.get_by_id(cab_id)
    assert cab.status == CabStatus.ACTIVE
    assert cab.total_earnings == 0
    assert cab.total_trips == 0
    assert cab.current_location is None
    assert cab.last_location_update is None
    assert cab.created_at == cab.updated_at


async def test_create_requires_registration_number(cab_service):
    payload = cab_payload()
    del payload["registration_number"]
    with pytest.raises(ValidationError):
        await cab_service.create(payload)

    with pytest.raises(ValidationError):
        await cab_service.create(cab_payload(registration_number="   "))

    assert await cab_service.get_all() == []


async def test_create_rejects_malformed_year(cab_service):
    with pytest.raises(ValidationError):
        await cab_service.create(cab_payload(year="nuevo"))


async def test_registration_number_is_unique(cab_service):
    await cab_service.create(cab_payload("XYZ-999"))
    with pytest.raises(ValidationError):
        await cab_service.create(cab_payload("XYZ-999"))

    other_id = await cab_service.create(cab_payload("XYZ-100"))
    with pytest.raises(ValidationError):
        await cab_service.update(other_id, {"registration_number": "XYZ-999"})


async def test_update_merges_patch_and_stamps(cab_service):
    cab_id = await cab_service.create(cab_payload())
    created = await cab_service.get_by_id(cab_id)

    updated = await cab_service.update(cab_id, {"status": "maintenance", "color": "Rojo"})

    assert updated.status == CabStatus.MAINTENANCE
    assert updated.color == "Rojo"
    assert updated.model == "Toyota Corolla"
    assert updated.updated_at > created.updated_at
    assert updated.created_at == created.created_at


@pytest.mark.parametrize("field,value", [
    ("total_earnings", 100),
    ("total_trips", 3),
    ("current_location", {"lat": 1, "lng": 1}),
    ("created_at", "2024-01-01T00:00:00"),
])
async def test_update_rejects_server_fields(cab_service, field, value):
    cab_id = await cab_service.create(cab_payload())

    with pytest.raises(ValidationError):
        await cab_service.update(cab_id, {field: value})

    cab = await cab_service.get_by_id(cab_id)
    assert cab.total_earnings == 0
    assert cab.total_trips == 0


async def test_update_rejects_null_registration(cab_service):
    cab_id = await cab_service.create(cab_payload())
    with pytest.raises(ValidationError):
        await cab_service.update(cab_id, {"registration_number": None})


async def test_update_missing_cab(cab_service):
    with pytest.raises(NotFoundError):
        await cab_service.update("no-existe", {"color": "Azul"})


async def test_update_location_only_touches_location(cab_service):
    cab_id = await cab_service.create(cab_payload())
    before = await cab_service.get_by_id(cab_id)

    cab = await cab_service.update_location(cab_id, {"lat": 4.710989, "lng": -74.072092})

    assert cab.current_location == {"lat": 4.710989, "lng": -74.072092}
    assert cab.last_location_update is not None
    assert cab.updated_at == before.updated_at
    assert cab.registration_number == before.registration_number

    cab = await cab_service.update_location(cab_id, (4.6, -74.1))
    assert cab.current_location == {"lat": 4.6, "lng": -74.1}


async def test_update_location_validates_coordinate(cab_service):
    cab_id = await cab_service.create(cab_payload())
    with pytest.raises(ValidationError):
        await cab_service.update_location(cab_id, {"lat": 120, "lng": 0})
    with pytest.raises(NotFoundError):
        await cab_service.update_location("no-existe", {"lat": 1, "lng": 1})


async def test_get_active_cabs(cab_service):
    first = await cab_service.create(cab_payload("AAA-001"))
    second = await cab_service.create(cab_payload("AAA-002"))
    third = await cab_service.create(cab_payload("AAA-003"))
    await cab_service.update(second, {"status": "inactive"})

    active = await cab_service.get_active_cabs()
    assert [cab.id for cab in active] == [third, first]


async def test_get_all_is_newest_first(cab_service):
    ids = [await cab_service.create(cab_payload(f"ORD-{i}")) for i in range(3)]
    cabs = await cab_service.get_all()
    assert [cab.id for cab in cabs] == list(reversed(ids))


async def test_delete_cab_keeps_trips(cab_service, trip_service):
    cab_id = await cab_service.create(cab_payload())
    trip_id = await trip_service.create(trip_payload(cab_id))

    assert await cab_service.delete(cab_id) is True

    trip = await trip_service.get_by_id(trip_id)
    assert trip is not None
    assert trip.cab_id == cab_id
    assert trip.status == TripStatus.ACTIVE
    assert await cab_service.get_by_id(trip.cab_id) is None
    assert await cab_service.delete(cab_id) is False


async def test_get_by_registration_number(cab_service):
    cab_id = await cab_service.create(cab_payload("REG-777"))
    cab = await cab_service.get_by_registration_number("REG-777")
    assert cab.id == cab_id
    assert await cab_service.get_by_registration_number("REG-000") is None
