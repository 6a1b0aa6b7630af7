from __future__ import annotations

import pytest

from workshopdesk.errors import NotFoundError, PermissionDeniedError, ValidationError


@pytest.fixture
def add(desk, conn, customer):
    def _add(name, plate, **kw):
        return desk.vehicles.add_vehicle(conn, actor=customer, name=name, plate=plate, **kw)

    return _add


def _primaries(desk, conn, user_id="cust-1"):
    return [v.id for v in desk.vehicles.list_vehicles(conn, user_id) if v.is_primary]


def test_set_primary_swaps_flag(desk, conn, customer, add):
    v1 = add("Myvi", "WXY 1234")
    v2 = add("Civic", "VAB 88")
    assert v1.is_primary and not v2.is_primary

    desk.vehicles.set_primary(conn, v2.id, actor=customer)

    assert not desk.vehicles.get_vehicle(conn, v1.id, actor=customer).is_primary
    assert desk.vehicles.get_vehicle(conn, v2.id, actor=customer).is_primary


def test_set_primary_is_idempotent_and_exclusive(desk, conn, customer, add):
    vs = [add(f"Car {i}", f"ABC {i}") for i in range(3)]
    for _ in range(2):
        desk.vehicles.set_primary(conn, vs[2].id, actor=customer)
        assert _primaries(desk, conn) == [vs[2].id]


def test_first_vehicle_becomes_primary(add):
    assert add("Myvi", "wxy 1234").is_primary


def test_add_as_primary_clears_others(desk, conn, add):
    add("Myvi", "WXY 1234")
    v2 = add("Civic", "VAB 88", is_primary=True)
    assert _primaries(desk, conn) == [v2.id]


def test_primary_is_per_user(desk, conn, other_customer, add):
    add("Myvi", "WXY 1234")
    other = desk.vehicles.add_vehicle(conn, actor=other_customer, name="Axia", plate="JQK 1")
    assert other.is_primary
    assert len(_primaries(desk, conn)) == 1
    assert _primaries(desk, conn, "cust-2") == [other.id]


def test_plate_is_normalised(add):
    assert add("Myvi", " wxy 1234 ").plate == "WXY 1234"


def test_update_vehicle(desk, conn, customer, add):
    v = add("Myvi", "WXY 1234")
    updated = desk.vehicles.update_vehicle(conn, v.id, actor=customer, model="1.5 AV", year=2022)
    assert (updated.model, updated.year) == ("1.5 AV", "2022")
    with pytest.raises(ValidationError):
        desk.vehicles.update_vehicle(conn, v.id, actor=customer, is_primary=True)
    with pytest.raises(ValidationError):
        desk.vehicles.update_vehicle(conn, v.id, actor=customer, name=" ")


def test_delete_primary_promotes_next(desk, conn, customer, add):
    v1 = add("Myvi", "WXY 1234")
    v2 = add("Civic", "VAB 88")
    desk.vehicles.delete_vehicle(conn, v1.id, actor=customer)
    assert _primaries(desk, conn) == [v2.id]
    with pytest.raises(NotFoundError):
        desk.vehicles.get_vehicle(conn, v1.id, actor=customer)


def test_other_users_vehicle_is_off_limits(desk, conn, other_customer, add):
    v = add("Myvi", "WXY 1234")
    with pytest.raises(PermissionDeniedError):
        desk.vehicles.set_primary(conn, v.id, actor=other_customer)
    with pytest.raises(PermissionDeniedError):
        desk.vehicles.delete_vehicle(conn, v.id, actor=other_customer)


def test_vehicle_needs_name_and_plate(add):
    with pytest.raises(ValidationError):
        add("", "WXY 1")
    with pytest.raises(ValidationError):
        add("Myvi", "")
