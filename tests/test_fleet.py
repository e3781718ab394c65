import pytest

from busops.auth.security import authenticate, require_admin
from busops.errors import AuthorizationError, PreconditionError, ValidationError
from busops.models.models import Mission
from busops.schemas.auth import UserCreate
from busops.schemas.fleet import VehicleUpdate
from busops.services.directory import create_user, get_admin_users, get_drivers, get_user_by_id
from busops.services.fleet import (
    create_vehicle,
    delete_vehicle,
    get_active_vehicles,
    get_all_vehicles,
    get_vehicle_by_id,
    set_vehicle_active,
    update_vehicle,
)
from busops.services.mission_state import cancel_mission

from .conftest import PASSWORD, vehicle_data


def test_create_vehicle(db, admin):
    vehicle = create_vehicle(db, vehicle_data(license_plate="ef-456-gh", mileage=42000), admin)
    assert vehicle.license_plate == "EF-456-GH"
    assert vehicle.mileage == 42000
    assert vehicle.is_active is True
    assert get_vehicle_by_id(db, vehicle.id) is vehicle


def test_vehicle_identifiers_are_unique(db, admin, vehicle):
    with pytest.raises(ValidationError):
        create_vehicle(db, vehicle_data(fleet_number="BUS-02"), admin)
    with pytest.raises(ValidationError):
        create_vehicle(db, vehicle_data(license_plate="ZZ-999-ZZ"), admin)
    assert len(get_all_vehicles(db)) == 1


def test_update_vehicle_leaves_mileage_alone(db, admin, vehicle):
    update_vehicle(db, vehicle.id, VehicleUpdate(model="Travego", mileage=5), admin)
    assert vehicle.model == "Travego"
    assert vehicle.mileage == 1000


def test_update_vehicle_rejects_taken_plate(db, admin, vehicle):
    other = create_vehicle(db, vehicle_data(fleet_number="BUS-02", license_plate="EF-456-GH"), admin)
    with pytest.raises(ValidationError):
        update_vehicle(db, other.id, VehicleUpdate(license_plate="ab-123-cd"), admin)


def test_inactive_vehicles(db, admin, vehicle, make_mission):
    set_vehicle_active(db, vehicle.id, False, admin)
    assert get_active_vehicles(db) == []
    with pytest.raises(PreconditionError):
        make_mission(vehicle_id=vehicle.id)


def test_delete_vehicle_in_use(db, admin, vehicle, make_mission):
    mission = make_mission(vehicle_id=vehicle.id)
    with pytest.raises(PreconditionError):
        delete_vehicle(db, vehicle.id, admin)
    cancel_mission(db, mission.id, admin)
    delete_vehicle(db, vehicle.id, admin)
    assert get_vehicle_by_id(db, vehicle.id) is None
    assert db.get(Mission, mission.id).vehicle_id is None


def test_fleet_writes_require_admin(db, driver, vehicle):
    with pytest.raises(AuthorizationError):
        create_vehicle(db, vehicle_data(fleet_number="BUS-09", license_plate="XX-000-XX"), driver)
    with pytest.raises(AuthorizationError):
        set_vehicle_active(db, vehicle.id, False, driver)


def test_users_and_roles(db, admin, driver, other_driver):
    assert [u.id for u in get_admin_users(db)] == [admin.id]
    assert {u.id for u in get_drivers(db)} == {driver.id, other_driver.id}
    other_driver.is_active = False
    db.commit()
    assert [u.id for u in get_drivers(db)] == [driver.id]
    assert len(get_drivers(db, active_only=False)) == 2
    assert get_user_by_id(db, driver.id).full_name == "Jean Dupont"
    assert require_admin(admin) is admin
    with pytest.raises(AuthorizationError):
        require_admin(driver)


def test_duplicate_user_is_rejected(db, driver):
    data = UserCreate(
        email="DRIVER@busops.test",
        password=PASSWORD,
        first_name="Jean",
        last_name="Bis",
        license_number="DRV-999",
    )
    with pytest.raises(ValidationError):
        create_user(db, data)


def test_authenticate(db, driver):
    assert authenticate(db, "driver@busops.test", PASSWORD).id == driver.id
    assert authenticate(db, " Driver@Busops.test ", PASSWORD).id == driver.id
    assert authenticate(db, "driver@busops.test", "wrong-password") is None
    driver.is_active = False
    db.commit()
    assert authenticate(db, "driver@busops.test", PASSWORD) is None
