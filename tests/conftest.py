from datetime import datetime
from typing import Optional

import pytest

from busops.config import Settings
from busops.runtime import Runtime
from busops.schemas.auth import CompanyCreate, UserCreate, UserRole
from busops.schemas.fleet import FuelType, VehicleCreate
from busops.schemas.missions import MissionCreate
from busops.services.directory import create_company, create_user
from busops.services.fleet import create_vehicle
from busops.services.mission_state import create_mission


PASSWORD = "secret-pass"


@pytest.fixture
def settings() -> Settings:
    return Settings(
        DATABASE_URL="sqlite:///:memory:",
        JWT_SECRET="test-secret",
        LOG_LEVEL="WARNING",
        TZ_DEFAULT="Europe/Paris",
    )


@pytest.fixture
def runtime(settings: Settings):
    rt = Runtime(settings).initialize()
    yield rt
    rt.teardown()


@pytest.fixture
def db(runtime: Runtime):
    with runtime.database.session_scope() as session:
        yield session


@pytest.fixture
def hub(runtime: Runtime):
    return runtime.hub


def _user(db, email: str, license_number: str, role: UserRole, first_name: str, last_name: str):
    return create_user(
        db,
        UserCreate(
            email=email,
            password=PASSWORD,
            first_name=first_name,
            last_name=last_name,
            license_number=license_number,
            role=role,
        ),
    )


@pytest.fixture
def admin(db):
    return _user(db, "admin@busops.test", "ADM-001", UserRole.ADMIN, "Alice", "Martin")


@pytest.fixture
def second_admin(db):
    return _user(db, "ops@busops.test", "ADM-002", UserRole.ADMIN, "Bruno", "Petit")


@pytest.fixture
def driver(db):
    return _user(db, "driver@busops.test", "DRV-001", UserRole.DRIVER, "Jean", "Dupont")


@pytest.fixture
def other_driver(db):
    return _user(db, "other@busops.test", "DRV-002", UserRole.DRIVER, "Marie", "Durand")


@pytest.fixture
def company(db):
    return create_company(
        db,
        CompanyCreate(
            name="Lycée Voltaire",
            address="12 rue de la Paix, Lyon",
            phone_number="+33 4 78 00 00 00",
            email="contact@voltaire.test",
            contact_person="Mme Leroy",
        ),
    )


def vehicle_data(fleet_number: str = "BUS-01", license_plate: str = "AB-123-CD", mileage: int = 1000) -> VehicleCreate:
    return VehicleCreate(
        brand="Mercedes",
        model="Tourismo",
        license_plate=license_plate,
        fleet_number=fleet_number,
        vin="WDB6323331A000001",
        first_registration="2019-05-02",
        engine_power=430,
        fuel_type=FuelType.DIESEL,
        seats=53,
        category="M3",
        mileage=mileage,
    )


@pytest.fixture
def vehicle(db, admin):
    return create_vehicle(db, vehicle_data(), admin)


def mission_data(company_id: str, **overrides) -> MissionCreate:
    payload = dict(
        title="School trip to Annecy",
        departure_location="Lycée Voltaire",
        departure_address="12 rue de la Paix, Lyon",
        departure_lat=45.764,
        departure_lng=4.8357,
        scheduled_departure_at=datetime(2024, 3, 15, 8, 0),
        arrival_location="Annecy lake",
        arrival_address="Quai Napoléon III, Annecy",
        arrival_lat=45.8992,
        arrival_lng=6.1294,
        estimated_arrival_at=datetime(2024, 3, 15, 10, 0),
        max_passengers=50,
        current_passengers=30,
        company_id=company_id,
    )
    payload.update(overrides)
    return MissionCreate(**payload)


@pytest.fixture
def make_mission(db, admin, company, hub):
    def _make(vehicle_id: Optional[str] = None, driver_id: Optional[str] = None, **overrides):
        data = mission_data(company.id, vehicle_id=vehicle_id, driver_id=driver_id, **overrides)
        return create_mission(db, data, admin, hub=hub)

    return _make
