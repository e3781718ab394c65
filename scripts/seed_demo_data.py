"""
Seed the local database with demo companies, staff, vehicles and missions.

Usage:
  python scripts/seed_demo_data.py

This script is idempotent: running it multiple times reuses the same
records based on unique fields (email for users, fleet number for vehicles,
name for companies, title for missions).
"""

from datetime import datetime, timedelta

from busops.config import Settings
from busops.models.models import Company, Mission, User, Vehicle
from busops.runtime import Runtime
from busops.schemas.auth import CompanyCreate, UserCreate, UserRole
from busops.schemas.fleet import FuelType, VehicleCreate
from busops.schemas.missions import MissionCreate
from busops.services.directory import create_company, create_user
from busops.services.fleet import create_vehicle
from busops.services.mission_state import create_mission


DEMO_PASSWORD = "Demo12345!"


def ensure_company(session, name: str, **kwargs) -> Company:
    company = session.query(Company).filter(Company.name == name).first()
    if company:
        return company
    return create_company(session, CompanyCreate(name=name, **kwargs))


def ensure_user(session, email: str, first_name: str, last_name: str, license_number: str, role: UserRole) -> User:
    user = session.query(User).filter(User.email == email).first()
    if user:
        return user
    return create_user(
        session,
        UserCreate(
            email=email,
            password=DEMO_PASSWORD,
            first_name=first_name,
            last_name=last_name,
            license_number=license_number,
            role=role,
        ),
    )


def ensure_vehicle(session, admin: User, fleet_number: str, **kwargs) -> Vehicle:
    vehicle = session.query(Vehicle).filter(Vehicle.fleet_number == fleet_number).first()
    if vehicle:
        return vehicle
    return create_vehicle(session, VehicleCreate(fleet_number=fleet_number, **kwargs), admin)


def ensure_mission(session, admin: User, title: str, timezone_str: str, **kwargs) -> Mission:
    mission = session.query(Mission).filter(Mission.title == title).first()
    if mission:
        return mission
    return create_mission(session, MissionCreate(title=title, **kwargs), admin, timezone_str=timezone_str)


def seed(session, timezone_str: str = "Europe/Paris") -> dict:
    admin = ensure_user(session, "admin@busops.example", "Admin", "Depot", "ADMIN001", UserRole.ADMIN)
    jean = ensure_user(session, "jean.durand@busops.example", "Jean", "Durand", "JD123456", UserRole.DRIVER)
    marie = ensure_user(session, "marie.lemoine@busops.example", "Marie", "Lemoine", "ML789012", UserRole.DRIVER)

    city = ensure_company(
        session,
        "Mairie de Paris",
        address="Place de l'Hôtel de Ville, 75004 Paris",
        phone_number="+33 1 42 76 40 40",
        email="transport@paris.example",
        contact_person="Service Transport",
    )
    school = ensure_company(
        session,
        "Lycée François 1er",
        address="11 rue Victor Hugo, 77300 Fontainebleau",
        phone_number="+33 1 64 22 30 45",
        email="direction@lycee.example",
        contact_person="M. Dubois",
    )

    coach = ensure_vehicle(
        session,
        admin,
        "BUS-001",
        brand="Mercedes",
        model="Tourismo",
        license_plate="AB-123-CD",
        vin="WDB6323331A000001",
        first_registration="2019-05-02",
        engine_power=430,
        fuel_type=FuelType.DIESEL,
        seats=53,
        category="M3",
        mileage=125000,
    )
    ensure_vehicle(
        session,
        admin,
        "BUS-002",
        brand="Iveco",
        model="Crossway",
        license_plate="EF-456-GH",
        vin="ZCFC135B005000002",
        first_registration="2021-02-15",
        engine_power=360,
        fuel_type=FuelType.HYBRIDE,
        seats=61,
        category="M3",
        mileage=48000,
    )

    today = datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    ensure_mission(
        session,
        admin,
        "Transport scolaire - Fontainebleau",
        timezone_str,
        departure_location="Lycée François 1er",
        departure_address="11 rue Victor Hugo, 77300 Fontainebleau",
        departure_lat=48.4047,
        departure_lng=2.7016,
        scheduled_departure_at=today + timedelta(hours=7, minutes=30),
        arrival_location="Château de Versailles",
        arrival_address="Place d'Armes, 78000 Versailles",
        arrival_lat=48.8049,
        arrival_lng=2.1204,
        estimated_arrival_at=today + timedelta(hours=9),
        max_passengers=50,
        current_passengers=42,
        company_id=school.id,
        vehicle_id=coach.id,
        driver_id=jean.id,
    )
    ensure_mission(
        session,
        admin,
        "Navette mairie - Gare de Lyon",
        timezone_str,
        departure_location="Hôtel de Ville",
        departure_address="Place de l'Hôtel de Ville, 75004 Paris",
        departure_lat=48.8566,
        departure_lng=2.3522,
        scheduled_departure_at=today + timedelta(days=1, hours=14),
        arrival_location="Gare de Lyon",
        arrival_address="Place Louis-Armand, 75012 Paris",
        arrival_lat=48.8443,
        arrival_lng=2.3744,
        estimated_arrival_at=today + timedelta(days=1, hours=14, minutes=30),
        max_passengers=30,
        company_id=city.id,
        driver_id=marie.id,
    )
    return {"admin": admin, "drivers": [jean, marie], "companies": [city, school]}


def main() -> None:
    settings = Settings()
    runtime = Runtime(settings).initialize()
    try:
        with runtime.database.session_scope() as session:
            seeded = seed(session, settings.tz_default)
            print(f"Seeded {len(seeded['drivers'])} drivers and {session.query(Mission).count()} missions")
    finally:
        runtime.teardown()


if __name__ == "__main__":
    main()
