from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..auth.security import get_current_admin, get_current_user
from ..db import get_db
from ..errors import NotFoundError
from ..models.models import User
from ..schemas.fleet import VehicleCreate, VehicleResponse, VehicleStatusUpdate, VehicleUpdate
from ..services.fleet import (
    create_vehicle,
    delete_vehicle,
    get_active_vehicles,
    get_all_vehicles,
    get_vehicle_by_id,
    set_vehicle_active,
    update_vehicle,
)


router = APIRouter(prefix="/fleet", tags=["fleet"])


@router.get("/vehicles", response_model=List[VehicleResponse])
def list_vehicles(
    active_only: bool = Query(False),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    if active_only:
        return get_active_vehicles(db)
    return get_all_vehicles(db)


@router.get("/vehicles/{vehicle_id}", response_model=VehicleResponse)
def get_vehicle(vehicle_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    vehicle = get_vehicle_by_id(db, vehicle_id)
    if vehicle is None:
        raise NotFoundError("Vehicle", vehicle_id)
    return vehicle


@router.post("/vehicles", response_model=VehicleResponse, status_code=201)
def add_vehicle(body: VehicleCreate, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return create_vehicle(db, body, admin)


@router.put("/vehicles/{vehicle_id}", response_model=VehicleResponse)
def edit_vehicle(
    vehicle_id: str,
    body: VehicleUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return update_vehicle(db, vehicle_id, body, admin)


@router.patch("/vehicles/{vehicle_id}/status", response_model=VehicleResponse)
def change_vehicle_status(
    vehicle_id: str,
    body: VehicleStatusUpdate,
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return set_vehicle_active(db, vehicle_id, body.is_active, admin)


@router.delete("/vehicles/{vehicle_id}")
def remove_vehicle(vehicle_id: str, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    delete_vehicle(db, vehicle_id, admin)
    return {"status": "ok"}
