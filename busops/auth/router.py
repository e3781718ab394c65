from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..config import Settings
from ..db import get_db
from ..models.models import User
from ..runtime import get_settings
from ..schemas.auth import LoginRequest, TokenResponse, UserCreate, UserResponse
from ..services.directory import create_user, get_admin_users, get_drivers
from .security import authenticate, create_access_token, get_current_admin, get_current_user


router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    user = authenticate(db, body.email, body.password)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return TokenResponse(access_token=create_access_token(settings, user.id, user.role))


@router.get("/me", response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user


@router.post("/users", response_model=UserResponse, status_code=201)
def register_user(body: UserCreate, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return create_user(db, body)


@router.get("/drivers", response_model=List[UserResponse])
def list_drivers(
    active_only: bool = Query(True),
    db: Session = Depends(get_db),
    admin: User = Depends(get_current_admin),
):
    return get_drivers(db, active_only=active_only)


@router.get("/admins", response_model=List[UserResponse])
def list_admins(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_admin_users(db)
