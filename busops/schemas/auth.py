from datetime import datetime
from typing import Optional
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class UserRole(str, Enum):
    DRIVER = "DRIVER"
    ADMIN = "ADMIN"


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"


class UserCreate(BaseModel):
    email: str
    password: str = Field(min_length=8)
    first_name: str
    last_name: str
    license_number: str
    phone_number: Optional[str] = None
    role: UserRole = UserRole.DRIVER

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        v = str(v or "").strip().lower()
        if "@" not in v:
            raise ValueError("invalid email address")
        return v


class UserResponse(BaseModel):
    id: str
    email: str
    first_name: str
    last_name: str
    license_number: str
    phone_number: Optional[str] = None
    role: UserRole
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class CompanyCreate(BaseModel):
    name: str
    address: str
    phone_number: str
    email: str
    contact_person: str


class CompanyResponse(CompanyCreate):
    id: str

    class Config:
        from_attributes = True
