from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth.security import get_current_admin, get_current_user
from ..db import get_db
from ..errors import NotFoundError
from ..models.models import User
from ..schemas.auth import CompanyCreate, CompanyResponse
from ..services.directory import create_company, get_all_companies, get_company_by_id


router = APIRouter(prefix="/companies", tags=["companies"])


@router.get("", response_model=List[CompanyResponse])
def list_companies(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return get_all_companies(db)


@router.get("/{company_id}", response_model=CompanyResponse)
def get_company(company_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    company = get_company_by_id(db, company_id)
    if company is None:
        raise NotFoundError("Company", company_id)
    return company


@router.post("", response_model=CompanyResponse, status_code=201)
def add_company(body: CompanyCreate, db: Session = Depends(get_db), admin: User = Depends(get_current_admin)):
    return create_company(db, body)
