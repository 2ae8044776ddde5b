import uuid
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db, atomic
from ..schemas.resources import EmployeeCreate, EmployeeUpdate, EmployeeResponse, AssignmentResponse
from ..services import employees, assignments
from ..services.employees import EmployeeLookupCache
from .deps import get_employee_cache


router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=List[EmployeeResponse])
def list_employees(active_only: bool = False, db: Session = Depends(get_db)):
    return employees.list_employees(db, active_only=active_only)


@router.post("", response_model=EmployeeResponse, status_code=201)
def create_employee(body: EmployeeCreate, db: Session = Depends(get_db), cache: EmployeeLookupCache = Depends(get_employee_cache)):
    with atomic(db):
        employee = employees.create_employee(db, body, cache=cache)
    return employee


@router.get("/{employee_id}", response_model=EmployeeResponse)
def get_employee(employee_id: uuid.UUID, db: Session = Depends(get_db)):
    return employees.get_employee(db, employee_id)


@router.patch("/{employee_id}", response_model=EmployeeResponse)
def update_employee(employee_id: uuid.UUID, body: EmployeeUpdate, db: Session = Depends(get_db), cache: EmployeeLookupCache = Depends(get_employee_cache)):
    with atomic(db):
        employee = employees.update_employee(db, employee_id, body, cache=cache)
    return employee


@router.get("/{employee_id}/assignments", response_model=List[AssignmentResponse])
def employee_assignments(employee_id: uuid.UUID, db: Session = Depends(get_db)):
    employees.get_employee(db, employee_id)
    return assignments.list_assignments(db, employee_id=employee_id, limit=500)
