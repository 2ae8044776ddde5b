"""
Employee directory and the bounded lookup cache used to resolve employee
display data. The cache is owned by whoever creates it (one per app, or one
per test) and is invalidated on employee mutation.
"""
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import NotFoundError, ValidationError
from ..models.models import Employee
from ..schemas.resources import EmployeeCreate, EmployeeUpdate, EmployeeResponse

logger = structlog.get_logger(__name__)

_MISSING = object()


class EmployeeLookupCache:
    """
    LRU cache of employee snapshots keyed by id.

    Entries are EmployeeResponse copies, not ORM rows, so they survive the
    session that loaded them. Misses are cached as None until invalidated.
    """

    def __init__(self, max_size: Optional[int] = None):
        self.max_size = max_size if max_size is not None else settings.employee_cache_size
        self._entries: "OrderedDict[uuid.UUID, Optional[EmployeeResponse]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, employee_id) -> bool:
        return employee_id in self._entries

    def get(self, db: Session, employee_id: uuid.UUID) -> Optional[EmployeeResponse]:
        cached = self._entries.get(employee_id, _MISSING)
        if cached is not _MISSING:
            self._entries.move_to_end(employee_id)
            self.hits += 1
            return cached

        self.misses += 1
        employee = db.get(Employee, employee_id)
        snapshot = EmployeeResponse.model_validate(employee) if employee is not None else None
        self._put(employee_id, snapshot)
        return snapshot

    def _put(self, employee_id, employee) -> None:
        if self.max_size <= 0:
            return
        self._entries[employee_id] = employee
        self._entries.move_to_end(employee_id)
        while len(self._entries) > self.max_size:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("employee_cache_evicted", employee_id=str(evicted))

    def invalidate(self, employee_id) -> None:
        self._entries.pop(employee_id, None)

    def clear(self) -> None:
        self._entries.clear()


def get_employee(db: Session, employee_id: uuid.UUID) -> Employee:
    employee = db.get(Employee, employee_id)
    if not employee:
        raise NotFoundError("Employee", employee_id)
    return employee


def list_employees(db: Session, active_only: bool = False) -> list:
    query = db.query(Employee)
    if active_only:
        query = query.filter(Employee.is_active.is_(True))
    return query.order_by(Employee.name).all()


def create_employee(db: Session, request: EmployeeCreate, cache: Optional[EmployeeLookupCache] = None) -> Employee:
    if db.query(Employee).filter(Employee.email == request.email).first():
        raise ValidationError(f'Employee with email "{request.email}" already exists', code="DUPLICATE_EMAIL")
    employee = Employee(name=request.name.strip(), email=request.email, department=request.department, is_active=True)
    db.add(employee)
    try:
        db.flush()
    except IntegrityError as e:
        raise ValidationError(f'Employee with email "{request.email}" already exists', code="DUPLICATE_EMAIL") from e
    if cache is not None:
        cache.invalidate(employee.id)
    logger.info("employee_created", employee_id=str(employee.id))
    return employee


def update_employee(db: Session, employee_id: uuid.UUID, updates: EmployeeUpdate, cache: Optional[EmployeeLookupCache] = None) -> Employee:
    employee = get_employee(db, employee_id)
    data = updates.model_dump(exclude_unset=True)
    if data.get("email") and data["email"] != employee.email:
        if db.query(Employee).filter(Employee.email == data["email"]).first():
            raise ValidationError(f'Employee with email "{data["email"]}" already exists', code="DUPLICATE_EMAIL")
    for field, value in data.items():
        if value is not None:
            setattr(employee, field, value)
    employee.updated_at = datetime.utcnow()
    db.flush()
    if cache is not None:
        cache.invalidate(employee.id)
    return employee
