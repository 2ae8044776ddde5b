"""
Assignment lifecycle.

Assignments bind an employee to a resource, and to one of its items for
item-bound models. Creation re-validates under row locks inside the caller's
transaction; status changes follow a fixed table and drive the bound item's
status in the same transaction. Assignments are never deleted.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import (
    ResourceHubError,
    NotFoundError,
    ValidationError,
    DuplicateAssignmentError,
    ItemUnavailableError,
    InactiveResourceError,
    CapacityExceededError,
    InvalidTransitionError,
)
from ..models.models import Resource, ResourceItem, ResourceAssignment, ResourceType, Employee
from ..schemas.resources import (
    AssignmentCreate,
    AssignmentType,
    AssignmentValidationResult,
    ItemAssignable,
    LicenseCount,
    SharedResourceUser,
)
from . import events
from . import items as item_lifecycle
from .assignment_policy import resolve, forced_type
from .employees import EmployeeLookupCache
from .resources import count_active_assignments
from .schema_lock import lock_for_update

logger = structlog.get_logger(__name__)

ENTITY = "ASSIGNMENT"

STATUS_TRANSITIONS: Dict[str, Set[str]] = {
    "ACTIVE": {"RETURNED", "LOST", "DAMAGED"},
    "DAMAGED": {"RETURNED"},
}

ITEM_STATUS_FOR: Dict[str, str] = {
    "RETURNED": "AVAILABLE",
    "LOST": "LOST",
    "DAMAGED": "DAMAGED",
}


# ---------- VALIDATION ----------
def _employee_active_on_resource(db: Session, employee_id, resource_id, assignment_type: Optional[str] = None) -> bool:
    query = db.query(ResourceAssignment).filter(
        ResourceAssignment.employee_id == employee_id,
        ResourceAssignment.resource_id == resource_id,
        ResourceAssignment.status == "ACTIVE",
    )
    if assignment_type:
        query = query.filter(ResourceAssignment.assignment_type == assignment_type)
    return db.query(query.exists()).scalar()


def _check_item(db: Session, resource: Resource, request: AssignmentCreate, lock: bool) -> ResourceItem:
    if lock:
        item = item_lifecycle.lock_item(db, request.item_id)
    else:
        item = db.get(ResourceItem, request.item_id)
        if not item:
            raise NotFoundError("Resource item", request.item_id)
    if item.resource_id != resource.id:
        raise NotFoundError("Resource item", request.item_id)

    current = item_lifecycle.active_assignment(db, item.id)
    if current and current.employee_id == request.employee_id:
        raise DuplicateAssignmentError("Employee already has this item assigned.")
    if current or item.status != "AVAILABLE":
        raise ItemUnavailableError(
            "The specified item is not available for assignment. It may already be assigned or in maintenance.",
            current=item.status,
            requested="ASSIGNED",
        )
    return item


def _pool_total(resource: Resource) -> int:
    return resource.quantity or settings.default_pool_quantity


def _recheck_pool(db: Session, resource: Resource) -> None:
    """Count again once the new seat is flushed; raises if a concurrent writer took the last one."""
    total = _pool_total(resource)
    used = count_active_assignments(db, resource.id, "POOLED")
    if used > total:
        raise CapacityExceededError(
            f"No available licenses in the pool. {used - 1}/{total} licenses are in use.",
            used=used - 1,
            total=total,
        )


def _check(db: Session, request: AssignmentCreate, lock: bool = False) -> Tuple[Resource, AssignmentType, Optional[ResourceItem]]:
    """Run every business rule for a new assignment, raising the first violation."""
    if lock:
        resource = lock_for_update(db, request.resource_id)
    else:
        resource = db.get(Resource, request.resource_id)
        if not resource:
            raise NotFoundError("Resource", request.resource_id)
    if resource.status != "ACTIVE":
        raise InactiveResourceError("Resource is not active", current=resource.status, requested="ACTIVE")
    if not db.get(Employee, request.employee_id):
        raise NotFoundError("Employee", request.employee_id)

    resource_type = db.get(ResourceType, resource.resource_type_id)
    type_name = resource_type.name if resource_type else None
    assignment_type = resolve(type_name, request.assignment_type)
    item = None

    if assignment_type == AssignmentType.POOLED:
        total = _pool_total(resource)
        used = count_active_assignments(db, resource.id, "POOLED")
        if used >= total:
            raise CapacityExceededError(
                f"No available licenses in the pool. {used}/{total} licenses are in use.",
                used=used,
                total=total,
            )
        if _employee_active_on_resource(db, request.employee_id, resource.id, "POOLED"):
            raise DuplicateAssignmentError("Employee already has a pooled license for this resource.")

    elif assignment_type == AssignmentType.SHARED:
        if _employee_active_on_resource(db, request.employee_id, resource.id):
            raise DuplicateAssignmentError("Employee already has access to this shared resource.")
        if request.item_id:
            item = db.get(ResourceItem, request.item_id)
            if not item or item.resource_id != resource.id:
                raise NotFoundError("Resource item", request.item_id)

    else:
        exclusive = forced_type(type_name) == AssignmentType.INDIVIDUAL
        if request.item_id:
            item = _check_item(db, resource, request, lock)
        elif exclusive:
            raise ValidationError(
                "Hardware resources require assignment to a specific item. Please provide an item_id.",
                code="ITEM_REQUIRED",
            )
        if not exclusive and _employee_active_on_resource(db, request.employee_id, resource.id):
            raise DuplicateAssignmentError("Employee already has this resource assigned.")

    return resource, assignment_type, item


def validate(db: Session, request: AssignmentCreate) -> AssignmentValidationResult:
    """Pre-flight check. Business-rule failures are reported, not raised."""
    suggested = None
    try:
        resource = db.get(Resource, request.resource_id)
        if resource:
            resource_type = db.get(ResourceType, resource.resource_type_id)
            suggested = resolve(resource_type.name if resource_type else None, request.assignment_type, conflict_policy="override")
        _, assignment_type, _ = _check(db, request)
    except ResourceHubError as e:
        return AssignmentValidationResult(is_valid=False, error=e.message, error_code=e.code, suggested_assignment_type=suggested)
    return AssignmentValidationResult(is_valid=True, suggested_assignment_type=assignment_type)


# ---------- MUTATIONS ----------
def create_assignment(db: Session, request: AssignmentCreate, actor_id: Optional[uuid.UUID] = None) -> ResourceAssignment:
    """
    Create an assignment and flip its item, if any, to ASSIGNED.

    Must run inside atomic(db); rows are read FOR UPDATE.
    """
    resource, assignment_type, item = _check(db, request, lock=True)

    assignment = ResourceAssignment(
        employee_id=request.employee_id,
        resource_id=resource.id,
        item_id=item.id if item else None,
        assigned_by=actor_id,
        assignment_type=assignment_type.value,
        status="ACTIVE",
        assigned_at=datetime.utcnow(),
        notes=request.notes,
    )
    db.add(assignment)
    if item is not None and assignment_type != AssignmentType.SHARED:
        item_lifecycle.transition(db, item, "ASSIGNED", actor_id=actor_id, assignment_driven=True)

    try:
        db.flush()
    except IntegrityError as e:
        raise ItemUnavailableError(
            "This item was assigned by a concurrent request.",
            current="ASSIGNED",
            requested="ASSIGNED",
        ) from e
    if assignment_type == AssignmentType.POOLED:
        _recheck_pool(db, resource)

    events.emit_audit(
        db, ENTITY, assignment.id, "created", actor_id=actor_id,
        new_value={"employee_id": str(request.employee_id), "assignment_type": assignment_type.value},
        context={"resource_id": str(resource.id), "item_id": str(item.id) if item else None},
    )
    events.emit_timeline(
        db, ENTITY, assignment.id, "ASSIGNED", f"{resource.name} assigned",
        description=f"{assignment_type.value} assignment",
        metadata={"resource_id": str(resource.id), "employee_id": str(request.employee_id)},
        actor_id=actor_id,
    )
    logger.info("assignment_created", assignment_id=str(assignment.id), resource_id=str(resource.id), assignment_type=assignment_type.value)
    return assignment


def get_assignment(db: Session, assignment_id: uuid.UUID) -> ResourceAssignment:
    assignment = db.get(ResourceAssignment, assignment_id)
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)
    return assignment


def update_status(
    db: Session,
    assignment_id: uuid.UUID,
    new_status: str,
    actor_id: Optional[uuid.UUID] = None,
    notes: Optional[str] = None,
    returned_at: Optional[datetime] = None,
) -> ResourceAssignment:
    assignment = (
        db.query(ResourceAssignment)
        .filter(ResourceAssignment.id == assignment_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not assignment:
        raise NotFoundError("Assignment", assignment_id)

    new_status = getattr(new_status, "value", new_status)
    old_status = assignment.status
    if new_status not in STATUS_TRANSITIONS.get(old_status, set()):
        raise InvalidTransitionError(
            f"Cannot transition from {old_status} to {new_status}",
            current=old_status,
            requested=new_status,
        )

    assignment.status = new_status
    assignment.returned_at = returned_at or datetime.utcnow()
    if notes:
        assignment.notes = f"{assignment.notes}\n\n{notes}" if assignment.notes else notes

    if assignment.item_id:
        item = item_lifecycle.lock_item(db, assignment.item_id)
        target = ITEM_STATUS_FOR[new_status]
        if target in item_lifecycle.ASSIGNMENT_TRANSITIONS.get(item.status, set()):
            item_lifecycle.transition(db, item, target, actor_id=actor_id, assignment_driven=True)
        elif new_status in ("LOST", "DAMAGED") and target in item_lifecycle.MANUAL_TRANSITIONS.get(item.status, set()):
            # shared items stay AVAILABLE while assigned
            item_lifecycle.transition(db, item, target, actor_id=actor_id)
        elif item.status != target:
            # e.g. a damaged item already taken in for repair
            logger.info("item_status_kept", item_id=str(item.id), status=item.status, assignment_status=new_status)

    db.flush()
    events.emit_audit(db, ENTITY, assignment.id, "status", actor_id=actor_id, old_value=old_status, new_value=new_status,
                      context={"notes": notes} if notes else None)
    events.emit_timeline(db, ENTITY, assignment.id, "STATUS_CHANGED", f"Assignment {new_status.lower()}",
                         description=notes, metadata={"from": old_status, "to": new_status}, actor_id=actor_id)
    return assignment


def revoke(db: Session, assignment_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None, reason: Optional[str] = None) -> ResourceAssignment:
    note = f"Revoked: {reason}" if reason else "Assignment revoked by administrator"
    return update_status(db, assignment_id, "RETURNED", actor_id=actor_id, notes=note)


# ---------- QUERIES ----------
def list_assignments(
    db: Session,
    resource_id: Optional[uuid.UUID] = None,
    employee_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    assignment_type: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> List[ResourceAssignment]:
    query = db.query(ResourceAssignment)
    if resource_id:
        query = query.filter(ResourceAssignment.resource_id == resource_id)
    if employee_id:
        query = query.filter(ResourceAssignment.employee_id == employee_id)
    if status:
        query = query.filter(ResourceAssignment.status == status)
    if assignment_type:
        query = query.filter(ResourceAssignment.assignment_type == assignment_type)
    page = max(page, 1)
    return query.order_by(ResourceAssignment.assigned_at.desc()).offset((page - 1) * limit).limit(limit).all()


def shared_resource_users(db: Session, resource_id: uuid.UUID, cache: Optional[EmployeeLookupCache] = None) -> List[SharedResourceUser]:
    if not db.get(Resource, resource_id):
        raise NotFoundError("Resource", resource_id)
    active = (
        db.query(ResourceAssignment)
        .filter(
            ResourceAssignment.resource_id == resource_id,
            ResourceAssignment.assignment_type == "SHARED",
            ResourceAssignment.status == "ACTIVE",
        )
        .order_by(ResourceAssignment.assigned_at)
        .all()
    )
    users = []
    for a in active:
        employee = cache.get(db, a.employee_id) if cache else db.get(Employee, a.employee_id)
        users.append(SharedResourceUser(
            assignment_id=a.id,
            employee_id=a.employee_id,
            employee_name=employee.name if employee else None,
            assigned_at=a.assigned_at,
        ))
    return users


def available_license_count(db: Session, resource_id: uuid.UUID) -> LicenseCount:
    resource = db.get(Resource, resource_id)
    if not resource:
        raise NotFoundError("Resource", resource_id)
    total = _pool_total(resource)
    used = count_active_assignments(db, resource.id, "POOLED")
    return LicenseCount(available=max(total - used, 0), total=total, used=used)


def can_assign_item(db: Session, item_id: uuid.UUID) -> ItemAssignable:
    item = db.get(ResourceItem, item_id)
    if not item:
        return ItemAssignable(can_assign=False, reason="Item not found")
    if item.status != "AVAILABLE":
        return ItemAssignable(can_assign=False, reason=f"Item is {item.status}")
    if item_lifecycle.active_assignment(db, item.id):
        return ItemAssignable(can_assign=False, reason="Item is already assigned")
    return ItemAssignable(can_assign=True)
