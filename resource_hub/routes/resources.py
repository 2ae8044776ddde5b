import uuid
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from ..db import get_db, atomic
from ..models.models import ResourceType
from ..schemas.resources import (
    ResourceCreate,
    ResourceUpdate,
    ResourceResponse,
    ResourceStatus,
    SchemaModifiable,
    ItemCreate,
    ItemUpdate,
    ItemResponse,
    ItemStatus,
    ItemDeletable,
    ItemAssignable,
    AssignmentCreate,
    AssignmentStatusUpdate,
    AssignmentRevoke,
    AssignmentResponse,
    AssignmentStatus,
    AssignmentType,
    AssignmentValidationResult,
    LicenseCount,
    SharedResourceUser,
)
from ..services import resources, items, assignments, schema_lock, legacy
from ..services.employees import EmployeeLookupCache
from ..services.schema_validation import load_schema
from .deps import get_actor_id, get_employee_cache


router = APIRouter(tags=["resources"])


# ---------- RESOURCES ----------
@router.get("/resources", response_model=List[ResourceResponse])
def list_resources(
    resource_type_id: Optional[uuid.UUID] = None,
    resource_category_id: Optional[uuid.UUID] = None,
    status: Optional[ResourceStatus] = None,
    search: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return resources.list_resources(
        db,
        resource_type_id=resource_type_id,
        resource_category_id=resource_category_id,
        status=status.value if status else None,
        search=search,
        page=page,
        limit=limit,
    )


@router.post("/resources", response_model=ResourceResponse, status_code=201)
def create_resource(body: ResourceCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource = resources.create_resource(db, body, actor_id=actor_id)
    return resource


@router.get("/resources/{resource_id}", response_model=ResourceResponse)
def get_resource(resource_id: uuid.UUID, db: Session = Depends(get_db)):
    return resources.get_resource(db, resource_id)


@router.get("/resources/{resource_id}/legacy")
def get_resource_legacy(resource_id: uuid.UUID, db: Session = Depends(get_db)):
    resource = resources.get_resource(db, resource_id)
    resource_type = db.get(ResourceType, resource.resource_type_id)
    return legacy.legacy_resource_view(resource, resource_type.name if resource_type else None)


@router.patch("/resources/{resource_id}", response_model=ResourceResponse)
def update_resource(resource_id: uuid.UUID, body: ResourceUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource = resources.update_resource(db, resource_id, body, actor_id=actor_id)
    return resource


@router.delete("/resources/{resource_id}")
def delete_resource(resource_id: uuid.UUID, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resources.delete_resource(db, resource_id, actor_id=actor_id)
    return {"message": "Resource deleted successfully"}


@router.get("/resources/{resource_id}/schema-status", response_model=SchemaModifiable)
def schema_status(resource_id: uuid.UUID, db: Session = Depends(get_db)):
    return schema_lock.can_modify_schema(db, resource_id)


@router.get("/resources/{resource_id}/licenses", response_model=LicenseCount)
def license_count(resource_id: uuid.UUID, db: Session = Depends(get_db)):
    return assignments.available_license_count(db, resource_id)


@router.get("/resources/{resource_id}/shared-users", response_model=List[SharedResourceUser])
def shared_users(resource_id: uuid.UUID, db: Session = Depends(get_db), cache: EmployeeLookupCache = Depends(get_employee_cache)):
    return assignments.shared_resource_users(db, resource_id, cache=cache)


# ---------- ITEMS ----------
@router.get("/resources/{resource_id}/items", response_model=List[ItemResponse])
def list_items(
    resource_id: uuid.UUID,
    status: Optional[ItemStatus] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return items.list_items(db, resource_id, status=status.value if status else None, page=page, limit=limit)


@router.post("/resources/{resource_id}/items", response_model=ItemResponse, status_code=201)
def create_item(resource_id: uuid.UUID, body: ItemCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        item = items.create_item(
            db,
            resource_id,
            properties=body.properties,
            status=body.status.value if body.status else None,
            actor_id=actor_id,
        )
    return item


@router.post("/resources/{resource_id}/items/legacy", response_model=ItemResponse, status_code=201)
def create_item_from_legacy(resource_id: uuid.UUID, fields: Dict[str, Any] = Body(...), db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    """Accepts the flat legacy item payload (serialNumber, licenseKey, ...)."""
    with atomic(db):
        resource = resources.get_resource(db, resource_id)
        properties = legacy.properties_from_legacy(fields, load_schema(resource.property_schema))
        item = items.create_item(db, resource_id, properties=properties, status=fields.get("status"), actor_id=actor_id)
    return item


@router.get("/items/{item_id}", response_model=ItemResponse)
def get_item(item_id: uuid.UUID, db: Session = Depends(get_db)):
    return items.get_item(db, item_id)


@router.get("/items/{item_id}/legacy")
def get_item_legacy(item_id: uuid.UUID, db: Session = Depends(get_db)):
    return legacy.legacy_item_view(items.get_item(db, item_id))


@router.patch("/items/{item_id}", response_model=ItemResponse)
def update_item(item_id: uuid.UUID, body: ItemUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        item = items.update_item(
            db,
            item_id,
            properties=body.properties,
            status=body.status.value if body.status else None,
            actor_id=actor_id,
        )
    return item


@router.get("/items/{item_id}/can-delete", response_model=ItemDeletable)
def can_delete_item(item_id: uuid.UUID, db: Session = Depends(get_db)):
    return items.can_delete(db, item_id)


@router.get("/items/{item_id}/can-assign", response_model=ItemAssignable)
def can_assign_item(item_id: uuid.UUID, db: Session = Depends(get_db)):
    return assignments.can_assign_item(db, item_id)


@router.delete("/items/{item_id}")
def delete_item(item_id: uuid.UUID, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        items.delete_item(db, item_id, actor_id=actor_id)
    return {"message": "Item deleted successfully"}


# ---------- ASSIGNMENTS ----------
@router.get("/assignments", response_model=List[AssignmentResponse])
def list_assignments(
    resource_id: Optional[uuid.UUID] = None,
    employee_id: Optional[uuid.UUID] = None,
    status: Optional[AssignmentStatus] = None,
    assignment_type: Optional[AssignmentType] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
):
    return assignments.list_assignments(
        db,
        resource_id=resource_id,
        employee_id=employee_id,
        status=status.value if status else None,
        assignment_type=assignment_type.value if assignment_type else None,
        page=page,
        limit=limit,
    )


@router.post("/assignments/validate", response_model=AssignmentValidationResult)
def validate_assignment(body: AssignmentCreate, db: Session = Depends(get_db)):
    return assignments.validate(db, body)


@router.post("/assignments", response_model=AssignmentResponse, status_code=201)
def create_assignment(body: AssignmentCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        assignment = assignments.create_assignment(db, body, actor_id=actor_id)
    return assignment


@router.get("/assignments/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(assignment_id: uuid.UUID, db: Session = Depends(get_db)):
    return assignments.get_assignment(db, assignment_id)


@router.patch("/assignments/{assignment_id}/status", response_model=AssignmentResponse)
def update_assignment_status(assignment_id: uuid.UUID, body: AssignmentStatusUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        assignment = assignments.update_status(
            db,
            assignment_id,
            body.status.value,
            actor_id=actor_id,
            notes=body.notes,
            returned_at=body.returned_at,
        )
    return assignment


@router.post("/assignments/{assignment_id}/revoke", response_model=AssignmentResponse)
def revoke_assignment(assignment_id: uuid.UUID, body: AssignmentRevoke = Body(default=AssignmentRevoke()), db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        assignment = assignments.revoke(db, assignment_id, actor_id=actor_id, reason=body.reason)
    return assignment
