"""
Resource service: CRUD for catalog resources and the property schema they host.
"""
import uuid
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import settings
from ..errors import (
    NotFoundError,
    ValidationError,
    CapacityError,
    ReferentialIntegrityError,
)
from ..models.models import Resource, ResourceAssignment, Employee
from ..schemas.resources import ResourceCreate, ResourceUpdate
from . import events
from . import schema_lock
from .resource_types import get_type
from .resource_categories import get_category
from .schema_validation import dump_schema

logger = structlog.get_logger(__name__)

ENTITY = "RESOURCE"


def get_resource(db: Session, resource_id: uuid.UUID) -> Resource:
    resource = db.get(Resource, resource_id)
    if not resource:
        raise NotFoundError("Resource", resource_id)
    return resource


def list_resources(
    db: Session,
    resource_type_id: Optional[uuid.UUID] = None,
    resource_category_id: Optional[uuid.UUID] = None,
    status: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 50,
) -> List[Resource]:
    query = db.query(Resource)
    if resource_type_id:
        query = query.filter(Resource.resource_type_id == resource_type_id)
    if resource_category_id:
        query = query.filter(Resource.resource_category_id == resource_category_id)
    if status:
        query = query.filter(Resource.status == status)
    if search:
        like = f"%{search}%"
        query = query.filter(or_(Resource.name.ilike(like), Resource.description.ilike(like)))
    page = max(page, 1)
    return query.order_by(Resource.name).offset((page - 1) * limit).limit(limit).all()


def count_active_assignments(db: Session, resource_id: uuid.UUID, assignment_type: Optional[str] = None) -> int:
    query = db.query(ResourceAssignment).filter(
        ResourceAssignment.resource_id == resource_id,
        ResourceAssignment.status == "ACTIVE",
    )
    if assignment_type:
        query = query.filter(ResourceAssignment.assignment_type == assignment_type)
    return query.count()


def _check_custodian(db: Session, custodian_id: Optional[uuid.UUID]) -> None:
    if custodian_id and not db.get(Employee, custodian_id):
        raise ValidationError("Invalid custodian ID", details={"custodian_id": str(custodian_id)})


def _check_quantity(quantity: Optional[int]) -> None:
    if quantity is not None and quantity < 1:
        raise ValidationError("Quantity must be at least 1", details={"quantity": quantity})


def create_resource(db: Session, request: ResourceCreate, actor_id: Optional[uuid.UUID] = None) -> Resource:
    resource_type = get_type(db, request.resource_type_id)
    category = get_category(db, request.resource_category_id)
    if category.resource_type_id != resource_type.id:
        raise ValidationError("Category does not belong to the selected resource type", code="CATEGORY_TYPE_MISMATCH")
    if not request.name or not request.name.strip():
        raise ValidationError("Resource name cannot be empty")
    _check_custodian(db, request.custodian_id)
    _check_quantity(request.quantity)
    schema_lock.check_schema(request.property_schema, list(resource_type.mandatory_properties or []))

    resource = Resource(
        name=request.name.strip(),
        description=request.description,
        resource_type_id=resource_type.id,
        resource_category_id=category.id,
        custodian_id=request.custodian_id,
        property_schema=dump_schema(request.property_schema),
        schema_locked=False,
        quantity=request.quantity or settings.default_pool_quantity,
        status="ACTIVE",
        metadata_json=request.metadata,
        created_by=actor_id,
    )
    db.add(resource)
    db.flush()

    events.emit_audit(
        db, ENTITY, resource.id, "created", actor_id=actor_id,
        new_value={"name": resource.name, "type": resource_type.name, "category": category.name},
    )
    events.emit_timeline(
        db, ENTITY, resource.id, "CREATED", f"Resource {resource.name} created",
        description=f"{resource_type.name} / {category.name}",
        metadata={"property_keys": [d.key for d in request.property_schema]},
        actor_id=actor_id,
    )
    logger.info("resource_created", resource_id=str(resource.id), type=resource_type.name)
    return resource


def update_resource(db: Session, resource_id: uuid.UUID, updates: ResourceUpdate, actor_id: Optional[uuid.UUID] = None) -> Resource:
    resource = schema_lock.lock_for_update(db, resource_id)
    data = updates.model_dump(exclude_unset=True)
    changes = {}

    def _set(field: str, attr: str, value):
        old = getattr(resource, attr)
        if old != value:
            changes[field] = (old, value)
            setattr(resource, attr, value)

    if "name" in data:
        if not data["name"] or not data["name"].strip():
            raise ValidationError("Resource name cannot be empty")
        _set("name", "name", data["name"].strip())
    if "description" in data:
        _set("description", "description", data["description"])
    if data.get("resource_category_id"):
        category = get_category(db, data["resource_category_id"])
        if category.resource_type_id != resource.resource_type_id:
            raise ValidationError("Category does not belong to the resource type", code="CATEGORY_TYPE_MISMATCH")
        _set("resource_category_id", "resource_category_id", category.id)
    if "custodian_id" in data:
        _check_custodian(db, data["custodian_id"])
        _set("custodian_id", "custodian_id", data["custodian_id"])
    if data.get("status"):
        _set("status", "status", data["status"].value)
    if "quantity" in data and data["quantity"] is not None:
        _check_quantity(data["quantity"])
        in_use = count_active_assignments(db, resource.id, "POOLED")
        if data["quantity"] < in_use:
            raise CapacityError(
                f"Quantity cannot be lower than the {in_use} pooled assignment(s) in use",
                details={"used": in_use, "requested": data["quantity"]},
            )
        _set("quantity", "quantity", data["quantity"])
    if "metadata" in data:
        _set("metadata", "metadata_json", data["metadata"])

    if updates.property_schema is not None:
        mandatory = list(get_type(db, resource.resource_type_id).mandatory_properties or [])
        schema_lock.replace_schema(db, resource, updates.property_schema, mandatory, actor_id=actor_id)

    if changes:
        resource.updated_at = datetime.utcnow()
        for field, (old, new) in changes.items():
            events.emit_audit(db, ENTITY, resource.id, field, actor_id=actor_id, old_value=old, new_value=new)
        events.emit_timeline(
            db, ENTITY, resource.id,
            "STATUS_CHANGED" if list(changes) == ["status"] else "UPDATED",
            f"Resource {resource.name} updated",
            metadata={"fields": list(changes.keys())},
            actor_id=actor_id,
        )
    db.flush()
    return resource


def delete_resource(db: Session, resource_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
    resource = schema_lock.lock_for_update(db, resource_id)
    schema_lock.ensure_schema_removable(db, resource)

    assignments = db.query(ResourceAssignment).filter(ResourceAssignment.resource_id == resource.id).count()
    if assignments:
        raise ReferentialIntegrityError(
            f"Cannot delete resource: it has {assignments} assignment(s)",
            blocking_count=assignments,
        )

    events.emit_audit(db, ENTITY, resource.id, "deleted", actor_id=actor_id, old_value={"name": resource.name})
    events.emit_timeline(db, ENTITY, resource.id, "DELETED", f"Resource {resource.name} deleted", actor_id=actor_id)
    db.delete(resource)
    db.flush()
