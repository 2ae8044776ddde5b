"""
Item lifecycle.

Items are concrete units of a resource, validated against its schema. Status
follows two transition tables: the manual one used by item updates, and the
assignment-driven one used only by the assignment lifecycle.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Set

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import (
    NotFoundError,
    ValidationError,
    InvalidTransitionError,
    ActiveAssignmentError,
)
from ..models.models import Resource, ResourceItem, ResourceAssignment, ItemUniqueValue, ResourceType
from ..schemas.resources import ItemDeletable
from . import events
from .audit import compute_diff
from .property_catalog import unique_keys
from .schema_lock import lock_for_update, lock_schema
from .schema_validation import (
    apply_defaults,
    load_schema,
    parse_properties,
    to_storage,
    validate_mandatory_properties,
)

logger = structlog.get_logger(__name__)

ENTITY = "RESOURCE_ITEM"

ITEM_STATUSES = ["AVAILABLE", "ASSIGNED", "MAINTENANCE", "LOST", "DAMAGED"]
INITIAL_STATUSES = ["AVAILABLE", "MAINTENANCE", "LOST", "DAMAGED"]

# Manual reports and repairs
MANUAL_TRANSITIONS: Dict[str, Set[str]] = {
    "AVAILABLE": {"MAINTENANCE", "LOST", "DAMAGED"},
    "MAINTENANCE": {"AVAILABLE", "LOST", "DAMAGED"},
    "ASSIGNED": {"LOST", "DAMAGED"},
    "DAMAGED": {"MAINTENANCE", "LOST"},
    "LOST": {"DAMAGED"},
}

# Driven by assignment creation and resolution
ASSIGNMENT_TRANSITIONS: Dict[str, Set[str]] = {
    "AVAILABLE": {"ASSIGNED"},
    "ASSIGNED": {"AVAILABLE", "LOST", "DAMAGED"},
    "DAMAGED": {"AVAILABLE"},
}


def get_item(db: Session, item_id: uuid.UUID) -> ResourceItem:
    item = db.get(ResourceItem, item_id)
    if not item:
        raise NotFoundError("Resource item", item_id)
    return item


def lock_item(db: Session, item_id: uuid.UUID) -> ResourceItem:
    item = (
        db.query(ResourceItem)
        .filter(ResourceItem.id == item_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not item:
        raise NotFoundError("Resource item", item_id)
    return item


def list_items(db: Session, resource_id: uuid.UUID, status: Optional[str] = None, page: int = 1, limit: int = 50) -> List[ResourceItem]:
    if not db.get(Resource, resource_id):
        raise NotFoundError("Resource", resource_id)
    query = db.query(ResourceItem).filter(ResourceItem.resource_id == resource_id)
    if status:
        query = query.filter(ResourceItem.status == status)
    page = max(page, 1)
    return query.order_by(ResourceItem.created_at).offset((page - 1) * limit).limit(limit).all()


def active_assignment(db: Session, item_id: uuid.UUID) -> Optional[ResourceAssignment]:
    return (
        db.query(ResourceAssignment)
        .filter(ResourceAssignment.item_id == item_id, ResourceAssignment.status == "ACTIVE")
        .first()
    )


def check_transition(current: str, requested: str, assignment_driven: bool = False) -> bool:
    """
    Returns False for a no-op, True for a legal move.

    Raises:
        InvalidTransitionError: the move is not in the applicable table.
    """
    if current == requested:
        return False
    table = ASSIGNMENT_TRANSITIONS if assignment_driven else MANUAL_TRANSITIONS
    if requested not in table.get(current, set()):
        raise InvalidTransitionError(
            f"Invalid item status transition from {current} to {requested}",
            current=current,
            requested=requested,
        )
    return True


def transition(db: Session, item: ResourceItem, new_status: str, actor_id: Optional[uuid.UUID] = None, assignment_driven: bool = False) -> bool:
    """Move an item to new_status and emit its status change. Returns False for a no-op."""
    old_status = item.status
    if not check_transition(old_status, new_status, assignment_driven=assignment_driven):
        return False
    item.status = new_status
    item.updated_at = datetime.utcnow()
    events.emit_audit(db, ENTITY, item.id, "status", actor_id=actor_id, old_value=old_status, new_value=new_status)
    logger.info("item_status_changed", item_id=str(item.id), old=old_status, new=new_status, assignment_driven=assignment_driven)
    return True


def _mandatory_keys(db: Session, resource: Resource) -> List[str]:
    resource_type = db.get(ResourceType, resource.resource_type_id)
    return list(resource_type.mandatory_properties or []) if resource_type else []


def _check_mandatory(values: Dict, mandatory: List[str]) -> None:
    if not mandatory:
        return
    result = validate_mandatory_properties(values, mandatory)
    if not result.is_valid:
        raise ValidationError(
            f"Missing mandatory properties: {', '.join(result.missing_properties)}",
            code="MISSING_MANDATORY_PROPERTIES",
            details={"missing_properties": result.missing_properties, "errors": result.errors},
        )


def _duplicate_error(key: str, value: str) -> ValidationError:
    return ValidationError(
        f'An item with {key} "{value}" already exists',
        code="DUPLICATE_PROPERTY_VALUE",
        details={"property": key, "value": value},
    )


def _sync_unique_values(db: Session, item: ResourceItem, stored: Dict, keys: List[str]) -> None:
    """Keep item_unique_values in step with the item's unique properties."""
    existing = {uv.property_key: uv for uv in item.unique_values}
    for key in keys:
        raw = stored.get(key)
        value = None if raw is None else str(raw)
        if value is not None:
            clash = (
                db.query(ItemUniqueValue)
                .filter(ItemUniqueValue.property_key == key, ItemUniqueValue.value == value)
                .first()
            )
            if clash and clash.item_id != item.id:
                raise _duplicate_error(key, value)
        row = existing.get(key)
        if value is None:
            if row is not None:
                item.unique_values.remove(row)
        elif row is None:
            item.unique_values.append(ItemUniqueValue(property_key=key, value=value))
        elif row.value != value:
            row.value = value


def _flush(db: Session, stored: Dict, keys: List[str]) -> None:
    try:
        db.flush()
    except IntegrityError as e:
        # Concurrent insert of the same unique value
        key = next((k for k in keys if stored.get(k) is not None), "property")
        raise _duplicate_error(key, str(stored.get(key))) from e


def create_item(
    db: Session,
    resource_id: uuid.UUID,
    properties: Optional[Dict] = None,
    status: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> ResourceItem:
    """
    Create an item against the resource's schema, locking the schema if this
    is the first item.

    Raises:
        NotFoundError: resource missing.
        ValidationError: MISSING_MANDATORY_PROPERTIES, SCHEMA_VALIDATION_FAILED,
            DUPLICATE_PROPERTY_VALUE or a bad initial status.
    """
    resource = lock_for_update(db, resource_id)
    status = status or "AVAILABLE"
    if status not in INITIAL_STATUSES:
        raise ValidationError(
            f"Items cannot be created with status {status}",
            code="INVALID_INITIAL_STATUS",
            details={"allowed": INITIAL_STATUSES},
        )

    schema = load_schema(resource.property_schema)
    _check_mandatory(apply_defaults(properties or {}, schema), _mandatory_keys(db, resource))
    stored = to_storage(parse_properties(properties or {}, schema))

    item = ResourceItem(resource_id=resource.id, status=status, properties=stored, created_by=actor_id)
    db.add(item)
    keys = unique_keys(db, stored.keys())
    _sync_unique_values(db, item, stored, keys)
    _flush(db, stored, keys)

    first = lock_schema(db, resource, actor_id=actor_id)
    events.emit_audit(db, ENTITY, item.id, "created", actor_id=actor_id,
                      new_value={"status": status, "properties": stored}, context={"resource_id": str(resource.id)})
    events.emit_timeline(db, ENTITY, item.id, "CREATED", f"Item added to {resource.name}",
                         metadata={"resource_id": str(resource.id), "schema_locked_now": first}, actor_id=actor_id)
    logger.info("item_created", item_id=str(item.id), resource_id=str(resource.id), first_item=first)
    return item


def _resolve_assignment_for_report(db: Session, item: ResourceItem, status: str, actor_id: Optional[uuid.UUID]) -> None:
    """A manual LOST/DAMAGED report closes the item's active assignment with the same status."""
    assignment = active_assignment(db, item.id)
    if not assignment:
        return
    now = datetime.utcnow()
    assignment.status = status
    assignment.returned_at = now
    note = f"Item reported {status.lower()}"
    assignment.notes = f"{assignment.notes}\n\n{note}" if assignment.notes else note
    events.emit_audit(db, "ASSIGNMENT", assignment.id, "status", actor_id=actor_id,
                      old_value="ACTIVE", new_value=status, context={"item_id": str(item.id)})
    events.emit_timeline(db, "ASSIGNMENT", assignment.id, "STATUS_CHANGED", f"Assignment marked {status}",
                         description=note, actor_id=actor_id)


def update_item(
    db: Session,
    item_id: uuid.UUID,
    properties: Optional[Dict] = None,
    status: Optional[str] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> ResourceItem:
    item = lock_item(db, item_id)
    resource = db.get(Resource, item.resource_id)
    old_properties = dict(item.properties or {})
    old_status = item.status
    changes: Dict[str, Dict] = {}

    if properties is not None:
        schema = load_schema(resource.property_schema)
        _check_mandatory(apply_defaults(properties, schema), _mandatory_keys(db, resource))
        stored = to_storage(parse_properties(properties, schema))
        diff = compute_diff(old_properties, stored)
        if diff:
            item.properties = stored
            keys = unique_keys(db, stored.keys())
            _sync_unique_values(db, item, stored, keys)
            _flush(db, stored, keys)
            for key, change in diff.items():
                changes[f"property_{key}"] = change

    if status is not None and check_transition(item.status, status):
        if item.status == "ASSIGNED" and status in ("LOST", "DAMAGED"):
            _resolve_assignment_for_report(db, item, status, actor_id)
        item.status = status
        changes["status"] = {"before": old_status, "after": status}

    if not changes:
        return item

    item.updated_at = datetime.utcnow()
    db.flush()
    for field, change in changes.items():
        events.emit_audit(db, ENTITY, item.id, field, actor_id=actor_id, old_value=change["before"], new_value=change["after"])
    events.emit_timeline(
        db, ENTITY, item.id,
        "STATUS_CHANGED" if list(changes) == ["status"] else "UPDATED",
        f"Item of {resource.name} updated",
        description=", ".join(changes.keys()),
        metadata={"fields": list(changes.keys())},
        actor_id=actor_id,
    )
    return item


def can_delete(db: Session, item_id: uuid.UUID) -> ItemDeletable:
    if not db.get(ResourceItem, item_id):
        return ItemDeletable(can_delete=False, reason="Item not found")
    if active_assignment(db, item_id):
        return ItemDeletable(can_delete=False, reason="Item has an active assignment")
    return ItemDeletable(can_delete=True)


def delete_item(db: Session, item_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
    item = lock_item(db, item_id)
    active = (
        db.query(ResourceAssignment)
        .filter(ResourceAssignment.item_id == item.id, ResourceAssignment.status == "ACTIVE")
        .count()
    )
    if active:
        raise ActiveAssignmentError(
            "Cannot delete item with active assignment. Please return or revoke the assignment first.",
            blocking_count=active,
        )
    # Closed assignments outlive the item; they keep the resource reference only
    (
        db.query(ResourceAssignment)
        .filter(ResourceAssignment.item_id == item.id)
        .update({ResourceAssignment.item_id: None}, synchronize_session="fetch")
    )

    events.emit_audit(db, ENTITY, item.id, "deleted", actor_id=actor_id,
                      old_value={"status": item.status, "properties": item.properties},
                      context={"resource_id": str(item.resource_id)})
    events.emit_timeline(db, ENTITY, item.id, "DELETED", "Item deleted",
                         metadata={"resource_id": str(item.resource_id)}, actor_id=actor_id)
    db.delete(item)
    db.flush()
