"""
Schema locking.

A resource's property schema stays open until its first item is created and
is frozen from then on. The lock is applied in the same transaction as that
first insert, with the resource row locked.
"""
import json
import uuid
from typing import List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError, SchemaLockedError
from ..models.models import Resource, ResourceItem
from ..schemas.properties import PropertyDefinition
from ..schemas.resources import SchemaModifiable
from . import events
from .schema_validation import validate_property_definitions, dump_schema

logger = structlog.get_logger(__name__)

ENTITY = "RESOURCE"


def canonical_schema(schema) -> str:
    raw = dump_schema(schema) if schema and isinstance(schema[0], PropertyDefinition) else (schema or [])
    return json.dumps(raw, sort_keys=True, separators=(",", ":"), default=str)


def item_count(db: Session, resource_id: uuid.UUID) -> int:
    return db.query(ResourceItem).filter(ResourceItem.resource_id == resource_id).count()


def lock_for_update(db: Session, resource_id: uuid.UUID) -> Resource:
    """Load a resource with its row locked for the rest of the transaction."""
    resource = (
        db.query(Resource)
        .filter(Resource.id == resource_id)
        .with_for_update()
        .populate_existing()
        .first()
    )
    if not resource:
        raise NotFoundError("Resource", resource_id)
    return resource


def lock_schema(db: Session, resource: Resource, actor_id: Optional[uuid.UUID] = None) -> bool:
    """Freeze the schema. Returns False when it was already locked."""
    if resource.schema_locked:
        return False
    resource.schema_locked = True
    keys = [d.get("key") for d in resource.property_schema or []]
    events.emit_audit(
        db, ENTITY, resource.id, "property_schema_locked",
        actor_id=actor_id, old_value=False, new_value=True,
        context={"property_keys": keys},
    )
    events.emit_timeline(
        db, ENTITY, resource.id, "LOCKED", f"Property schema locked for {resource.name}",
        description="Schema locked after first item creation",
        metadata={"property_keys": keys}, actor_id=actor_id,
    )
    logger.info("schema_locked", resource_id=str(resource.id), property_count=len(keys))
    return True


def can_modify_schema(db: Session, resource_id: uuid.UUID) -> SchemaModifiable:
    resource = db.get(Resource, resource_id)
    if not resource:
        return SchemaModifiable(can_modify=False, reason="Resource not found")
    if resource.schema_locked:
        return SchemaModifiable(can_modify=False, reason="Schema is locked after first item creation")
    if item_count(db, resource_id):
        return SchemaModifiable(can_modify=False, reason="Resource already has items")
    return SchemaModifiable(can_modify=True)


def check_schema(schema: List[PropertyDefinition], mandatory_keys: List[str]) -> None:
    """Non-empty, well-formed and covering every mandatory key of the type."""
    if not schema:
        raise ValidationError("At least one property must be selected for the resource", code="EMPTY_SCHEMA")
    errors = validate_property_definitions(schema)
    if errors:
        raise ValidationError(
            f"Invalid property definitions: {', '.join(e.message for e in errors)}",
            code="INVALID_PROPERTY_DEFINITIONS",
            details={"errors": [e.model_dump(mode="json") for e in errors]},
        )
    keys = {d.key for d in schema}
    absent = [k for k in mandatory_keys if k not in keys]
    if absent:
        raise ValidationError(
            f"Property schema must include the mandatory properties of its type: {', '.join(absent)}",
            code="MISSING_MANDATORY_PROPERTIES",
            details={"missing_properties": absent},
        )


def replace_schema(
    db: Session,
    resource: Resource,
    schema: List[PropertyDefinition],
    mandatory_keys: List[str],
    actor_id: Optional[uuid.UUID] = None,
) -> bool:
    """
    Replace the schema wholesale while the resource is unlocked.

    An identical schema is accepted as a no-op whatever the lock state.
    Returns True when the schema changed.

    Raises:
        SchemaLockedError: the schema is locked or items exist.
    """
    if canonical_schema(schema) == canonical_schema(resource.property_schema):
        return False

    items = item_count(db, resource.id)
    if resource.schema_locked or items:
        raise SchemaLockedError(
            f"Cannot modify property schema: schema is locked after first item creation ({items} item(s))",
            blocking_count=items,
        )

    check_schema(schema, mandatory_keys)
    old_keys = [d.get("key") for d in resource.property_schema or []]
    resource.property_schema = dump_schema(schema)
    events.emit_audit(
        db, ENTITY, resource.id, "property_schema",
        actor_id=actor_id, old_value=old_keys, new_value=[d.key for d in schema],
    )
    return True


def ensure_schema_removable(db: Session, resource: Resource) -> None:
    """Deleting a resource together with its schema requires that no items exist."""
    items = item_count(db, resource.id)
    if items:
        raise SchemaLockedError(
            f"Cannot delete resource: it has {items} item(s)",
            blocking_count=items,
        )
