"""
Resource type registry.

System types (Hardware, Software, Cloud) are seeded and carry default
mandatory properties that can never be removed. Custom types must keep at
least one mandatory property.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError, ReferentialIntegrityError
from ..models.models import ResourceType, ResourceCategory, Resource
from ..schemas.resources import ResourceTypeCreate, ResourceTypeUpdate
from . import events
from .property_catalog import validate_property_keys

logger = structlog.get_logger(__name__)

ENTITY = "RESOURCE_TYPE"
MAX_NAME_LENGTH = 100

DEFAULT_MANDATORY_PROPERTIES: Dict[str, List[str]] = {
    "Hardware": ["serialNumber", "warrantyExpiry"],
    "Software": [],
    "Cloud": ["maxUsers"],
}
SYSTEM_TYPES = list(DEFAULT_MANDATORY_PROPERTIES.keys())


def default_mandatory_properties(name: str) -> List[str]:
    return list(DEFAULT_MANDATORY_PROPERTIES.get(name, []))


def _merge(defaults: List[str], requested: List[str]) -> List[str]:
    merged = list(defaults)
    for key in requested:
        if key not in merged:
            merged.append(key)
    return merged


def _check_keys(db: Session, keys: List[str]) -> None:
    unknown = validate_property_keys(db, keys)
    if unknown:
        raise ValidationError(f"Invalid property keys: {', '.join(unknown)}", details={"invalid_keys": unknown})


def seed_system_types(db: Session) -> int:
    created = 0
    for name in SYSTEM_TYPES:
        mandatory = default_mandatory_properties(name)
        existing = get_type_by_name(db, name)
        if existing:
            existing.is_system = True
            existing.mandatory_properties = _merge(mandatory, existing.mandatory_properties or [])
            continue
        db.add(ResourceType(
            name=name,
            description=f"System-defined {name} resource type",
            is_system=True,
            mandatory_properties=mandatory,
        ))
        created += 1
    db.flush()
    logger.info("resource_types_seeded", created=created)
    return created


def list_types(db: Session) -> List[ResourceType]:
    return db.query(ResourceType).order_by(ResourceType.is_system.desc(), ResourceType.name).all()


def get_type(db: Session, type_id: uuid.UUID) -> ResourceType:
    resource_type = db.get(ResourceType, type_id)
    if not resource_type:
        raise NotFoundError("Resource type", type_id)
    return resource_type


def get_type_by_name(db: Session, name: str) -> Optional[ResourceType]:
    return db.query(ResourceType).filter(ResourceType.name == name).first()


def mandatory_properties_for(db: Session, type_id: uuid.UUID) -> List[str]:
    return list(get_type(db, type_id).mandatory_properties or [])


def _validate_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise ValidationError("Resource type name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Resource type name cannot exceed {MAX_NAME_LENGTH} characters")
    return name.strip()


def create_type(db: Session, request: ResourceTypeCreate, actor_id: Optional[uuid.UUID] = None) -> ResourceType:
    name = _validate_name(request.name)
    if get_type_by_name(db, name):
        raise ValidationError(f'Resource type with name "{name}" already exists', code="DUPLICATE_NAME")

    mandatory = _merge(default_mandatory_properties(name), request.mandatory_properties or [])
    if not mandatory:
        raise ValidationError("Custom resource types must define at least one mandatory property")
    _check_keys(db, mandatory)

    resource_type = ResourceType(
        name=name,
        description=(request.description or "").strip() or None,
        is_system=False,
        mandatory_properties=mandatory,
    )
    db.add(resource_type)
    db.flush()

    events.emit_audit(db, ENTITY, resource_type.id, "created", actor_id=actor_id,
                      new_value={"name": name, "mandatory_properties": mandatory})
    events.emit_timeline(db, ENTITY, resource_type.id, "CREATED", f"Resource type {name} created",
                         description=resource_type.description, actor_id=actor_id)
    return resource_type


def update_type(db: Session, type_id: uuid.UUID, updates: ResourceTypeUpdate, actor_id: Optional[uuid.UUID] = None) -> ResourceType:
    resource_type = get_type(db, type_id)
    changes = {}

    if updates.name is not None and updates.name != resource_type.name:
        if resource_type.is_system:
            raise ValidationError("System resource type names cannot be modified", code="SYSTEM_TYPE")
        name = _validate_name(updates.name)
        if get_type_by_name(db, name):
            raise ValidationError(f'Resource type with name "{name}" already exists', code="DUPLICATE_NAME")
        changes["name"] = (resource_type.name, name)
        resource_type.name = name

    if updates.description is not None:
        description = updates.description.strip() or None
        if description != resource_type.description:
            changes["description"] = (resource_type.description, description)
            resource_type.description = description

    if updates.mandatory_properties is not None:
        defaults = default_mandatory_properties(resource_type.name)
        removed = [k for k in defaults if k not in updates.mandatory_properties]
        if removed:
            raise ValidationError(
                f"Cannot remove default mandatory properties: {', '.join(removed)}. "
                f"These properties are required for {resource_type.name} resource types.",
                details={"removed": removed},
            )
        mandatory = _merge(defaults, updates.mandatory_properties)
        if not resource_type.is_system and not mandatory:
            raise ValidationError("Custom resource types must define at least one mandatory property")
        _check_keys(db, mandatory)
        if mandatory != list(resource_type.mandatory_properties or []):
            changes["mandatory_properties"] = (resource_type.mandatory_properties, mandatory)
            resource_type.mandatory_properties = mandatory

    if changes:
        resource_type.updated_at = datetime.utcnow()
        db.flush()
        for field, (old, new) in changes.items():
            events.emit_audit(db, ENTITY, resource_type.id, field, actor_id=actor_id, old_value=old, new_value=new)
        events.emit_timeline(db, ENTITY, resource_type.id, "UPDATED", f"Resource type {resource_type.name} updated",
                             actor_id=actor_id, metadata={"fields": list(changes.keys())})
    return resource_type


def delete_type(db: Session, type_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
    resource_type = get_type(db, type_id)
    if resource_type.is_system:
        raise ValidationError("System resource types cannot be deleted", code="SYSTEM_TYPE")

    resources = db.query(Resource).filter(Resource.resource_type_id == type_id).count()
    if resources:
        raise ReferentialIntegrityError(
            f'Cannot delete resource type "{resource_type.name}" as it has {resources} associated resource(s). '
            "Please reassign or delete those resources first.",
            blocking_count=resources,
            details={"resources": resources},
        )
    categories = db.query(ResourceCategory).filter(ResourceCategory.resource_type_id == type_id).count()
    if categories:
        raise ReferentialIntegrityError(
            f'Cannot delete resource type "{resource_type.name}" as it has {categories} associated category(ies). '
            "Please delete those categories first.",
            blocking_count=categories,
            details={"categories": categories},
        )

    events.emit_audit(db, ENTITY, resource_type.id, "deleted", actor_id=actor_id, old_value={"name": resource_type.name})
    events.emit_timeline(db, ENTITY, resource_type.id, "DELETED", f"Resource type {resource_type.name} deleted", actor_id=actor_id)
    db.delete(resource_type)
    db.flush()
