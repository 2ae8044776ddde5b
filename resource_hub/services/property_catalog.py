"""
Property catalog: the registry of reusable property definitions resources
choose their schemas from.
"""
import re
import uuid
from typing import Any, Dict, Iterable, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError, ReferentialIntegrityError
from ..models.models import PropertyCatalog, ResourceType, Resource
from ..schemas.properties import (
    PropertyCatalogCreate,
    PropertyCatalogUpdate,
    PropertyCatalogGrouped,
    PropertyCatalogResponse,
    PropertyDefinition,
)
from . import events

logger = structlog.get_logger(__name__)

ENTITY = "PROPERTY_CATALOG"
KEY_PATTERN = re.compile(r"^[a-z][a-zA-Z0-9]*$")

PREDEFINED_PROPERTIES: List[Dict[str, Any]] = [
    # Hardware
    {"key": "serialNumber", "label": "Serial Number", "data_type": "STRING", "description": "Unique serial number for hardware", "is_unique": True},
    {"key": "hostname", "label": "Hostname", "data_type": "STRING", "description": "Network hostname"},
    {"key": "ipAddress", "label": "IP Address", "data_type": "STRING", "description": "Network IP address"},
    {"key": "macAddress", "label": "MAC Address", "data_type": "STRING", "description": "Network MAC address"},
    {"key": "operatingSystem", "label": "Operating System", "data_type": "STRING", "description": "OS name"},
    {"key": "osVersion", "label": "OS Version", "data_type": "STRING", "description": "Operating system version"},
    {"key": "processor", "label": "Processor", "data_type": "STRING", "description": "CPU model"},
    {"key": "memory", "label": "Memory", "data_type": "STRING", "description": "RAM specification"},
    {"key": "storage", "label": "Storage", "data_type": "STRING", "description": "Storage capacity"},
    # Software
    {"key": "licenseKey", "label": "License Key", "data_type": "STRING", "description": "Software license key"},
    {"key": "softwareVersion", "label": "Software Version", "data_type": "STRING", "description": "Software version number"},
    {"key": "licenseType", "label": "License Type", "data_type": "STRING", "description": "Type of license (perpetual, subscription, etc.)"},
    {"key": "maxUsers", "label": "Max Users", "data_type": "STRING", "description": "Maximum number of users"},
    {"key": "activationCode", "label": "Activation Code", "data_type": "STRING", "description": "Software activation code"},
    {"key": "licenseExpiry", "label": "License Expiry", "data_type": "DATE", "description": "License expiration date"},
    # Cloud
    {"key": "accountId", "label": "Account ID", "data_type": "STRING", "description": "Cloud account identifier"},
    {"key": "region", "label": "Region", "data_type": "STRING", "description": "Cloud region"},
    {"key": "subscriptionTier", "label": "Subscription Tier", "data_type": "STRING", "description": "Subscription level"},
    # Common
    {"key": "purchaseDate", "label": "Purchase Date", "data_type": "DATE", "description": "Date of purchase"},
    {"key": "warrantyExpiry", "label": "Warranty Expiry", "data_type": "DATE", "description": "Warranty expiration date"},
    {"key": "value", "label": "Value", "data_type": "NUMBER", "description": "Monetary value"},
]

TYPE_PROPERTY_SUGGESTIONS: Dict[str, List[str]] = {
    "Hardware": ["serialNumber", "hostname", "ipAddress", "macAddress", "operatingSystem", "osVersion", "processor", "memory", "storage", "purchaseDate", "warrantyExpiry", "value"],
    "Software": ["licenseKey", "softwareVersion", "licenseType", "maxUsers", "activationCode", "licenseExpiry", "purchaseDate", "value"],
    "Cloud": ["accountId", "region", "subscriptionTier", "licenseExpiry", "value"],
}


def _wrap_default(value: Any) -> Optional[Dict[str, Any]]:
    return None if value is None else {"value": value}


def _check_resource_type(db: Session, resource_type_id: Optional[uuid.UUID]) -> None:
    if resource_type_id and not db.get(ResourceType, resource_type_id):
        raise ValidationError("Invalid resource type ID", details={"resource_type_id": str(resource_type_id)})


def seed_predefined_properties(db: Session) -> int:
    """Insert or refresh the system properties. Idempotent; the caller commits."""
    created = 0
    for prop in PREDEFINED_PROPERTIES:
        existing = db.query(PropertyCatalog).filter(PropertyCatalog.key == prop["key"]).first()
        if existing:
            existing.label = prop["label"]
            existing.data_type = prop["data_type"]
            existing.description = prop["description"]
            existing.is_system = True
            existing.is_unique = prop.get("is_unique", False)
            continue
        db.add(PropertyCatalog(
            key=prop["key"],
            label=prop["label"],
            data_type=prop["data_type"],
            description=prop["description"],
            is_system=True,
            is_unique=prop.get("is_unique", False),
        ))
        created += 1
    db.flush()
    logger.info("property_catalog_seeded", created=created, total=len(PREDEFINED_PROPERTIES))
    return created


def list_properties(db: Session, resource_type_id: Optional[uuid.UUID] = None) -> List[PropertyCatalog]:
    query = db.query(PropertyCatalog)
    if resource_type_id:
        query = query.filter(PropertyCatalog.resource_type_id == resource_type_id)
    return query.order_by(PropertyCatalog.is_system.desc(), PropertyCatalog.key).all()


def get_catalog(db: Session) -> PropertyCatalogGrouped:
    properties = list_properties(db)
    return PropertyCatalogGrouped(
        system=[PropertyCatalogResponse.model_validate(p) for p in properties if p.is_system],
        custom=[PropertyCatalogResponse.model_validate(p) for p in properties if not p.is_system],
        suggestions=TYPE_PROPERTY_SUGGESTIONS,
    )


def get_property(db: Session, property_id: uuid.UUID) -> PropertyCatalog:
    prop = db.get(PropertyCatalog, property_id)
    if not prop:
        raise NotFoundError("Property", property_id)
    return prop


def get_property_by_key(db: Session, key: str) -> Optional[PropertyCatalog]:
    return db.query(PropertyCatalog).filter(PropertyCatalog.key == key).first()


def properties_for_type(db: Session, resource_type_id: uuid.UUID) -> List[PropertyCatalog]:
    """Type-specific custom properties followed by the suggested system ones."""
    resource_type = db.get(ResourceType, resource_type_id)
    if not resource_type:
        raise NotFoundError("Resource type", resource_type_id)
    specific = db.query(PropertyCatalog).filter(PropertyCatalog.resource_type_id == resource_type_id).all()
    suggested_keys = TYPE_PROPERTY_SUGGESTIONS.get(resource_type.name, [])
    suggested = []
    if suggested_keys:
        suggested = (
            db.query(PropertyCatalog)
            .filter(PropertyCatalog.key.in_(suggested_keys), PropertyCatalog.is_system.is_(True))
            .all()
        )
    seen = set()
    result = []
    for prop in specific + suggested:
        if prop.id not in seen:
            seen.add(prop.id)
            result.append(prop)
    return result


def create_custom_property(db: Session, request: PropertyCatalogCreate, actor_id: Optional[uuid.UUID] = None) -> PropertyCatalog:
    if get_property_by_key(db, request.key):
        raise ValidationError(f'Property with key "{request.key}" already exists', code="DUPLICATE_PROPERTY_KEY")
    if not KEY_PATTERN.match(request.key):
        raise ValidationError(
            "Property key must be in camelCase format (start with lowercase letter, alphanumeric only)",
            code="INVALID_PROPERTY_KEY",
        )
    if not request.label or not request.label.strip():
        raise ValidationError(f'Property "{request.key}" must have a label')
    _check_resource_type(db, request.resource_type_id)

    prop = PropertyCatalog(
        key=request.key,
        label=request.label.strip(),
        data_type=request.data_type.value,
        description=request.description,
        default_value=_wrap_default(request.default_value),
        is_system=False,
        is_unique=request.is_unique,
        resource_type_id=request.resource_type_id,
    )
    db.add(prop)
    db.flush()

    events.emit_audit(db, ENTITY, prop.id, "created", actor_id=actor_id, new_value={"key": prop.key, "data_type": prop.data_type})
    events.emit_timeline(db, ENTITY, prop.id, "CREATED", f"Property {prop.key} created", description=prop.label, actor_id=actor_id)
    return prop


def update_custom_property(db: Session, property_id: uuid.UUID, updates: PropertyCatalogUpdate, actor_id: Optional[uuid.UUID] = None) -> PropertyCatalog:
    prop = get_property(db, property_id)
    if prop.is_system:
        raise ValidationError("System properties cannot be modified", code="SYSTEM_PROPERTY")

    data = updates.model_dump(exclude_unset=True)
    if "resource_type_id" in data:
        _check_resource_type(db, data["resource_type_id"])
    if "data_type" in data and data["data_type"] is not None:
        data["data_type"] = data["data_type"].value
    if "default_value" in data:
        data["default_value"] = _wrap_default(data["default_value"])

    for field, new_value in data.items():
        old_value = getattr(prop, field)
        if old_value == new_value:
            continue
        setattr(prop, field, new_value)
        events.emit_audit(db, ENTITY, prop.id, field, actor_id=actor_id, old_value=old_value, new_value=new_value)
    db.flush()
    events.emit_timeline(db, ENTITY, prop.id, "UPDATED", f"Property {prop.key} updated", actor_id=actor_id, metadata={"fields": list(data.keys())})
    return prop


def count_resources_using(db: Session, key: str) -> int:
    # Schemas are JSON; filter in Python to stay portable across backends
    rows = db.query(Resource.property_schema).all()
    return sum(1 for (schema,) in rows if any(d.get("key") == key for d in (schema or [])))


def delete_custom_property(db: Session, property_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
    prop = get_property(db, property_id)
    if prop.is_system:
        raise ValidationError("System properties cannot be deleted", code="SYSTEM_PROPERTY")

    in_use = count_resources_using(db, prop.key)
    if in_use:
        raise ReferentialIntegrityError(
            f'Cannot delete property "{prop.key}" as it is used by {in_use} resource(s)',
            blocking_count=in_use,
        )

    events.emit_audit(db, ENTITY, prop.id, "deleted", actor_id=actor_id, old_value={"key": prop.key})
    events.emit_timeline(db, ENTITY, prop.id, "DELETED", f"Property {prop.key} deleted", actor_id=actor_id)
    db.delete(prop)
    db.flush()


def definitions_for_keys(db: Session, keys: Iterable[str], required: Iterable[str] = ()) -> List[PropertyDefinition]:
    """Build schema entries from catalog keys, preserving the given order."""
    keys = list(keys)
    required = set(required)
    by_key = {p.key: p for p in db.query(PropertyCatalog).filter(PropertyCatalog.key.in_(keys)).all()}
    missing = [k for k in keys if k not in by_key]
    if missing:
        raise ValidationError(f"Invalid property keys: {', '.join(missing)}", details={"invalid_keys": missing})
    definitions = []
    for key in keys:
        prop = by_key[key]
        default = prop.default_value["value"] if prop.default_value else None
        definitions.append(PropertyDefinition(
            key=prop.key,
            label=prop.label,
            data_type=prop.data_type,
            description=prop.description,
            default_value=default,
            is_required=key in required,
        ))
    return definitions


def validate_property_keys(db: Session, keys: Iterable[str]) -> List[str]:
    """Return the keys unknown to the catalog."""
    keys = list(keys)
    if not keys:
        return []
    existing = {k for (k,) in db.query(PropertyCatalog.key).filter(PropertyCatalog.key.in_(keys)).all()}
    return [k for k in keys if k not in existing]


def unique_keys(db: Session, keys: Iterable[str]) -> List[str]:
    keys = list(keys)
    if not keys:
        return []
    rows = db.query(PropertyCatalog.key).filter(PropertyCatalog.key.in_(keys), PropertyCatalog.is_unique.is_(True)).all()
    return [k for (k,) in rows]
