"""
Resource category registry. Every category belongs to exactly one type and
its name is unique within that type.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..errors import NotFoundError, ValidationError, ReferentialIntegrityError
from ..models.models import ResourceCategory, ResourceType, Resource
from ..schemas.resources import (
    ResourceCategoryCreate,
    ResourceCategoryUpdate,
    ResourceCategoryResponse,
    ResourceTypeResponse,
    CategoriesByType,
)
from . import events
from .resource_types import get_type, get_type_by_name

logger = structlog.get_logger(__name__)

ENTITY = "RESOURCE_CATEGORY"
MAX_NAME_LENGTH = 100

SYSTEM_CATEGORIES: Dict[str, List[str]] = {
    "Hardware": ["Laptop", "Desktop", "Phone", "Tablet", "Monitor", "Peripheral"],
    "Software": ["SaaS", "Desktop Application", "Development Tool", "Operating System"],
    "Cloud": ["Cloud Account", "Cloud Storage", "Cloud Compute", "Cloud Database"],
}


def _find(db: Session, name: str, type_id: uuid.UUID) -> Optional[ResourceCategory]:
    return (
        db.query(ResourceCategory)
        .filter(ResourceCategory.name == name, ResourceCategory.resource_type_id == type_id)
        .first()
    )


def seed_system_categories(db: Session) -> int:
    """Requires the system types to be seeded first."""
    created = 0
    for type_name, names in SYSTEM_CATEGORIES.items():
        resource_type = get_type_by_name(db, type_name)
        if not resource_type:
            logger.warning("category_seed_type_missing", type_name=type_name)
            continue
        for name in names:
            if _find(db, name, resource_type.id):
                continue
            db.add(ResourceCategory(
                name=name,
                description=f"System-defined {name} category for {type_name}",
                resource_type_id=resource_type.id,
                is_system=True,
            ))
            created += 1
    db.flush()
    logger.info("resource_categories_seeded", created=created)
    return created


def list_categories(db: Session) -> List[ResourceCategory]:
    return (
        db.query(ResourceCategory)
        .join(ResourceType, ResourceCategory.resource_type_id == ResourceType.id)
        .order_by(ResourceType.name, ResourceCategory.is_system.desc(), ResourceCategory.name)
        .all()
    )


def categories_for_type(db: Session, type_id: uuid.UUID) -> List[ResourceCategory]:
    get_type(db, type_id)
    return (
        db.query(ResourceCategory)
        .filter(ResourceCategory.resource_type_id == type_id)
        .order_by(ResourceCategory.is_system.desc(), ResourceCategory.name)
        .all()
    )


def get_category(db: Session, category_id: uuid.UUID) -> ResourceCategory:
    category = db.get(ResourceCategory, category_id)
    if not category:
        raise NotFoundError("Category", category_id)
    return category


def validate_category_belongs_to_type(db: Session, category_id: uuid.UUID, type_id: uuid.UUID) -> bool:
    category = db.get(ResourceCategory, category_id)
    return bool(category and category.resource_type_id == type_id)


def categories_grouped_by_type(db: Session) -> List[CategoriesByType]:
    types = db.query(ResourceType).order_by(ResourceType.is_system.desc(), ResourceType.name).all()
    return [
        CategoriesByType(
            resource_type=ResourceTypeResponse.model_validate(t),
            categories=[ResourceCategoryResponse.model_validate(c) for c in t.categories],
        )
        for t in types
    ]


def _validate_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise ValidationError("Category name cannot be empty")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Category name cannot exceed {MAX_NAME_LENGTH} characters")
    return name.strip()


def create_category(db: Session, request: ResourceCategoryCreate, actor_id: Optional[uuid.UUID] = None) -> ResourceCategory:
    resource_type = get_type(db, request.resource_type_id)
    name = _validate_name(request.name)
    if _find(db, name, resource_type.id):
        raise ValidationError(
            f'Category with name "{name}" already exists for resource type "{resource_type.name}"',
            code="DUPLICATE_NAME",
        )

    category = ResourceCategory(
        name=name,
        description=(request.description or "").strip() or None,
        resource_type_id=resource_type.id,
        is_system=False,
    )
    db.add(category)
    db.flush()

    events.emit_audit(db, ENTITY, category.id, "created", actor_id=actor_id,
                      new_value={"name": name, "resource_type": resource_type.name})
    events.emit_timeline(db, ENTITY, category.id, "CREATED", f"Category {name} created",
                         description=f"Category for {resource_type.name}", actor_id=actor_id)
    return category


def update_category(db: Session, category_id: uuid.UUID, updates: ResourceCategoryUpdate, actor_id: Optional[uuid.UUID] = None) -> ResourceCategory:
    category = get_category(db, category_id)
    changes = {}

    if updates.name is not None and updates.name != category.name:
        if category.is_system:
            raise ValidationError("System category names cannot be modified", code="SYSTEM_CATEGORY")
        name = _validate_name(updates.name)
        if _find(db, name, category.resource_type_id):
            raise ValidationError(
                f'Category with name "{name}" already exists for resource type "{category.resource_type.name}"',
                code="DUPLICATE_NAME",
            )
        changes["name"] = (category.name, name)
        category.name = name

    if updates.description is not None:
        description = updates.description.strip() or None
        if description != category.description:
            changes["description"] = (category.description, description)
            category.description = description

    if changes:
        category.updated_at = datetime.utcnow()
        db.flush()
        for field, (old, new) in changes.items():
            events.emit_audit(db, ENTITY, category.id, field, actor_id=actor_id, old_value=old, new_value=new)
        events.emit_timeline(db, ENTITY, category.id, "UPDATED", f"Category {category.name} updated",
                             actor_id=actor_id, metadata={"fields": list(changes.keys())})
    return category


def delete_category(db: Session, category_id: uuid.UUID, actor_id: Optional[uuid.UUID] = None) -> None:
    category = get_category(db, category_id)
    if category.is_system:
        raise ValidationError("System categories cannot be deleted", code="SYSTEM_CATEGORY")

    resources = db.query(Resource).filter(Resource.resource_category_id == category_id).count()
    if resources:
        raise ReferentialIntegrityError(
            f'Cannot delete category "{category.name}" as it has {resources} associated resource(s). '
            "Please reassign or delete those resources first.",
            blocking_count=resources,
        )

    events.emit_audit(db, ENTITY, category.id, "deleted", actor_id=actor_id, old_value={"name": category.name})
    events.emit_timeline(db, ENTITY, category.id, "DELETED", f"Category {category.name} deleted", actor_id=actor_id)
    db.delete(category)
    db.flush()
