import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Boolean,
    ForeignKey,
    Integer,
    JSON,
    UniqueConstraint,
    Text,
    Index,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, Mapped, mapped_column, validates

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)


class Employee(Base):
    __tablename__ = "employees"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    department: Mapped[Optional[str]] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


# =====================
# Resource structure domain
# =====================

class PropertyCatalog(Base):
    """Reusable property definitions that resources pick their schema from"""
    __tablename__ = "property_catalog"

    id: Mapped[uuid.UUID] = uuid_pk()
    key: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)  # camelCase
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    data_type: Mapped[str] = mapped_column(String(20), nullable=False)  # STRING|NUMBER|BOOLEAN|DATE
    description: Mapped[Optional[str]] = mapped_column(Text)
    default_value: Mapped[Optional[dict]] = mapped_column(JSON)  # {"value": ...} wrapper so null is distinguishable
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    is_unique: Mapped[bool] = mapped_column(Boolean, default=False)  # values must be unique across all items
    resource_type_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_types.id", ondelete="SET NULL"), index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)

    resource_type = relationship("ResourceType")


class ResourceType(Base):
    """Top-level classification: Hardware, Software, Cloud or custom"""
    __tablename__ = "resource_types"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    mandatory_properties: Mapped[list] = mapped_column(JSON, default=list)  # Array of catalog keys
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    categories = relationship("ResourceCategory", back_populates="resource_type", order_by="ResourceCategory.name")


class ResourceCategory(Base):
    """Sub-classification scoped to one resource type"""
    __tablename__ = "resource_categories"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    resource_type_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    resource_type = relationship("ResourceType", back_populates="categories")

    __table_args__ = (
        UniqueConstraint("name", "resource_type_id", name="uq_category_name_type"),
    )


class Resource(Base):
    """Catalog entry for a class of asset; owns its items and property schema"""
    __tablename__ = "resources"

    id: Mapped[uuid.UUID] = uuid_pk()
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[Optional[str]] = mapped_column(Text)
    resource_type_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_types.id", ondelete="RESTRICT"), nullable=False, index=True)
    resource_category_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_categories.id", ondelete="RESTRICT"), nullable=False, index=True)
    custodian_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("employees.id", ondelete="SET NULL"))
    property_schema: Mapped[list] = mapped_column(JSON, nullable=False, default=list)  # Ordered list of property definitions
    schema_locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    quantity: Mapped[Optional[int]] = mapped_column(Integer, default=1)  # Seats for pooled/shared resources
    status: Mapped[str] = mapped_column(String(50), default="ACTIVE", index=True)  # ACTIVE|INACTIVE|RETIRED
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    # Relationships
    resource_type = relationship("ResourceType")
    resource_category = relationship("ResourceCategory")
    custodian = relationship("Employee")
    items = relationship("ResourceItem", back_populates="resource", cascade="all, delete-orphan", order_by="ResourceItem.created_at")
    assignments = relationship("ResourceAssignment", back_populates="resource", order_by="ResourceAssignment.assigned_at.desc()")

    __table_args__ = (
        Index('idx_resource_type_category', 'resource_type_id', 'resource_category_id'),
    )

    @validates("schema_locked")
    def _validate_schema_locked(self, key, value):
        # The lock is one-way
        if self.schema_locked and not value:
            raise ValueError("schema_locked cannot revert to False")
        return value


class ResourceItem(Base):
    """Concrete, individually trackable unit of a resource"""
    __tablename__ = "resource_items"

    id: Mapped[uuid.UUID] = uuid_pk()
    resource_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="CASCADE"), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(50), default="AVAILABLE", index=True)  # AVAILABLE|ASSIGNED|MAINTENANCE|LOST|DAMAGED
    properties: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # Keyed exactly by the resource schema
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))

    # Relationships
    resource = relationship("Resource", back_populates="items")
    assignments = relationship("ResourceAssignment", back_populates="item", order_by="ResourceAssignment.assigned_at.desc()")
    unique_values = relationship("ItemUniqueValue", back_populates="item", cascade="all, delete-orphan")

    __table_args__ = (
        Index('idx_item_resource_status', 'resource_id', 'status'),
    )


class ItemUniqueValue(Base):
    """Store-level uniqueness for properties flagged unique in the catalog (e.g. serialNumber)"""
    __tablename__ = "item_unique_values"

    id: Mapped[uuid.UUID] = uuid_pk()
    item_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_items.id", ondelete="CASCADE"), nullable=False, index=True)
    property_key: Mapped[str] = mapped_column(String(100), nullable=False)
    value: Mapped[str] = mapped_column(String(500), nullable=False)

    item = relationship("ResourceItem", back_populates="unique_values")

    __table_args__ = (
        UniqueConstraint("property_key", "value", name="uq_item_unique_value"),
    )


class ResourceAssignment(Base):
    """Binding of an employee to a resource and optionally one item; never hard-deleted"""
    __tablename__ = "resource_assignments"

    id: Mapped[uuid.UUID] = uuid_pk()
    employee_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("employees.id", ondelete="RESTRICT"), nullable=False, index=True)
    resource_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("resources.id", ondelete="RESTRICT"), nullable=False, index=True)
    item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), ForeignKey("resource_items.id", ondelete="SET NULL"), index=True)
    assigned_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    assignment_type: Mapped[str] = mapped_column(String(20), nullable=False, default="INDIVIDUAL")  # INDIVIDUAL|POOLED|SHARED
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="ACTIVE", index=True)  # ACTIVE|RETURNED|LOST|DAMAGED
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    returned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    # Relationships
    employee = relationship("Employee")
    resource = relationship("Resource", back_populates="assignments")
    item = relationship("ResourceItem", back_populates="assignments")

    __table_args__ = (
        Index('idx_assignment_resource_status', 'resource_id', 'status', 'assignment_type'),
        Index('idx_assignment_employee_status', 'employee_id', 'status'),
        # At most one ACTIVE item-bound (non-shared) assignment per item
        Index(
            'uq_assignment_active_item',
            'item_id',
            unique=True,
            postgresql_where=text("status = 'ACTIVE' AND assignment_type != 'SHARED' AND item_id IS NOT NULL"),
            sqlite_where=text("status = 'ACTIVE' AND assignment_type != 'SHARED' AND item_id IS NOT NULL"),
        ),
    )


class AuditLog(Base):
    """Append-only audit log for resource structure changes"""
    __tablename__ = "audit_logs"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)  # RESOURCE_TYPE|RESOURCE_CATEGORY|PROPERTY_CATALOG|RESOURCE|RESOURCE_ITEM|ASSIGNMENT
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    actor_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), index=True)
    field_changed: Mapped[str] = mapped_column(String(100), nullable=False)
    old_value: Mapped[Optional[str]] = mapped_column(Text)
    new_value: Mapped[Optional[str]] = mapped_column(Text)
    timestamp_utc: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, nullable=False, index=True)
    context: Mapped[Optional[dict]] = mapped_column(JSON)
    integrity_hash: Mapped[Optional[str]] = mapped_column(String(64))  # SHA256 hash for integrity verification

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
        Index('idx_audit_actor', 'actor_id', 'timestamp_utc'),
    )


class ActivityTimeline(Base):
    """Human-readable activity feed"""
    __tablename__ = "activity_timeline"

    id: Mapped[uuid.UUID] = uuid_pk()
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    activity_type: Mapped[str] = mapped_column(String(50), nullable=False)  # CREATED|UPDATED|DELETED|STATUS_CHANGED|ASSIGNED|LOCKED
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    performed_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    metadata_json: Mapped[Optional[dict]] = mapped_column("metadata", JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow, index=True)

    __table_args__ = (
        Index('idx_timeline_entity', 'entity_type', 'entity_id'),
    )
