import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr

from .properties import PropertyDefinition


# Enums
class ResourceStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    RETIRED = "RETIRED"


class ItemStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    ASSIGNED = "ASSIGNED"
    MAINTENANCE = "MAINTENANCE"
    LOST = "LOST"
    DAMAGED = "DAMAGED"


class AssignmentType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    POOLED = "POOLED"
    SHARED = "SHARED"


class AssignmentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    RETURNED = "RETURNED"
    LOST = "LOST"
    DAMAGED = "DAMAGED"


# Resource type schemas
class ResourceTypeCreate(BaseModel):
    name: str
    description: Optional[str] = None
    mandatory_properties: Optional[List[str]] = None


class ResourceTypeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    mandatory_properties: Optional[List[str]] = None


class ResourceTypeResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_system: bool
    mandatory_properties: List[str] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


# Resource category schemas
class ResourceCategoryCreate(BaseModel):
    name: str
    resource_type_id: uuid.UUID
    description: Optional[str] = None


class ResourceCategoryUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ResourceCategoryResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    resource_type_id: uuid.UUID
    is_system: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CategoriesByType(BaseModel):
    resource_type: ResourceTypeResponse
    categories: List[ResourceCategoryResponse] = []


# Resource schemas
class ResourceCreate(BaseModel):
    name: str
    resource_type_id: uuid.UUID
    resource_category_id: uuid.UUID
    property_schema: List[PropertyDefinition]
    description: Optional[str] = None
    custodian_id: Optional[uuid.UUID] = None
    quantity: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None


class ResourceUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    resource_category_id: Optional[uuid.UUID] = None
    custodian_id: Optional[uuid.UUID] = None
    status: Optional[ResourceStatus] = None
    quantity: Optional[int] = None
    metadata: Optional[Dict[str, Any]] = None
    property_schema: Optional[List[PropertyDefinition]] = None


class ResourceResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    resource_type_id: uuid.UUID
    resource_category_id: uuid.UUID
    custodian_id: Optional[uuid.UUID] = None
    property_schema: List[PropertyDefinition] = []
    schema_locked: bool
    quantity: Optional[int] = None
    status: ResourceStatus
    metadata_json: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class SchemaModifiable(BaseModel):
    can_modify: bool
    reason: Optional[str] = None


# Item schemas
class ItemCreate(BaseModel):
    properties: Dict[str, Any] = {}
    status: Optional[ItemStatus] = None


class ItemUpdate(BaseModel):
    properties: Optional[Dict[str, Any]] = None
    status: Optional[ItemStatus] = None


class ItemResponse(BaseModel):
    id: uuid.UUID
    resource_id: uuid.UUID
    status: ItemStatus
    properties: Dict[str, Any] = {}
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class ItemDeletable(BaseModel):
    can_delete: bool
    reason: Optional[str] = None


# Assignment schemas
class AssignmentCreate(BaseModel):
    employee_id: uuid.UUID
    resource_id: uuid.UUID
    item_id: Optional[uuid.UUID] = None
    assignment_type: Optional[AssignmentType] = None
    notes: Optional[str] = None


class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus
    notes: Optional[str] = None
    returned_at: Optional[datetime] = None


class AssignmentRevoke(BaseModel):
    reason: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: uuid.UUID
    employee_id: uuid.UUID
    resource_id: uuid.UUID
    item_id: Optional[uuid.UUID] = None
    assigned_by: Optional[uuid.UUID] = None
    assignment_type: AssignmentType
    status: AssignmentStatus
    assigned_at: datetime
    returned_at: Optional[datetime] = None
    notes: Optional[str] = None

    class Config:
        from_attributes = True


class AssignmentValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    error_code: Optional[str] = None
    suggested_assignment_type: Optional[AssignmentType] = None


class LicenseCount(BaseModel):
    available: int
    total: int
    used: int


class ItemAssignable(BaseModel):
    can_assign: bool
    reason: Optional[str] = None


class SharedResourceUser(BaseModel):
    assignment_id: uuid.UUID
    employee_id: uuid.UUID
    employee_name: Optional[str] = None
    assigned_at: datetime


# Employee schemas
class EmployeeCreate(BaseModel):
    name: str
    email: EmailStr
    department: Optional[str] = None


class EmployeeUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    department: Optional[str] = None
    is_active: Optional[bool] = None


class EmployeeResponse(BaseModel):
    id: uuid.UUID
    name: str
    email: str
    department: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
