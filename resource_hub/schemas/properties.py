import math
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, StrictBool, StrictInt, StrictFloat, field_validator


# Enums
class PropertyDataType(str, Enum):
    STRING = "STRING"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"


# Property definitions (one entry of a resource schema)
class PropertyDefinition(BaseModel):
    key: str
    label: str
    data_type: PropertyDataType
    description: Optional[str] = None
    default_value: Optional[Any] = None
    is_required: bool = False


# Typed property values
class StringValue(BaseModel):
    kind: Literal["STRING"] = "STRING"
    value: str

    def to_storage(self) -> Any:
        return self.value


class NumberValue(BaseModel):
    kind: Literal["NUMBER"] = "NUMBER"
    value: Union[StrictInt, StrictFloat]

    @field_validator("value")
    @classmethod
    def must_be_finite(cls, v):
        if isinstance(v, float) and not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v

    def to_storage(self) -> Any:
        return self.value


class BooleanValue(BaseModel):
    kind: Literal["BOOLEAN"] = "BOOLEAN"
    value: StrictBool

    def to_storage(self) -> Any:
        return self.value


class DateValue(BaseModel):
    kind: Literal["DATE"] = "DATE"
    value: Union[datetime, date]

    def to_storage(self) -> Any:
        return self.value.isoformat()


PropertyValue = Annotated[
    Union[StringValue, NumberValue, BooleanValue, DateValue],
    Field(discriminator="kind"),
]

# Full schema key set -> typed value (None for absent optional values)
TypedProperties = Dict[str, Optional[PropertyValue]]


# Validation results
class PropertyTypeError(BaseModel):
    key: str
    message: str
    expected_type: Optional[PropertyDataType] = None
    actual_value: Optional[Any] = None


class SchemaValidationResult(BaseModel):
    is_valid: bool
    missing_keys: List[str] = []
    extra_keys: List[str] = []
    type_errors: List[PropertyTypeError] = []


class MandatoryPropertyValidation(BaseModel):
    is_valid: bool
    missing_properties: List[str] = []
    errors: List[str] = []


# Property catalog
class PropertyCatalogCreate(BaseModel):
    key: str
    label: str
    data_type: PropertyDataType
    description: Optional[str] = None
    default_value: Optional[Any] = None
    is_unique: bool = False
    resource_type_id: Optional[uuid.UUID] = None


class PropertyCatalogUpdate(BaseModel):
    label: Optional[str] = None
    data_type: Optional[PropertyDataType] = None
    description: Optional[str] = None
    default_value: Optional[Any] = None
    is_unique: Optional[bool] = None
    resource_type_id: Optional[uuid.UUID] = None


class PropertyCatalogResponse(BaseModel):
    id: uuid.UUID
    key: str
    label: str
    data_type: PropertyDataType
    description: Optional[str] = None
    default_value: Optional[Any] = None
    is_system: bool
    is_unique: bool
    resource_type_id: Optional[uuid.UUID] = None
    created_at: Optional[datetime] = None

    @field_validator("default_value", mode="before")
    @classmethod
    def unwrap_default(cls, v):
        # Stored as {"value": ...}
        if isinstance(v, dict) and set(v.keys()) == {"value"}:
            return v["value"]
        return v

    class Config:
        from_attributes = True


class PropertyCatalogGrouped(BaseModel):
    system: List[PropertyCatalogResponse] = []
    custom: List[PropertyCatalogResponse] = []
    suggestions: Dict[str, List[str]] = {}
