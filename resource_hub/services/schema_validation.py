"""
Property schema validation.

Raw property maps are checked against a resource's PropertyDefinition list
once, at the boundary, and converted into typed PropertyValue records. Nothing
past parse_properties handles untyped maps.
"""
import math
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from ..errors import schema_validation_error
from ..schemas.properties import (
    PropertyDataType,
    PropertyDefinition,
    PropertyTypeError,
    SchemaValidationResult,
    MandatoryPropertyValidation,
    StringValue,
    NumberValue,
    BooleanValue,
    DateValue,
    TypedProperties,
)

VALID_DATA_TYPES = [t.value for t in PropertyDataType]


def parse_date(value: str) -> Optional[Union[date, datetime]]:
    """Parse an ISO-8601 date or timestamp; a trailing Z is read as UTC."""
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        if len(text) == 10:
            return date.fromisoformat(text)
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def is_valid_property_value(value: Any, data_type: str) -> bool:
    if data_type == PropertyDataType.STRING:
        return isinstance(value, str)
    if data_type == PropertyDataType.NUMBER:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        return math.isfinite(value)
    if data_type == PropertyDataType.BOOLEAN:
        return isinstance(value, bool)
    if data_type == PropertyDataType.DATE:
        if isinstance(value, (date, datetime)):
            return True
        return isinstance(value, str) and parse_date(value) is not None
    return False


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _type_name(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    return type(value).__name__


def validate(values: Dict[str, Any], schema: List[PropertyDefinition]) -> SchemaValidationResult:
    schema_keys = {d.key for d in schema}

    missing_keys = [d.key for d in schema if d.is_required and _is_blank(values.get(d.key))]
    extra_keys = [k for k in values if k not in schema_keys]

    type_errors = []
    for definition in schema:
        value = values.get(definition.key)
        if value is None:
            continue
        if not is_valid_property_value(value, definition.data_type):
            type_errors.append(PropertyTypeError(
                key=definition.key,
                message=f'Property "{definition.key}" has invalid type. Expected {definition.data_type.value}, got {_type_name(value)}',
                expected_type=definition.data_type,
                actual_value=value,
            ))

    return SchemaValidationResult(
        is_valid=not (missing_keys or extra_keys or type_errors),
        missing_keys=missing_keys,
        extra_keys=extra_keys,
        type_errors=type_errors,
    )


def validate_mandatory_properties(values: Dict[str, Any], mandatory_keys: Iterable[str]) -> MandatoryPropertyValidation:
    missing = []
    errors = []
    for key in mandatory_keys:
        if key not in values:
            missing.append(key)
            errors.append(f"Missing mandatory property: {key}")
        elif values[key] is None:
            missing.append(key)
            errors.append(f'Mandatory property "{key}" cannot be null')
        elif isinstance(values[key], str) and values[key].strip() == "":
            missing.append(key)
            errors.append(f'Mandatory property "{key}" cannot be empty')
    return MandatoryPropertyValidation(is_valid=not missing, missing_properties=missing, errors=errors)


def validate_property_definitions(definitions: List[Any]) -> List[PropertyTypeError]:
    """Check a schema for duplicate or empty keys, missing labels and unknown data types.

    Accepts PropertyDefinition models or plain dicts.
    """
    errors = []
    seen = set()
    for raw in definitions:
        d = raw.model_dump() if isinstance(raw, PropertyDefinition) else dict(raw)
        key = d.get("key") or ""
        label = d.get("label") or ""
        data_type = d.get("data_type")

        if key in seen:
            errors.append(PropertyTypeError(key=key, message=f'Duplicate property key: "{key}"'))
        seen.add(key)

        if not key.strip():
            errors.append(PropertyTypeError(key=key or "(empty)", message="Property key cannot be empty"))

        if not label.strip():
            errors.append(PropertyTypeError(key=key, message=f'Property "{key}" must have a label'))

        if data_type not in VALID_DATA_TYPES:
            errors.append(PropertyTypeError(
                key=key,
                message=f'Property "{key}" has invalid data type "{data_type}". Must be one of: {", ".join(VALID_DATA_TYPES)}',
            ))
    return errors


def apply_defaults(values: Dict[str, Any], schema: List[PropertyDefinition]) -> Dict[str, Any]:
    merged = dict(values)
    for definition in schema:
        if definition.key not in merged and definition.default_value is not None:
            merged[definition.key] = definition.default_value
    return merged


def to_property_value(value: Any, data_type: PropertyDataType):
    """Convert an already-validated raw value into its typed form."""
    if data_type == PropertyDataType.STRING:
        return StringValue(value=value)
    if data_type == PropertyDataType.NUMBER:
        return NumberValue(value=value)
    if data_type == PropertyDataType.BOOLEAN:
        return BooleanValue(value=value)
    if isinstance(value, str):
        value = parse_date(value)
    return DateValue(value=value)


def parse_properties(values: Dict[str, Any], schema: List[PropertyDefinition]) -> TypedProperties:
    """
    Validate raw values against the schema and return the typed record.

    Schema defaults fill absent keys first. The result always holds the full
    schema key set; absent optional values are None.

    Raises:
        ValidationError: code SCHEMA_VALIDATION_FAILED with the missing, extra
            and mistyped keys in its details.
    """
    merged = apply_defaults(values or {}, schema)
    result = validate(merged, schema)
    if not result.is_valid:
        raise schema_validation_error(result.missing_keys, result.extra_keys, result.type_errors)

    typed: TypedProperties = {}
    for definition in schema:
        value = merged.get(definition.key)
        typed[definition.key] = None if value is None else to_property_value(value, definition.data_type)
    return typed


def to_storage(typed: TypedProperties) -> Dict[str, Any]:
    return {key: (None if value is None else value.to_storage()) for key, value in typed.items()}


def load_schema(raw_schema: Optional[List[Dict[str, Any]]]) -> List[PropertyDefinition]:
    return [PropertyDefinition.model_validate(d) for d in (raw_schema or [])]


def dump_schema(schema: List[PropertyDefinition]) -> List[Dict[str, Any]]:
    return [d.model_dump(mode="json") for d in schema]
