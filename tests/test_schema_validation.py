from datetime import date, datetime

import pytest

from resource_hub.errors import ValidationError
from resource_hub.schemas.properties import PropertyDefinition, StringValue, NumberValue, BooleanValue, DateValue
from resource_hub.services import schema_validation


def _schema():
    return [
        PropertyDefinition(key="serialNumber", label="Serial Number", data_type="STRING", is_required=True),
        PropertyDefinition(key="value", label="Value", data_type="NUMBER"),
        PropertyDefinition(key="managed", label="Managed", data_type="BOOLEAN", default_value=False),
        PropertyDefinition(key="warrantyExpiry", label="Warranty Expiry", data_type="DATE"),
    ]


@pytest.mark.parametrize("value,data_type,expected", [
    ("abc", "STRING", True),
    (5, "STRING", False),
    (3, "NUMBER", True),
    (2.5, "NUMBER", True),
    (float("nan"), "NUMBER", False),
    (float("inf"), "NUMBER", False),
    (True, "NUMBER", False),
    ("3", "NUMBER", False),
    (False, "BOOLEAN", True),
    ("true", "BOOLEAN", False),
    ("2026-01-01", "DATE", True),
    ("2026-01-01T10:00:00Z", "DATE", True),
    ("not-a-date", "DATE", False),
    ("", "DATE", False),
    (date(2026, 1, 1), "DATE", True),
    ("x", "UNKNOWN", False),
])
def test_is_valid_property_value(value, data_type, expected):
    assert schema_validation.is_valid_property_value(value, data_type) is expected


def test_parse_date_accepts_trailing_z():
    parsed = schema_validation.parse_date("2026-03-04T05:06:07Z")
    assert isinstance(parsed, datetime)
    assert parsed.utcoffset().total_seconds() == 0


def test_validate_reports_missing_extra_and_type_errors():
    result = schema_validation.validate({"value": "12", "colour": "red"}, _schema())
    assert not result.is_valid
    assert result.missing_keys == ["serialNumber"]
    assert result.extra_keys == ["colour"]
    assert len(result.type_errors) == 1
    error = result.type_errors[0]
    assert error.key == "value"
    assert error.message == 'Property "value" has invalid type. Expected NUMBER, got string'


def test_validate_treats_blank_string_as_missing_for_required():
    result = schema_validation.validate({"serialNumber": "   "}, _schema())
    assert result.missing_keys == ["serialNumber"]


def test_validate_ignores_absent_optional_values():
    result = schema_validation.validate({"serialNumber": "SN-1", "value": None}, _schema())
    assert result.is_valid


def test_validate_mandatory_properties_messages():
    result = schema_validation.validate_mandatory_properties(
        {"b": None, "c": "  "}, ["a", "b", "c"]
    )
    assert not result.is_valid
    assert result.missing_properties == ["a", "b", "c"]
    assert result.errors == [
        "Missing mandatory property: a",
        'Mandatory property "b" cannot be null',
        'Mandatory property "c" cannot be empty',
    ]


def test_validate_mandatory_properties_passes_with_values():
    result = schema_validation.validate_mandatory_properties({"a": 0, "b": False}, ["a", "b"])
    assert result.is_valid
    assert result.errors == []


def test_validate_property_definitions_flags_bad_entries():
    errors = schema_validation.validate_property_definitions([
        {"key": "a", "label": "A", "data_type": "STRING"},
        {"key": "a", "label": "A again", "data_type": "STRING"},
        {"key": "", "label": "Empty", "data_type": "STRING"},
        {"key": "b", "label": "", "data_type": "STRING"},
        {"key": "c", "label": "C", "data_type": "INTEGER"},
    ])
    messages = [e.message for e in errors]
    assert 'Duplicate property key: "a"' in messages
    assert "Property key cannot be empty" in messages
    assert 'Property "b" must have a label' in messages
    assert any(m.startswith('Property "c" has invalid data type "INTEGER"') for m in messages)


def test_validate_property_definitions_accepts_models():
    assert schema_validation.validate_property_definitions(_schema()) == []


def test_parse_properties_returns_typed_record_with_full_key_set():
    typed = schema_validation.parse_properties(
        {"serialNumber": "SN-1", "value": 1200, "warrantyExpiry": "2027-05-01"}, _schema()
    )
    assert set(typed) == {"serialNumber", "value", "managed", "warrantyExpiry"}
    assert isinstance(typed["serialNumber"], StringValue)
    assert isinstance(typed["value"], NumberValue)
    assert isinstance(typed["managed"], BooleanValue)
    assert typed["managed"].value is False
    assert isinstance(typed["warrantyExpiry"], DateValue)
    assert typed["warrantyExpiry"].value == date(2027, 5, 1)


def test_parse_properties_leaves_absent_optional_as_none():
    typed = schema_validation.parse_properties({"serialNumber": "SN-1"}, _schema())
    assert typed["value"] is None
    assert typed["warrantyExpiry"] is None


def test_parse_properties_raises_aggregated_error():
    with pytest.raises(ValidationError) as exc:
        schema_validation.parse_properties({"value": True, "colour": "red"}, _schema())
    error = exc.value
    assert error.code == "SCHEMA_VALIDATION_FAILED"
    assert error.details["missing_keys"] == ["serialNumber"]
    assert error.details["extra_keys"] == ["colour"]
    assert error.details["type_errors"][0]["key"] == "value"
    assert "Missing required properties: serialNumber" in error.message


def test_to_storage_flattens_typed_values():
    typed = schema_validation.parse_properties(
        {"serialNumber": "SN-1", "warrantyExpiry": "2027-05-01"}, _schema()
    )
    stored = schema_validation.to_storage(typed)
    assert stored == {"serialNumber": "SN-1", "value": None, "managed": False, "warrantyExpiry": "2027-05-01"}


def test_schema_dump_and_load_are_inverse():
    raw = schema_validation.dump_schema(_schema())
    assert raw[0]["data_type"] == "STRING"
    assert schema_validation.load_schema(raw) == _schema()
    assert schema_validation.load_schema(None) == []
