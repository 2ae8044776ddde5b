import uuid
from datetime import date
from types import SimpleNamespace

import pytest

from resource_hub.schemas.properties import PropertyDefinition
from resource_hub.services import legacy


@pytest.mark.parametrize("type_name,expected", [
    ("Hardware", "PHYSICAL"),
    ("physical", "PHYSICAL"),
    ("Software", "SOFTWARE"),
    ("Cloud", "CLOUD"),
    ("Furniture", "PHYSICAL"),
    (None, "PHYSICAL"),
])
def test_to_legacy_type(type_name, expected):
    assert legacy.to_legacy_type(type_name) == expected


def test_from_legacy_type():
    assert legacy.from_legacy_type("PHYSICAL") == "Hardware"
    assert legacy.from_legacy_type("software") == "Software"
    assert legacy.from_legacy_type("CLOUD") == "Cloud"


def test_legacy_item_view_flattens_known_fields():
    item = SimpleNamespace(
        id=uuid.uuid4(),
        resource_id=uuid.uuid4(),
        status="AVAILABLE",
        properties={"serialNumber": "SN-1", "hostname": None, "assetTag": "A-9"},
    )
    view = legacy.legacy_item_view(item)
    assert view["serialNumber"] == "SN-1"
    assert "hostname" not in view
    assert "assetTag" not in view
    assert view["properties"]["assetTag"] == "A-9"
    assert view["resourceId"] == str(item.resource_id)


def test_legacy_resource_view():
    resource = SimpleNamespace(id=uuid.uuid4(), name="Slack", status="ACTIVE", quantity=25, custodian_id=None)
    view = legacy.legacy_resource_view(resource, "Software")
    assert view == {
        "id": str(resource.id),
        "name": "Slack",
        "type": "SOFTWARE",
        "status": "ACTIVE",
        "quantity": 25,
        "custodianId": None,
    }


def test_properties_from_legacy_keeps_schema_keys():
    schema = [
        PropertyDefinition(key="serialNumber", label="Serial Number", data_type="STRING"),
        PropertyDefinition(key="warrantyExpiry", label="Warranty Expiry", data_type="DATE"),
    ]
    properties = legacy.properties_from_legacy(
        {"serialNumber": "SN-1", "warrantyExpiry": date(2027, 1, 1), "licenseKey": "XYZ", "memory": None},
        schema,
    )
    assert properties == {"serialNumber": "SN-1", "warrantyExpiry": "2027-01-01"}
