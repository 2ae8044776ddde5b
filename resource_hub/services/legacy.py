"""
Legacy shapes, used only at the API edge.

Older clients know resources by a fixed type enum (PHYSICAL, SOFTWARE, CLOUD)
and items by a flat set of columns (serialNumber, licenseKey, ...). These
helpers project canonical records into that view and back; the services never
read legacy shapes.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from ..schemas.properties import PropertyDefinition

LEGACY_TYPES = {
    "physical": "PHYSICAL",
    "hardware": "PHYSICAL",
    "software": "SOFTWARE",
    "cloud": "CLOUD",
}

TYPE_NAMES_BY_LEGACY = {
    "PHYSICAL": "Hardware",
    "SOFTWARE": "Software",
    "CLOUD": "Cloud",
}

LEGACY_ITEM_FIELDS = [
    "serialNumber",
    "hostname",
    "ipAddress",
    "macAddress",
    "operatingSystem",
    "osVersion",
    "processor",
    "memory",
    "storage",
    "licenseKey",
    "softwareVersion",
    "licenseType",
    "maxUsers",
    "activationCode",
    "licenseExpiry",
    "purchaseDate",
    "warrantyExpiry",
    "value",
]


def to_legacy_type(type_name: Optional[str]) -> str:
    """Hardware/PHYSICAL -> PHYSICAL, Software -> SOFTWARE, Cloud -> CLOUD; anything else PHYSICAL."""
    return LEGACY_TYPES.get((type_name or "").strip().lower(), "PHYSICAL")


def from_legacy_type(legacy_type: Optional[str]) -> str:
    return TYPE_NAMES_BY_LEGACY.get((legacy_type or "").strip().upper(), "Hardware")


def legacy_item_view(item) -> Dict[str, Any]:
    properties = dict(item.properties or {})
    view: Dict[str, Any] = {
        "id": str(item.id),
        "resourceId": str(item.resource_id),
        "status": item.status,
    }
    for field in LEGACY_ITEM_FIELDS:
        value = properties.get(field)
        if value is not None:
            view[field] = value
    view["properties"] = properties
    return view


def legacy_resource_view(resource, type_name: Optional[str]) -> Dict[str, Any]:
    return {
        "id": str(resource.id),
        "name": resource.name,
        "type": to_legacy_type(type_name),
        "status": resource.status,
        "quantity": resource.quantity,
        "custodianId": str(resource.custodian_id) if resource.custodian_id else None,
    }


def properties_from_legacy(fields: Dict[str, Any], schema: List[PropertyDefinition]) -> Dict[str, Any]:
    """Build a canonical property map from flat legacy fields, keeping schema keys only."""
    keys = {d.key for d in schema}
    properties = {}
    for field in LEGACY_ITEM_FIELDS:
        if field not in keys:
            continue
        value = fields.get(field)
        if value is None:
            continue
        if isinstance(value, (date, datetime)):
            value = value.isoformat()
        properties[field] = value
    return properties
