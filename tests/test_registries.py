import pytest

from resource_hub.db import atomic
from resource_hub.errors import ValidationError, ReferentialIntegrityError, NotFoundError
from resource_hub.main import seed_resource_structure
from resource_hub.schemas.properties import PropertyCatalogCreate, PropertyCatalogUpdate, PropertyCatalogResponse, PropertyDefinition
from resource_hub.schemas.resources import (
    ResourceTypeCreate,
    ResourceTypeUpdate,
    ResourceCategoryCreate,
    ResourceCategoryUpdate,
)
from resource_hub.services import property_catalog, resource_types, resource_categories

from conftest import hardware_schema


# ---------- SEEDING ----------
def test_seed_creates_system_structure(seeded):
    assert seeded == {"properties": 21, "types": 3, "categories": 14}


def test_seed_is_idempotent(session_factory, seeded):
    assert seed_resource_structure(session_factory) == {"properties": 0, "types": 0, "categories": 0}


def test_system_types_carry_default_mandatory_properties(db, seeded):
    assert resource_types.mandatory_properties_for(db, resource_types.get_type_by_name(db, "Hardware").id) == ["serialNumber", "warrantyExpiry"]
    assert resource_types.get_type_by_name(db, "Software").mandatory_properties == []
    assert resource_types.get_type_by_name(db, "Cloud").mandatory_properties == ["maxUsers"]


# ---------- PROPERTY CATALOG ----------
def test_catalog_groups_system_and_custom(db, seeded):
    with atomic(db):
        property_catalog.create_custom_property(db, PropertyCatalogCreate(key="assetTag", label="Asset Tag", data_type="STRING"))
    grouped = property_catalog.get_catalog(db)
    assert len(grouped.system) == 21
    assert [p.key for p in grouped.custom] == ["assetTag"]
    assert "serialNumber" in grouped.suggestions["Hardware"]


def test_custom_property_key_must_be_camel_case(db, seeded):
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            property_catalog.create_custom_property(db, PropertyCatalogCreate(key="Asset_Tag", label="Asset Tag", data_type="STRING"))
    assert exc.value.code == "INVALID_PROPERTY_KEY"


def test_custom_property_key_must_be_unique(db, seeded):
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            property_catalog.create_custom_property(db, PropertyCatalogCreate(key="serialNumber", label="Serial", data_type="STRING"))
    assert exc.value.code == "DUPLICATE_PROPERTY_KEY"


def test_custom_property_default_value_round_trips(db, seeded):
    with atomic(db):
        prop = property_catalog.create_custom_property(
            db, PropertyCatalogCreate(key="seats", label="Seats", data_type="NUMBER", default_value=5)
        )
    assert prop.default_value == {"value": 5}
    assert PropertyCatalogResponse.model_validate(prop).default_value == 5

    definitions = property_catalog.definitions_for_keys(db, ["seats", "region"], required=["region"])
    assert [d.key for d in definitions] == ["seats", "region"]
    assert definitions[0].default_value == 5
    assert definitions[1].is_required


def test_system_properties_are_immutable(db, seeded):
    serial = property_catalog.get_property_by_key(db, "serialNumber")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            property_catalog.update_custom_property(db, serial.id, PropertyCatalogUpdate(label="Serial"))
    assert exc.value.code == "SYSTEM_PROPERTY"
    with pytest.raises(ValidationError):
        with atomic(db):
            property_catalog.delete_custom_property(db, serial.id)


def test_custom_property_in_use_cannot_be_deleted(db, seeded, make_resource):
    with atomic(db):
        prop = property_catalog.create_custom_property(db, PropertyCatalogCreate(key="assetTag", label="Asset Tag", data_type="STRING"))
    schema = hardware_schema() + [PropertyDefinition(key="assetTag", label="Asset Tag", data_type="STRING")]
    make_resource("ThinkPad", "Hardware", "Laptop", schema)

    with pytest.raises(ReferentialIntegrityError) as exc:
        with atomic(db):
            property_catalog.delete_custom_property(db, prop.id)
    assert exc.value.blocking_count == 1


def test_unknown_keys_are_reported(db, seeded):
    assert property_catalog.validate_property_keys(db, ["serialNumber", "nope"]) == ["nope"]
    with pytest.raises(ValidationError):
        property_catalog.definitions_for_keys(db, ["nope"])


def test_properties_for_type_lists_suggestions(db, seeded):
    cloud = resource_types.get_type_by_name(db, "Cloud")
    keys = {p.key for p in property_catalog.properties_for_type(db, cloud.id)}
    assert {"accountId", "region", "subscriptionTier"} <= keys
    assert "serialNumber" not in keys


# ---------- RESOURCE TYPES ----------
def test_custom_type_requires_a_mandatory_property(db, seeded):
    with pytest.raises(ValidationError):
        with atomic(db):
            resource_types.create_type(db, ResourceTypeCreate(name="Furniture"))


def test_custom_type_rejects_unknown_mandatory_keys(db, seeded):
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_types.create_type(db, ResourceTypeCreate(name="Furniture", mandatory_properties=["colour"]))
    assert exc.value.details["invalid_keys"] == ["colour"]


def test_type_names_are_unique(db, seeded):
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_types.create_type(db, ResourceTypeCreate(name="Hardware", mandatory_properties=["serialNumber"]))
    assert exc.value.code == "DUPLICATE_NAME"


def test_system_type_defaults_cannot_be_removed(db, seeded):
    hardware = resource_types.get_type_by_name(db, "Hardware")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_types.update_type(db, hardware.id, ResourceTypeUpdate(mandatory_properties=["serialNumber"]))
    assert exc.value.details["removed"] == ["warrantyExpiry"]


def test_system_type_can_gain_mandatory_properties(db, seeded):
    hardware = resource_types.get_type_by_name(db, "Hardware")
    with atomic(db):
        updated = resource_types.update_type(
            db, hardware.id, ResourceTypeUpdate(mandatory_properties=["serialNumber", "warrantyExpiry", "hostname"])
        )
    assert updated.mandatory_properties == ["serialNumber", "warrantyExpiry", "hostname"]


def test_system_type_cannot_be_renamed_or_deleted(db, seeded):
    software = resource_types.get_type_by_name(db, "Software")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_types.update_type(db, software.id, ResourceTypeUpdate(name="Apps"))
    assert exc.value.code == "SYSTEM_TYPE"
    with pytest.raises(ValidationError):
        with atomic(db):
            resource_types.delete_type(db, software.id)


def test_type_with_categories_cannot_be_deleted(db, seeded):
    with atomic(db):
        furniture = resource_types.create_type(db, ResourceTypeCreate(name="Furniture", mandatory_properties=["serialNumber"]))
        resource_categories.create_category(db, ResourceCategoryCreate(name="Chair", resource_type_id=furniture.id))
    with pytest.raises(ReferentialIntegrityError) as exc:
        with atomic(db):
            resource_types.delete_type(db, furniture.id)
    assert exc.value.blocking_count == 1


def test_unused_custom_type_can_be_deleted(db, seeded):
    with atomic(db):
        furniture = resource_types.create_type(db, ResourceTypeCreate(name="Furniture", mandatory_properties=["serialNumber"]))
    type_id = furniture.id
    with atomic(db):
        resource_types.delete_type(db, type_id)
    with pytest.raises(NotFoundError):
        resource_types.get_type(db, type_id)


# ---------- RESOURCE CATEGORIES ----------
def test_category_names_are_unique_per_type(db, seeded):
    hardware = resource_types.get_type_by_name(db, "Hardware")
    software = resource_types.get_type_by_name(db, "Software")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_categories.create_category(db, ResourceCategoryCreate(name="Laptop", resource_type_id=hardware.id))
    assert exc.value.code == "DUPLICATE_NAME"

    with atomic(db):
        category = resource_categories.create_category(db, ResourceCategoryCreate(name="Laptop", resource_type_id=software.id))
    assert resource_categories.validate_category_belongs_to_type(db, category.id, software.id)
    assert not resource_categories.validate_category_belongs_to_type(db, category.id, hardware.id)


def test_system_categories_are_protected(db, seeded):
    hardware = resource_types.get_type_by_name(db, "Hardware")
    laptop = next(c for c in resource_categories.categories_for_type(db, hardware.id) if c.name == "Laptop")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            resource_categories.update_category(db, laptop.id, ResourceCategoryUpdate(name="Notebook"))
    assert exc.value.code == "SYSTEM_CATEGORY"
    with pytest.raises(ValidationError):
        with atomic(db):
            resource_categories.delete_category(db, laptop.id)


def test_category_in_use_cannot_be_deleted(db, seeded, make_resource):
    hardware = resource_types.get_type_by_name(db, "Hardware")
    with atomic(db):
        docks = resource_categories.create_category(db, ResourceCategoryCreate(name="Docking Station", resource_type_id=hardware.id))
    make_resource("Dell WD19", "Hardware", "Docking Station", hardware_schema())
    with pytest.raises(ReferentialIntegrityError) as exc:
        with atomic(db):
            resource_categories.delete_category(db, docks.id)
    assert exc.value.blocking_count == 1


def test_categories_grouped_by_type(db, seeded):
    groups = resource_categories.categories_grouped_by_type(db)
    by_name = {g.resource_type.name: [c.name for c in g.categories] for g in groups}
    assert set(by_name) == {"Hardware", "Software", "Cloud"}
    assert "Laptop" in by_name["Hardware"]
    assert "SaaS" in by_name["Software"]
