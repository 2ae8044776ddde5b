import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db, atomic
from ..schemas.properties import (
    PropertyCatalogCreate,
    PropertyCatalogUpdate,
    PropertyCatalogResponse,
    PropertyCatalogGrouped,
)
from ..schemas.resources import (
    ResourceTypeCreate,
    ResourceTypeUpdate,
    ResourceTypeResponse,
    ResourceCategoryCreate,
    ResourceCategoryUpdate,
    ResourceCategoryResponse,
    CategoriesByType,
)
from ..services import property_catalog, resource_types, resource_categories
from .deps import get_actor_id


router = APIRouter(tags=["resource-structure"])


# ---------- PROPERTY CATALOG ----------
@router.get("/property-catalog", response_model=List[PropertyCatalogResponse])
def list_properties(resource_type_id: Optional[uuid.UUID] = None, db: Session = Depends(get_db)):
    if resource_type_id:
        return property_catalog.properties_for_type(db, resource_type_id)
    return property_catalog.list_properties(db)


@router.get("/property-catalog/grouped", response_model=PropertyCatalogGrouped)
def grouped_catalog(db: Session = Depends(get_db)):
    return property_catalog.get_catalog(db)


@router.post("/property-catalog/seed")
def seed_properties(db: Session = Depends(get_db)):
    with atomic(db):
        created = property_catalog.seed_predefined_properties(db)
    return {"created": created}


@router.get("/property-catalog/{property_id}", response_model=PropertyCatalogResponse)
def get_property(property_id: uuid.UUID, db: Session = Depends(get_db)):
    return property_catalog.get_property(db, property_id)


@router.post("/property-catalog", response_model=PropertyCatalogResponse, status_code=201)
def create_property(body: PropertyCatalogCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        prop = property_catalog.create_custom_property(db, body, actor_id=actor_id)
    return prop


@router.patch("/property-catalog/{property_id}", response_model=PropertyCatalogResponse)
def update_property(property_id: uuid.UUID, body: PropertyCatalogUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        prop = property_catalog.update_custom_property(db, property_id, body, actor_id=actor_id)
    return prop


@router.delete("/property-catalog/{property_id}")
def delete_property(property_id: uuid.UUID, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        property_catalog.delete_custom_property(db, property_id, actor_id=actor_id)
    return {"message": "Property deleted successfully"}


# ---------- RESOURCE TYPES ----------
@router.get("/resource-types", response_model=List[ResourceTypeResponse])
def list_types(db: Session = Depends(get_db)):
    return resource_types.list_types(db)


@router.post("/resource-types/seed")
def seed_types(db: Session = Depends(get_db)):
    with atomic(db):
        created = resource_types.seed_system_types(db)
    return {"created": created}


@router.get("/resource-types/{type_id}", response_model=ResourceTypeResponse)
def get_type(type_id: uuid.UUID, db: Session = Depends(get_db)):
    return resource_types.get_type(db, type_id)


@router.post("/resource-types", response_model=ResourceTypeResponse, status_code=201)
def create_type(body: ResourceTypeCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource_type = resource_types.create_type(db, body, actor_id=actor_id)
    return resource_type


@router.patch("/resource-types/{type_id}", response_model=ResourceTypeResponse)
def update_type(type_id: uuid.UUID, body: ResourceTypeUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource_type = resource_types.update_type(db, type_id, body, actor_id=actor_id)
    return resource_type


@router.delete("/resource-types/{type_id}")
def delete_type(type_id: uuid.UUID, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource_types.delete_type(db, type_id, actor_id=actor_id)
    return {"message": "Resource type deleted successfully"}


# ---------- RESOURCE CATEGORIES ----------
@router.get("/resource-categories", response_model=List[ResourceCategoryResponse])
def list_categories(resource_type_id: Optional[uuid.UUID] = None, db: Session = Depends(get_db)):
    if resource_type_id:
        return resource_categories.categories_for_type(db, resource_type_id)
    return resource_categories.list_categories(db)


@router.get("/resource-categories/grouped", response_model=List[CategoriesByType])
def grouped_categories(db: Session = Depends(get_db)):
    return resource_categories.categories_grouped_by_type(db)


@router.post("/resource-categories/seed")
def seed_categories(db: Session = Depends(get_db)):
    with atomic(db):
        created = resource_categories.seed_system_categories(db)
    return {"created": created}


@router.get("/resource-categories/{category_id}", response_model=ResourceCategoryResponse)
def get_category(category_id: uuid.UUID, db: Session = Depends(get_db)):
    return resource_categories.get_category(db, category_id)


@router.post("/resource-categories", response_model=ResourceCategoryResponse, status_code=201)
def create_category(body: ResourceCategoryCreate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        category = resource_categories.create_category(db, body, actor_id=actor_id)
    return category


@router.patch("/resource-categories/{category_id}", response_model=ResourceCategoryResponse)
def update_category(category_id: uuid.UUID, body: ResourceCategoryUpdate, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        category = resource_categories.update_category(db, category_id, body, actor_id=actor_id)
    return category


@router.delete("/resource-categories/{category_id}")
def delete_category(category_id: uuid.UUID, db: Session = Depends(get_db), actor_id=Depends(get_actor_id)):
    with atomic(db):
        resource_categories.delete_category(db, category_id, actor_id=actor_id)
    return {"message": "Category deleted successfully"}
