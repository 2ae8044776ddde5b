"""
Pytest configuration and fixtures: an in-memory SQLite database per test,
seeded resource structure and small builders for employees and resources.
"""
import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from resource_hub.config import settings
from resource_hub.db import Base, atomic, get_db
from resource_hub.main import create_app, seed_resource_structure
from resource_hub.schemas.properties import PropertyDefinition
from resource_hub.schemas.resources import EmployeeCreate, ResourceCreate
from resource_hub.services import events, employees, resources, resource_types, resource_categories


@pytest.fixture(scope='function')
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope='function')
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope='function')
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def isolated_sinks():
    """Tests start with no event sinks; those that need one register it."""
    saved = events.registered_sinks()
    for sink in saved:
        events.unregister_sink(sink)
    yield
    for sink in events.registered_sinks():
        events.unregister_sink(sink)
    for sink in saved:
        events.register_sink(sink)


@pytest.fixture
def recorded_events():
    """Register a sink that keeps every published event in a list."""
    published = []

    def _record(db, batch):
        published.extend(batch)

    events.register_sink(_record)
    return published


@pytest.fixture(autouse=True)
def default_conflict_policy(monkeypatch):
    monkeypatch.setattr(settings, "assignment_type_conflict", "override")


@pytest.fixture(scope='function')
def seeded(session_factory):
    return seed_resource_structure(session_factory)


@pytest.fixture(scope='function')
def client(session_factory, seeded, monkeypatch):
    """TestClient bound to the test database; startup hooks are not run."""
    monkeypatch.setattr(settings, "rate_limit", "10000/minute")
    app = create_app()

    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    return TestClient(app)


def hardware_schema():
    return [
        PropertyDefinition(key="serialNumber", label="Serial Number", data_type="STRING"),
        PropertyDefinition(key="warrantyExpiry", label="Warranty Expiry", data_type="DATE"),
    ]


def software_schema():
    return [
        PropertyDefinition(key="licenseKey", label="License Key", data_type="STRING"),
        PropertyDefinition(key="softwareVersion", label="Software Version", data_type="STRING"),
    ]


def cloud_schema():
    return [
        PropertyDefinition(key="maxUsers", label="Max Users", data_type="STRING"),
        PropertyDefinition(key="region", label="Region", data_type="STRING"),
    ]


@pytest.fixture
def make_employee(db):
    def _make(name="Alice"):
        with atomic(db):
            employee = employees.create_employee(
                db, EmployeeCreate(name=name, email=f"{name.lower()}.{uuid.uuid4().hex[:8]}@acme.io")
            )
        return employee
    return _make


@pytest.fixture
def make_resource(db, seeded):
    def _make(name, type_name, category_name, schema, quantity=None, **kwargs):
        resource_type = resource_types.get_type_by_name(db, type_name)
        category = next(c for c in resource_categories.categories_for_type(db, resource_type.id) if c.name == category_name)
        with atomic(db):
            resource = resources.create_resource(db, ResourceCreate(
                name=name,
                resource_type_id=resource_type.id,
                resource_category_id=category.id,
                property_schema=schema,
                quantity=quantity,
                **kwargs,
            ))
        return resource
    return _make


@pytest.fixture
def laptop(make_resource):
    return make_resource("MacBook Pro #1", "Hardware", "Laptop", hardware_schema())


@pytest.fixture
def license_pool(make_resource):
    return make_resource("Slack Enterprise", "Software", "SaaS", software_schema(), quantity=2)


@pytest.fixture
def cloud_account(make_resource):
    return make_resource("AWS Production", "Cloud", "Cloud Account", cloud_schema())
