import uuid

import pytest

from resource_hub.db import atomic
from resource_hub.errors import ValidationError, NotFoundError
from resource_hub.schemas.resources import EmployeeCreate, EmployeeUpdate
from resource_hub.services import employees
from resource_hub.services.employees import EmployeeLookupCache


def test_cache_hit_after_first_lookup(db, make_employee):
    alice = make_employee("Alice")
    cache = EmployeeLookupCache(max_size=5)
    first = cache.get(db, alice.id)
    second = cache.get(db, alice.id)
    assert first.name == "Alice"
    assert second is first
    assert (cache.hits, cache.misses) == (1, 1)


def test_cache_evicts_least_recently_used(db, make_employee):
    alice, bob, carol = make_employee("Alice"), make_employee("Bob"), make_employee("Carol")
    cache = EmployeeLookupCache(max_size=2)
    cache.get(db, alice.id)
    cache.get(db, bob.id)
    cache.get(db, alice.id)
    cache.get(db, carol.id)
    assert len(cache) == 2
    assert alice.id in cache
    assert bob.id not in cache
    assert carol.id in cache


def test_cache_remembers_misses(db, seeded):
    cache = EmployeeLookupCache(max_size=5)
    unknown = uuid.uuid4()
    assert cache.get(db, unknown) is None
    assert cache.get(db, unknown) is None
    assert (cache.hits, cache.misses) == (1, 1)


def test_zero_size_cache_stores_nothing(db, make_employee):
    alice = make_employee("Alice")
    cache = EmployeeLookupCache(max_size=0)
    assert cache.get(db, alice.id).name == "Alice"
    assert len(cache) == 0


def test_update_invalidates_cached_entry(db, make_employee):
    alice = make_employee("Alice")
    cache = EmployeeLookupCache(max_size=5)
    cache.get(db, alice.id)
    with atomic(db):
        employees.update_employee(db, alice.id, EmployeeUpdate(name="Alice Smith", department="IT"), cache=cache)
    assert alice.id not in cache
    refreshed = cache.get(db, alice.id)
    assert refreshed.name == "Alice Smith"
    assert refreshed.department == "IT"


def test_create_invalidates_cached_miss(db, seeded):
    cache = EmployeeLookupCache(max_size=5)
    with atomic(db):
        employee = employees.create_employee(db, EmployeeCreate(name="Dana", email="dana@acme.io"), cache=cache)
    assert cache.get(db, employee.id).email == "dana@acme.io"
    cache.clear()
    assert len(cache) == 0


def test_duplicate_email_is_rejected(db, seeded):
    with atomic(db):
        employees.create_employee(db, EmployeeCreate(name="Dana", email="dana@acme.io"))
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            employees.create_employee(db, EmployeeCreate(name="Dana Two", email="dana@acme.io"))
    assert exc.value.code == "DUPLICATE_EMAIL"


def test_update_to_taken_email_is_rejected(db, make_employee):
    alice, bob = make_employee("Alice"), make_employee("Bob")
    with pytest.raises(ValidationError) as exc:
        with atomic(db):
            employees.update_employee(db, bob.id, EmployeeUpdate(email=alice.email))
    assert exc.value.code == "DUPLICATE_EMAIL"


def test_list_active_employees(db, make_employee):
    alice, bob = make_employee("Alice"), make_employee("Bob")
    with atomic(db):
        employees.update_employee(db, bob.id, EmployeeUpdate(is_active=False))
    assert [e.name for e in employees.list_employees(db)] == ["Alice", "Bob"]
    assert [e.name for e in employees.list_employees(db, active_only=True)] == ["Alice"]


def test_unknown_employee(db, seeded):
    with pytest.raises(NotFoundError):
        employees.get_employee(db, uuid.uuid4())
