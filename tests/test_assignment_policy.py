import pytest

from resource_hub.config import settings
from resource_hub.errors import ValidationError
from resource_hub.schemas.resources import AssignmentType
from resource_hub.services import assignment_policy


@pytest.mark.parametrize("type_name,requested,expected", [
    ("Hardware", None, AssignmentType.INDIVIDUAL),
    ("Hardware", "INDIVIDUAL", AssignmentType.INDIVIDUAL),
    ("Hardware", "POOLED", AssignmentType.INDIVIDUAL),
    ("PHYSICAL", "SHARED", AssignmentType.INDIVIDUAL),
    ("Cloud", None, AssignmentType.SHARED),
    ("cloud", "INDIVIDUAL", AssignmentType.SHARED),
    ("Software", None, AssignmentType.INDIVIDUAL),
    ("Software", "POOLED", AssignmentType.POOLED),
    ("Software", "pooled", AssignmentType.POOLED),
    ("Software", "SHARED", AssignmentType.INDIVIDUAL),
    ("Furniture", None, AssignmentType.INDIVIDUAL),
    ("Furniture", "SHARED", AssignmentType.SHARED),
    (None, "POOLED", AssignmentType.POOLED),
])
def test_resolve_with_override_policy(type_name, requested, expected):
    assert assignment_policy.resolve(type_name, requested) == expected


@pytest.mark.parametrize("type_name,requested", [
    ("Hardware", "POOLED"),
    ("Hardware", "SHARED"),
    ("Cloud", "INDIVIDUAL"),
    ("Software", "SHARED"),
])
def test_resolve_with_reject_policy(type_name, requested):
    with pytest.raises(ValidationError) as exc:
        assignment_policy.resolve(type_name, requested, conflict_policy="reject")
    assert exc.value.code == "ASSIGNMENT_TYPE_CONFLICT"
    assert exc.value.details["requested"] == requested


def test_reject_policy_allows_matching_requests():
    assert assignment_policy.resolve("Hardware", "INDIVIDUAL", conflict_policy="reject") == AssignmentType.INDIVIDUAL
    assert assignment_policy.resolve("Cloud", None, conflict_policy="reject") == AssignmentType.SHARED
    assert assignment_policy.resolve("Software", "POOLED", conflict_policy="reject") == AssignmentType.POOLED


def test_policy_defaults_to_settings(monkeypatch):
    monkeypatch.setattr(settings, "assignment_type_conflict", "reject")
    with pytest.raises(ValidationError):
        assignment_policy.resolve("Cloud", "POOLED")


def test_invalid_assignment_type():
    with pytest.raises(ValidationError) as exc:
        assignment_policy.resolve("Software", "FLOATING")
    assert exc.value.code == "INVALID_ASSIGNMENT_TYPE"


def test_forced_type():
    assert assignment_policy.forced_type("Hardware") == AssignmentType.INDIVIDUAL
    assert assignment_policy.forced_type("Cloud") == AssignmentType.SHARED
    assert assignment_policy.forced_type("Software") is None
