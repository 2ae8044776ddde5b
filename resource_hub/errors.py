"""
Domain error taxonomy.

Every business-rule rejection raised by the services derives from
ResourceHubError and carries a machine-readable code, a details dict and the
HTTP status the API layer answers with.
"""
from typing import Any, Dict, List, Optional


class ResourceHubError(Exception):
    status_code = 400
    code = "ERROR"

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "code": self.code, "details": self.details}


# ---------- VALIDATION ----------
class ValidationError(ResourceHubError):
    status_code = 422
    code = "VALIDATION_ERROR"


class DuplicateAssignmentError(ValidationError):
    status_code = 409
    code = "DUPLICATE_ASSIGNMENT"


# ---------- REFERENTIAL INTEGRITY ----------
class ReferentialIntegrityError(ResourceHubError):
    status_code = 409
    code = "REFERENTIAL_INTEGRITY"

    def __init__(self, message: str, blocking_count: int = 0, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        details.setdefault("blocking_count", blocking_count)
        super().__init__(message, code=code, details=details)
        self.blocking_count = blocking_count


class SchemaLockedError(ReferentialIntegrityError):
    code = "SCHEMA_LOCKED"


class ActiveAssignmentError(ReferentialIntegrityError):
    code = "ACTIVE_ASSIGNMENT"


# ---------- STATE TRANSITIONS ----------
class StateTransitionError(ResourceHubError):
    status_code = 409
    code = "INVALID_STATE"

    def __init__(self, message: str, current: Optional[str] = None, requested: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message, code=code, details={"current": current, "requested": requested})
        self.current = current
        self.requested = requested


class InvalidTransitionError(StateTransitionError):
    code = "INVALID_TRANSITION"


class ItemUnavailableError(StateTransitionError):
    code = "ITEM_UNAVAILABLE"


class InactiveResourceError(StateTransitionError):
    code = "RESOURCE_INACTIVE"


# ---------- CAPACITY ----------
class CapacityError(ResourceHubError):
    status_code = 409
    code = "CAPACITY"


class CapacityExceededError(CapacityError):
    code = "CAPACITY_EXCEEDED"

    def __init__(self, message: str, used: int, total: int):
        super().__init__(message, details={"used": used, "total": total})
        self.used = used
        self.total = total


# ---------- LOOKUPS ----------
class NotFoundError(ResourceHubError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, entity: str, entity_id: Any = None):
        super().__init__(f"{entity} not found", details={"entity": entity, "id": str(entity_id) if entity_id else None})
        self.entity = entity


class InternalError(ResourceHubError):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str = "An internal error occurred"):
        super().__init__(message)


def schema_validation_error(missing_keys: List[str], extra_keys: List[str], type_errors: List[Any]) -> ValidationError:
    """Aggregate a failed schema validation into a single ValidationError."""
    parts = []
    if missing_keys:
        parts.append(f"Missing required properties: {', '.join(missing_keys)}")
    if extra_keys:
        parts.append(f"Unknown properties not in schema: {', '.join(extra_keys)}")
    parts.extend(e.message for e in type_errors)
    return ValidationError(
        f"Property validation failed: {'; '.join(parts)}",
        code="SCHEMA_VALIDATION_FAILED",
        details={
            "missing_keys": list(missing_keys),
            "extra_keys": list(extra_keys),
            "type_errors": [e.model_dump(mode="json") for e in type_errors],
        },
    )
