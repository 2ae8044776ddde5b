"""
Assignment policy: which assignment model a resource type uses.

Hardware is always exclusive, Cloud always shared, Software individual unless
a pooled assignment is asked for. Custom types take whatever is requested.
"""
from typing import Optional

import structlog

from ..config import settings
from ..errors import ValidationError
from ..schemas.resources import AssignmentType

logger = structlog.get_logger(__name__)

OVERRIDE = "override"
REJECT = "reject"

_FORCED = {
    "hardware": AssignmentType.INDIVIDUAL,
    "physical": AssignmentType.INDIVIDUAL,
    "cloud": AssignmentType.SHARED,
}


def _normalize(requested) -> Optional[AssignmentType]:
    if requested is None or requested == "":
        return None
    if isinstance(requested, AssignmentType):
        return requested
    try:
        return AssignmentType(str(requested).upper())
    except ValueError:
        raise ValidationError(
            f"Invalid assignment type: {requested}",
            code="INVALID_ASSIGNMENT_TYPE",
            details={"allowed": [t.value for t in AssignmentType]},
        )


def forced_type(resource_type_name: Optional[str]) -> Optional[AssignmentType]:
    """The model a type imposes regardless of the request, if any."""
    return _FORCED.get((resource_type_name or "").strip().lower())


def resolve(resource_type_name: Optional[str], requested_type=None, conflict_policy: Optional[str] = None) -> AssignmentType:
    """
    Resolve the assignment model for a resource type.

    A request that conflicts with a forced model is replaced under the
    "override" policy and rejected with ASSIGNMENT_TYPE_CONFLICT under "reject".
    The policy defaults to ASSIGNMENT_TYPE_CONFLICT from settings.
    """
    requested = _normalize(requested_type)
    name = (resource_type_name or "").strip().lower()
    policy = (conflict_policy or settings.assignment_type_conflict or OVERRIDE).lower()

    forced = forced_type(name)
    if name == "software":
        if requested == AssignmentType.SHARED:
            forced = AssignmentType.INDIVIDUAL
        else:
            return AssignmentType.POOLED if requested == AssignmentType.POOLED else AssignmentType.INDIVIDUAL

    if forced is None:
        return requested or AssignmentType.INDIVIDUAL

    if requested is not None and requested != forced:
        if policy == REJECT:
            raise ValidationError(
                f"Assignment type {requested.value} is not allowed for {resource_type_name} resources; "
                f"they use {forced.value} assignments",
                code="ASSIGNMENT_TYPE_CONFLICT",
                details={"requested": requested.value, "resolved": forced.value},
            )
        logger.info("assignment_type_overridden", resource_type=resource_type_name, requested=requested.value, resolved=forced.value)
    return forced
