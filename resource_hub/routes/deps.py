import uuid
from typing import Optional

from fastapi import Header, HTTPException, Request

from ..services.employees import EmployeeLookupCache


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[uuid.UUID]:
    """Acting user from the X-Actor-ID header; authentication happens upstream."""
    if not x_actor_id:
        return None
    try:
        return uuid.UUID(x_actor_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="X-Actor-ID must be a UUID")


def get_employee_cache(request: Request) -> EmployeeLookupCache:
    cache = getattr(request.app.state, "employee_cache", None)
    if cache is None:
        cache = EmployeeLookupCache()
        request.app.state.employee_cache = cache
    return cache
