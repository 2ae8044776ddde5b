"""
Outbound audit and timeline events.

Services queue events on the session while they work. The queue is handed to
the registered sinks only after the surrounding transaction commits, and is
dropped on rollback. Sinks are best-effort: a failing sink is logged and never
affects the caller or the other sinks.
"""
import uuid
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Union

import structlog
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

logger = structlog.get_logger(__name__)

_OUTBOX_KEY = "resource_hub_outbox"


class AuditEvent(BaseModel):
    entity_type: str  # RESOURCE_TYPE|RESOURCE_CATEGORY|PROPERTY_CATALOG|RESOURCE|RESOURCE_ITEM|ASSIGNMENT
    entity_id: uuid.UUID
    actor_id: Optional[uuid.UUID] = None
    field_changed: str
    old_value: Optional[Any] = None
    new_value: Optional[Any] = None
    context: Optional[Dict[str, Any]] = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


class TimelineEvent(BaseModel):
    entity_type: str
    entity_id: uuid.UUID
    activity_type: str  # CREATED|UPDATED|DELETED|STATUS_CHANGED|ASSIGNED|LOCKED
    title: str
    description: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    actor_id: Optional[uuid.UUID] = None
    occurred_at: datetime = Field(default_factory=datetime.utcnow)


Event = Union[AuditEvent, TimelineEvent]
Sink = Callable[[Session, List[Event]], None]

_sinks: List[Sink] = []


def register_sink(sink: Sink) -> None:
    if sink not in _sinks:
        _sinks.append(sink)


def unregister_sink(sink: Sink) -> None:
    if sink in _sinks:
        _sinks.remove(sink)


def registered_sinks() -> List[Sink]:
    return list(_sinks)


def pending(db: Session) -> List[Event]:
    return db.info.setdefault(_OUTBOX_KEY, [])


def emit_audit(
    db: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    field_changed: str,
    actor_id: Optional[uuid.UUID] = None,
    old_value: Any = None,
    new_value: Any = None,
    context: Optional[Dict[str, Any]] = None,
) -> AuditEvent:
    event = AuditEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        field_changed=field_changed,
        old_value=old_value,
        new_value=new_value,
        context=context,
    )
    pending(db).append(event)
    return event


def emit_timeline(
    db: Session,
    entity_type: str,
    entity_id: uuid.UUID,
    activity_type: str,
    title: str,
    description: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None,
    actor_id: Optional[uuid.UUID] = None,
) -> TimelineEvent:
    event = TimelineEvent(
        entity_type=entity_type,
        entity_id=entity_id,
        activity_type=activity_type,
        title=title,
        description=description,
        metadata=metadata,
        actor_id=actor_id,
    )
    pending(db).append(event)
    return event


def discard(db: Session) -> None:
    dropped = db.info.pop(_OUTBOX_KEY, None)
    if dropped:
        logger.debug("outbox_discarded", count=len(dropped))


def publish(db: Session) -> None:
    """Hand every queued event to each sink, then clear the outbox."""
    queued = db.info.pop(_OUTBOX_KEY, None)
    if not queued:
        return
    for sink in list(_sinks):
        try:
            sink(db, list(queued))
        except Exception:
            logger.exception("event_sink_failed", sink=getattr(sink, "__name__", repr(sink)), count=len(queued))
