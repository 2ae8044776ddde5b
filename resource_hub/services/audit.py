"""
Audit logging service.
Append-only audit log with integrity hashing, plus the activity timeline.
Both are written by the event sinks after the primary transaction commits.
"""
import hashlib
import json
from datetime import datetime
from typing import Optional, Dict, Any, List

import structlog
from sqlalchemy.orm import Session

from ..models.models import AuditLog, ActivityTimeline
from ..config import settings
from . import events
from .events import AuditEvent, TimelineEvent

logger = structlog.get_logger(__name__)


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, default=str)


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


def compute_integrity_hash(
    entity_type: str,
    entity_id: str,
    field_changed: str,
    timestamp_utc: datetime,
    actor_id: Optional[str] = None,
    old_value: Optional[str] = None,
    new_value: Optional[str] = None,
    context: Optional[Dict] = None,
    integrity_secret: Optional[str] = None,
) -> Optional[str]:
    if integrity_secret is None:
        integrity_secret = settings.audit_integrity_secret
    if not integrity_secret:
        return None

    # Create canonical JSON representation
    canonical_data = {
        "entity_type": entity_type,
        "entity_id": str(entity_id),
        "field_changed": field_changed,
        "actor_id": str(actor_id) if actor_id else None,
        "old_value": old_value,
        "new_value": new_value,
        "timestamp_utc": timestamp_utc.isoformat(),
        "context": context,
    }

    # Remove None values and sort keys for consistency
    canonical_data = {k: v for k, v in canonical_data.items() if v is not None}
    canonical_json = json.dumps(canonical_data, sort_keys=True, default=str)

    hash_input = f"{canonical_json}:{integrity_secret}"
    return hashlib.sha256(hash_input.encode()).hexdigest()


def create_audit_log(
    db: Session,
    entity_type: str,
    entity_id,
    field_changed: str,
    actor_id=None,
    old_value: Any = None,
    new_value: Any = None,
    context: Optional[Dict] = None,
    timestamp_utc: Optional[datetime] = None,
    integrity_secret: Optional[str] = None,
) -> AuditLog:
    """
    Add an append-only audit log entry to the session.

    Args:
        db: Database session (the caller commits)
        entity_type: RESOURCE_TYPE|RESOURCE_CATEGORY|PROPERTY_CATALOG|RESOURCE|RESOURCE_ITEM|ASSIGNMENT
        entity_id: Entity ID
        field_changed: Field name, or created|deleted for whole-entity events
        actor_id: Employee/user ID who performed the action
        old_value: Previous value (serialized to text)
        new_value: New value (serialized to text)
        context: Additional context
        integrity_secret: Secret for integrity hash (defaults to AUDIT_INTEGRITY_SECRET)

    Returns:
        Created AuditLog object
    """
    timestamp_utc = (timestamp_utc or datetime.utcnow()).replace(tzinfo=None)
    context = _json_safe(context)
    old_text = _as_text(old_value)
    new_text = _as_text(new_value)

    audit_log = AuditLog(
        entity_type=entity_type,
        entity_id=entity_id,
        actor_id=actor_id,
        field_changed=field_changed,
        old_value=old_text,
        new_value=new_text,
        timestamp_utc=timestamp_utc,
        context=context,
        integrity_hash=compute_integrity_hash(
            entity_type,
            entity_id,
            field_changed,
            timestamp_utc,
            actor_id=actor_id,
            old_value=old_text,
            new_value=new_text,
            context=context,
            integrity_secret=integrity_secret,
        ),
    )
    db.add(audit_log)
    return audit_log


def verify_integrity(audit_log: AuditLog, integrity_secret: Optional[str] = None) -> bool:
    expected = compute_integrity_hash(
        audit_log.entity_type,
        audit_log.entity_id,
        audit_log.field_changed,
        audit_log.timestamp_utc.replace(tzinfo=None),
        actor_id=audit_log.actor_id,
        old_value=audit_log.old_value,
        new_value=audit_log.new_value,
        context=audit_log.context,
        integrity_secret=integrity_secret,
    )
    return expected == audit_log.integrity_hash


def get_audit_logs(
    db: Session,
    entity_type: Optional[str] = None,
    entity_id=None,
    limit: int = 100,
    offset: int = 0
) -> list:
    """
    Get audit logs with optional filtering, newest first.
    """
    query = db.query(AuditLog)

    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)

    if entity_id:
        query = query.filter(AuditLog.entity_id == entity_id)

    query = query.order_by(AuditLog.timestamp_utc.desc())
    query = query.limit(limit).offset(offset)

    return query.all()


def get_timeline(db: Session, entity_type: Optional[str] = None, entity_id=None, limit: int = 100) -> list:
    query = db.query(ActivityTimeline)
    if entity_type:
        query = query.filter(ActivityTimeline.entity_type == entity_type)
    if entity_id:
        query = query.filter(ActivityTimeline.entity_id == entity_id)
    return query.order_by(ActivityTimeline.created_at.desc()).limit(limit).all()


def compute_diff(before: Dict, after: Dict) -> Dict:
    """
    Compute a diff between two dictionaries.

    Returns:
        Dict with before/after values for changed fields
    """
    diff = {}
    all_keys = list(before.keys()) + [k for k in after.keys() if k not in before]

    for key in all_keys:
        before_val = before.get(key)
        after_val = after.get(key)

        if before_val != after_val:
            diff[key] = {
                "before": before_val,
                "after": after_val,
            }

    return diff


# ---------- SINKS ----------
def log_sink(db: Session, batch: List[events.Event]) -> None:
    for event in batch:
        if isinstance(event, AuditEvent):
            logger.info(
                "audit_event",
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                field_changed=event.field_changed,
                actor_id=str(event.actor_id) if event.actor_id else None,
            )
        else:
            logger.info(
                "timeline_event",
                entity_type=event.entity_type,
                entity_id=str(event.entity_id),
                activity_type=event.activity_type,
                title=event.title,
            )


def persist_sink(db: Session, batch: List[events.Event]) -> None:
    """Write AuditLog and ActivityTimeline rows in a transaction of their own."""
    audit_db = Session(bind=db.get_bind())
    try:
        for event in batch:
            if isinstance(event, AuditEvent):
                create_audit_log(
                    audit_db,
                    event.entity_type,
                    event.entity_id,
                    event.field_changed,
                    actor_id=event.actor_id,
                    old_value=event.old_value,
                    new_value=event.new_value,
                    context=event.context,
                    timestamp_utc=event.occurred_at,
                )
            elif isinstance(event, TimelineEvent):
                audit_db.add(ActivityTimeline(
                    entity_type=event.entity_type,
                    entity_id=event.entity_id,
                    activity_type=event.activity_type,
                    title=event.title,
                    description=event.description,
                    performed_by=event.actor_id,
                    metadata_json=_json_safe(event.metadata),
                    created_at=event.occurred_at,
                ))
        audit_db.commit()
    except Exception:
        audit_db.rollback()
        raise
    finally:
        audit_db.close()


def install_default_sinks() -> None:
    events.register_sink(log_sink)
    if settings.persist_audit_events:
        events.register_sink(persist_sink)
