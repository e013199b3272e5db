"""
Status History Engine
Applies status transitions to Order, Prescription and ReturnRequest rows
"""

import logging
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..config import settings
from ..errors import Conflict
from ..models.status_history import actor_reference, history_entry
from ..utils.helpers import utcnow

logger = logging.getLogger(__name__)


def apply_transition(entity, new_status, actor=None, note: Optional[str] = None, now=None) -> str:
    """
    Move an entity to new_status in memory without committing.

    The history list and timeline map are replaced with new objects so the
    JSON columns are always seen as dirty. A timeline entry and the matching
    timestamp column are only written the first time a status is reached.
    Returns the previous status.
    """
    machine = type(entity).status_machine
    status = machine.normalize(new_status)
    previous = entity.status

    if settings.STRICT_STATUS_TRANSITIONS:
        machine.check_transition(previous, status)

    now = now or utcnow()
    changed_by, changed_by_type = actor_reference(actor)

    entity.status = status
    entity.status_history = list(entity.status_history or []) + [
        history_entry(status, now, changed_by, changed_by_type, note)
    ]

    timeline = dict(entity.timeline or {})
    if status not in timeline:
        timeline[status] = now.isoformat()
    entity.timeline = timeline

    attribute = machine.timeline_fields.get(status)
    if attribute and getattr(entity, attribute, None) is None:
        setattr(entity, attribute, now)

    flag_modified(entity, "status_history")
    flag_modified(entity, "timeline")

    logger.info(
        f"{machine.entity.capitalize()} {entity.id}: {previous} -> {status} "
        f"by {changed_by_type} {changed_by or ''}".rstrip()
    )
    return previous


def commit_or_conflict(db: Session, message: Optional[str] = None):
    """Commit the unit of work; a lost version race or unique clash becomes Conflict"""
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        logger.warning("Concurrent status update detected, transaction rolled back")
        raise Conflict()
    except IntegrityError as e:
        db.rollback()
        logger.warning(f"Status update violates a uniqueness rule: {e.orig}")
        raise Conflict(message)


def record_transition(db: Session, entity, new_status, actor=None, note: Optional[str] = None):
    """Apply a transition and persist it in a single versioned UPDATE"""
    apply_transition(entity, new_status, actor=actor, note=note)
    commit_or_conflict(db)
    db.refresh(entity)
    return entity
