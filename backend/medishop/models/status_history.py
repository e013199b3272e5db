"""
Status tracking shared by Order, Prescription and ReturnRequest.

Each tracked model declares a StatusMachine and three columns:
status, status_history (JSON list, append-only) and timeline
(JSON map status -> first time reached). The engine that applies and
persists transitions lives in services/status_history.py.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional, Set

from ..errors import InvalidStatus
from ..utils.helpers import utcnow


class StatusMachine:
    def __init__(
        self,
        entity: str,
        statuses: Iterable[str],
        initial: str,
        aliases: Optional[Dict[str, str]] = None,
        transitions: Optional[Dict[str, Set[str]]] = None,
        timeline_fields: Optional[Dict[str, str]] = None
    ):
        self.entity = entity
        self.statuses = tuple(statuses)
        self.initial = initial
        self.aliases = aliases or {}
        self.transitions = transitions or {}
        # status -> model attribute stamped the first time that status is reached
        self.timeline_fields = timeline_fields or {}

        if initial not in self.statuses:
            raise ValueError(f"Initial status {initial!r} is not a {entity} status")

    def normalize(self, value) -> str:
        """Map user input (any case, aliases, spaces) onto a known status"""
        if value is None:
            raise InvalidStatus(f"Invalid {self.entity} status: {value}")

        candidate = str(value).strip().lower()
        candidate = self.aliases.get(candidate, candidate)
        candidate = candidate.replace(" ", "_")
        candidate = self.aliases.get(candidate, candidate)

        if candidate not in self.statuses:
            raise InvalidStatus(
                f"Invalid {self.entity} status: {value}",
                errors=[{"field": "status", "allowed": list(self.statuses)}]
            )
        return candidate

    def is_valid(self, value) -> bool:
        try:
            self.normalize(value)
        except InvalidStatus:
            return False
        return True

    def allowed_next(self, current: str) -> Set[str]:
        return set(self.transitions.get(current, set())) | {current}

    def check_transition(self, current: str, new: str):
        """Reject moves that are not in the adjacency table"""
        if current is None or not self.transitions:
            return
        if new not in self.allowed_next(current):
            raise InvalidStatus(
                f"Cannot move {self.entity} from {current} to {new}",
                errors=[{"field": "status", "allowed": sorted(self.allowed_next(current))}]
            )


def history_entry(
    status: str,
    changed_at: datetime,
    changed_by: Optional[int] = None,
    changed_by_type: Optional[str] = None,
    note: Optional[str] = None
) -> dict:
    return {
        "status": status,
        "note": note,
        "changed_by": changed_by,
        "changed_by_type": changed_by_type,
        "changed_at": changed_at.isoformat()
    }


def actor_reference(actor) -> tuple:
    """(id, type) for a User/Admin principal, (None, "system") when absent"""
    if actor is None:
        return None, "system"
    return actor.id, getattr(actor, "principal_type", "user")


class StatusTrackedMixin:
    """Populates status, history and timeline when the entity is constructed"""

    status_machine: StatusMachine = None

    def __init__(self, **kwargs):
        actor = kwargs.pop("created_by", None)
        note = kwargs.pop("status_note", None)
        super().__init__(**kwargs)

        machine = type(self).status_machine
        self.status = machine.normalize(self.status) if self.status else machine.initial

        now = utcnow()
        changed_by, changed_by_type = actor_reference(actor)
        if not self.status_history:
            self.status_history = [
                history_entry(self.status, now, changed_by, changed_by_type, note)
            ]
        if not self.timeline:
            self.timeline = {self.status: now.isoformat()}

        attribute = machine.timeline_fields.get(self.status)
        if attribute and getattr(self, attribute, None) is None:
            setattr(self, attribute, now)

    @property
    def last_status_change(self) -> Optional[dict]:
        return self.status_history[-1] if self.status_history else None
