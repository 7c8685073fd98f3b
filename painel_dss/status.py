"""
Employee status transitions.

Resolves a single checkbox toggle against the current flags of an employee and
returns the complete, consistent status that has to be written back.
"""

from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Union
from zoneinfo import ZoneInfo

from . import config
from .errors import PermissionDenied
from .schemas import StatusField

STATUS_FIELDS = ("ass_dss", "bem", "mal", "absent")

EMPTY_TIME = "--:--"


@dataclass(frozen=True)
class EmployeeStatus:
    """
    The four status flags of an employee plus the time of the last change.

    Attributes:
        ass_dss: Signed today's briefing
        bem: Feeling well
        mal: Feeling unwell
        absent: Absent today
        time: Last status change, None when no status is set
    """
    ass_dss: bool = False
    bem: bool = False
    mal: bool = False
    absent: bool = False
    time: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "EmployeeStatus":
        return cls(
            ass_dss=bool(doc.get("ass_dss")),
            bem=bool(doc.get("bem")),
            mal=bool(doc.get("mal")),
            absent=bool(doc.get("absent")),
            time=doc.get("time"),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            "ass_dss": self.ass_dss,
            "bem": self.bem,
            "mal": self.mal,
            "absent": self.absent,
            "time": self.time,
        }

    @property
    def has_status(self) -> bool:
        return not self.absent and (self.ass_dss or self.bem or self.mal)


@dataclass(frozen=True)
class Transition:
    previous: EmployeeStatus
    status: EmployeeStatus
    field: str
    checking: bool

    @property
    def became_unwell(self) -> bool:
        return self.status.mal and not self.previous.mal

    @property
    def update(self) -> Dict[str, Any]:
        """Partial update document for the store."""
        return self.status.to_document()


def resolve_transition(
    current: EmployeeStatus,
    field: StatusField,
    is_admin: bool,
    now: Optional[datetime] = None,
) -> Transition:
    """
    Toggle field on current and enforce the status invariants.

    Raises PermissionDenied when a non-admin tries to uncheck a flag; toggling a
    flag that is already set counts as unchecking it.
    """
    if field not in STATUS_FIELDS:
        raise ValueError(f"Unknown status field: {field}")

    checking = not getattr(current, field)
    if not checking and not is_admin:
        raise PermissionDenied("Apenas administradores podem desmarcar esta opção.")

    changes: Dict[str, bool] = {field: checking}
    if field == "absent":
        if checking:
            changes.update(ass_dss=False, bem=False, mal=False)
    elif checking:
        changes["absent"] = False
        if field == "bem":
            changes.update(ass_dss=True, mal=False)
        elif field == "mal":
            changes["bem"] = False

    status = replace(current, **changes)
    if status.has_status:
        status = replace(status, time=now or datetime.now(timezone.utc))
    else:
        status = replace(status, time=None)

    return Transition(previous=current, status=status, field=field, checking=checking)


def format_timestamp(value: Union[datetime, str, None], tz: str = config.TIMEZONE) -> str:
    """
    Display string for a status time.

    Accepts the store's native datetime (naive values are UTC), an already
    formatted string, or None.
    """
    if value is None or value == "":
        return EMPTY_TIME
    if isinstance(value, str):
        return value
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(ZoneInfo(tz)).strftime("%d/%m/%Y %H:%M")
    return EMPTY_TIME
