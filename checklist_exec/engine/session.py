"""
Execution session data model.

An ``ExecutionSession`` is the aggregate for one run of a maintenance
checklist: the scheduled tasks pulled into it (``MaintenanceItem``), the
session-wide roster of responsibles, the collected signatures and the
reference to the server-side draft once one exists.
"""
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Callable, Dict, List, Optional

from ..config import settings
from .errors import ItemNotFound, SessionFinalized


class Role(str, Enum):
    executor = "executor"
    supervisor = "supervisor"

    @property
    def label(self) -> str:
        return self.value

    @property
    def opposite(self) -> "Role":
        return Role.supervisor if self is Role.executor else Role.executor


class DateKind(str, Enum):
    completed = "completed"
    reschedule = "reschedule"


class Outcome(str, Enum):
    pending = "pending"
    completed = "completed"
    rescheduled = "rescheduled"


def normalize_name(name: Optional[str]) -> str:
    return " ".join((name or "").split())


@dataclass(frozen=True)
class Employee:
    name: str
    id: Optional[int] = None

    @property
    def key(self) -> str:
        return normalize_name(self.name)


@dataclass
class Signature:
    payload: str

    def is_valid(self, min_length: Optional[int] = None) -> bool:
        threshold = settings.signature_min_length if min_length is None else min_length
        return len(self.payload or "") > threshold


@dataclass
class PhotoRef:
    """Photo evidence; ``content`` is set until the upload yields ``url``."""
    name: str
    content: Optional[bytes] = None
    content_type: str = "image/jpeg"
    url: Optional[str] = None

    @property
    def uploaded(self) -> bool:
        return bool(self.url)


@dataclass
class MaintenanceItem:
    id: str
    maintenance_ref: Optional[int] = None
    title: str = ""
    executors: List[Employee] = field(default_factory=list)
    supervisors: List[Employee] = field(default_factory=list)
    completed_date: Optional[date] = None
    reschedule_date: Optional[date] = None
    notes: Optional[str] = None
    issues: Optional[str] = None
    meter_reading: Optional[float] = None
    meter_unit: Optional[str] = None  # km|hours, only for asset-linked tasks
    asset_id: Optional[int] = None
    photos: List[PhotoRef] = field(default_factory=list)
    metadata: Dict = field(default_factory=dict)

    def members(self, role: Role) -> List[Employee]:
        return self.executors if role is Role.executor else self.supervisors

    def holds(self, role: Role, name: str) -> bool:
        key = normalize_name(name)
        return any(e.key == key for e in self.members(role))

    @property
    def outcome(self) -> Outcome:
        if self.completed_date is not None:
            return Outcome.completed
        if self.reschedule_date is not None:
            return Outcome.rescheduled
        return Outcome.pending

    @property
    def resolved(self) -> bool:
        return self.outcome is not Outcome.pending

    @property
    def asset_linked(self) -> bool:
        return self.asset_id is not None


@dataclass
class GeneralResponsibles:
    """Fallback roster used when an item has no item-level assignment."""
    executors: List[str] = field(default_factory=list)
    supervisors: List[str] = field(default_factory=list)

    def names(self, role: Role) -> List[str]:
        return self.executors if role is Role.executor else self.supervisors


@dataclass
class Signatures:
    executors: Dict[str, Signature] = field(default_factory=dict)
    supervisors: Dict[str, Signature] = field(default_factory=dict)

    def for_role(self, role: Role) -> Dict[str, Signature]:
        return self.executors if role is Role.executor else self.supervisors


@dataclass(frozen=True)
class Notice:
    """User-visible message produced as a side effect of a command."""
    item_id: Optional[str]
    message: str
    kind: str = "info"


@dataclass(frozen=True)
class MutationEvent:
    command: str
    item_id: Optional[str] = None
    revision: int = 0


@dataclass
class ExecutionSession:
    checklist_id: int
    items: List[MaintenanceItem] = field(default_factory=list)
    general_responsibles: GeneralResponsibles = field(default_factory=GeneralResponsibles)
    signatures: Signatures = field(default_factory=Signatures)
    draft_execution_id: Optional[int] = None
    finalized: bool = False
    title: str = ""
    instructives: List[Dict] = field(default_factory=list)
    company_id: Optional[int] = None
    sector_id: Optional[int] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    revision: int = 0

    def __post_init__(self):
        from .registry import RoleRegistry

        self._listeners: List[Callable[[MutationEvent], None]] = []
        self._mute_depth = 0
        self.registry = RoleRegistry(self)

    def item(self, item_id: str) -> MaintenanceItem:
        for item in self.items:
            if item.id == item_id:
                return item
        raise ItemNotFound(item_id)

    def ensure_editable(self) -> None:
        if self.finalized:
            raise SessionFinalized()

    def subscribe(self, listener: Callable[[MutationEvent], None]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[MutationEvent], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def emit(self, command: str, item_id: Optional[str] = None) -> None:
        """Record a mutation: bump the revision, refresh the role index, notify listeners."""
        self.revision += 1
        self.registry.rebuild()
        if self._mute_depth:
            return
        event = MutationEvent(command=command, item_id=item_id, revision=self.revision)
        for listener in list(self._listeners):
            listener(event)

    @contextmanager
    def batch(self, command: str):
        """Group several mutations into a single event emitted on exit."""
        self._mute_depth += 1
        start = self.revision
        try:
            yield self
        finally:
            self._mute_depth -= 1
        if self.revision != start:
            self.emit(command)

    def summary(self) -> Dict[str, float]:
        completed = sum(1 for i in self.items if i.outcome is Outcome.completed)
        rescheduled = sum(1 for i in self.items if i.outcome is Outcome.rescheduled)
        total = len(self.items)
        return {
            "total": total,
            "completed": completed,
            "rescheduled": rescheduled,
            "pending": total - completed - rescheduled,
            "progress": round((completed + rescheduled) * 100.0 / total, 1) if total else 0.0,
        }
