"""
Maintenance item state machine.

Pending -> Completed requires at least one executor and one supervisor.
Pending -> Rescheduled requires at least one supervisor.
Completed <-> Rescheduled clears the other date.
Completed/Rescheduled -> Pending (``uncomplete``) needs explicit confirmation.

Notes and issues are not required to resolve an item; they are checked when
the execution is finalized so a technician can record evidence afterwards.
"""
from datetime import date, datetime
from typing import Iterable, List, Optional

import pytz

from ..config import settings
from .errors import ConfirmationRequired, PreconditionNotMet
from .session import DateKind, MaintenanceItem, Notice, PhotoRef


def today() -> date:
    """Current date in the plant's timezone."""
    return datetime.now(pytz.timezone(settings.tz_default)).date()


def _check_precondition(item: MaintenanceItem, kind: DateKind) -> None:
    if kind is DateKind.completed:
        if not item.executors or not item.supervisors:
            raise PreconditionNotMet(
                item.id, kind,
                "An executor and a supervisor must be assigned before marking the task as completed",
            )
    elif not item.supervisors:
        raise PreconditionNotMet(
            item.id, kind,
            "A supervisor must be assigned before rescheduling the task",
        )


def set_date(session, item_id: str, kind: DateKind, value: date) -> MaintenanceItem:
    session.ensure_editable()
    kind = DateKind(kind)
    if value is None:
        raise ValueError("A date is required; use uncomplete() to clear it")
    item = session.item(item_id)
    _check_precondition(item, kind)
    if kind is DateKind.completed:
        item.completed_date = value
        item.reschedule_date = None
    else:
        item.reschedule_date = value
        item.completed_date = None
    session.emit(f"set_{kind.value}_date", item_id)
    return item


def uncomplete(session, item_id: str, confirmed: bool = False) -> MaintenanceItem:
    session.ensure_editable()
    item = session.item(item_id)
    if not item.resolved:
        return item
    if not confirmed:
        raise ConfirmationRequired(item_id)
    item.completed_date = None
    item.reschedule_date = None
    session.emit("uncomplete", item_id)
    return item


def retract_unsupported_dates(item: MaintenanceItem) -> List[Notice]:
    """Clear dates the item's current assignments no longer allow."""
    notices = []
    if item.completed_date is not None and (not item.executors or not item.supervisors):
        item.completed_date = None
        missing = "executor" if not item.executors else "supervisor"
        notices.append(Notice(
            item_id=item.id,
            message=f"Completion date of '{item.title or item.id}' was cleared: it has no {missing} left",
            kind="warning",
        ))
    if item.reschedule_date is not None and not item.supervisors:
        item.reschedule_date = None
        notices.append(Notice(
            item_id=item.id,
            message=f"Reschedule date of '{item.title or item.id}' was cleared: it has no supervisor left",
            kind="warning",
        ))
    return notices


def set_notes(session, item_id: str, notes: Optional[str]) -> MaintenanceItem:
    session.ensure_editable()
    item = session.item(item_id)
    item.notes = notes
    session.emit("set_notes", item_id)
    return item


def set_issues(session, item_id: str, issues: Optional[str]) -> MaintenanceItem:
    session.ensure_editable()
    item = session.item(item_id)
    item.issues = issues
    session.emit("set_issues", item_id)
    return item


def set_meter_reading(session, item_id: str, value: Optional[float], unit: Optional[str] = None) -> MaintenanceItem:
    session.ensure_editable()
    item = session.item(item_id)
    if value is not None and value < 0:
        raise ValueError("Meter reading cannot be negative")
    if unit is not None and unit not in ("km", "hours"):
        raise ValueError(f"Unknown meter unit: {unit}")
    item.meter_reading = value
    if unit is not None:
        item.meter_unit = unit
    session.emit("set_meter_reading", item_id)
    return item


def add_photo(session, item_id: str, photo: PhotoRef) -> MaintenanceItem:
    session.ensure_editable()
    item = session.item(item_id)
    if photo.content is None and not photo.url:
        raise ValueError("Photo has neither content nor url")
    item.photos.append(photo)
    session.emit("add_photo", item_id)
    return item


def remove_photo(session, item_id: str, name: str) -> Optional[PhotoRef]:
    session.ensure_editable()
    item = session.item(item_id)
    for index, photo in enumerate(item.photos):
        if photo.name == name:
            removed = item.photos.pop(index)
            session.emit("remove_photo", item_id)
            return removed
    return None


def _fill_placeholders(item: MaintenanceItem) -> None:
    if not (item.notes or "").strip():
        item.notes = settings.quick_complete_notes
    if not (item.issues or "").strip():
        item.issues = settings.quick_complete_issues


def quick_complete(session, item_id: str, on: Optional[date] = None) -> MaintenanceItem:
    """Complete with today's date and placeholder notes/issues where blank."""
    session.ensure_editable()
    item = session.item(item_id)
    _check_precondition(item, DateKind.completed)
    with session.batch("quick_complete"):
        set_date(session, item_id, DateKind.completed, on or today())
        _fill_placeholders(item)
    return item


def quick_complete_all(session, item_ids: Iterable[str], on: Optional[date] = None) -> List[MaintenanceItem]:
    session.ensure_editable()
    targets = [session.item(item_id) for item_id in item_ids]
    for item in targets:
        _check_precondition(item, DateKind.completed)
    stamp = on or today()
    with session.batch("quick_complete"):
        for item in targets:
            set_date(session, item.id, DateKind.completed, stamp)
            _fill_placeholders(item)
    return targets
