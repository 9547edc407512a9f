"""
Bulk assignment / mass execution.

Applies one outcome, one date and one set of executors/supervisors to a
selection of items. Every precondition is checked once up front; the items
are then updated through the same single-item commands, so the role registry
and the date rules apply exactly as they do for individual edits.
"""
import copy
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

import structlog

from .errors import BulkAssignmentError, RoleConflict
from .items import set_date
from .session import DateKind, Employee, ExecutionSession, Outcome, Role

logger = structlog.get_logger(__name__)


@dataclass
class BulkSelection:
    """Employees picked for a bulk run; one person cannot be picked for both roles."""
    executors: List[Employee] = field(default_factory=list)
    supervisors: List[Employee] = field(default_factory=list)

    def members(self, role: Role) -> List[Employee]:
        role = Role(role)
        return self.executors if role is Role.executor else self.supervisors

    def add(self, role: Role, employee: Employee, session: Optional[ExecutionSession] = None) -> bool:
        role = Role(role)
        if any(e.key == employee.key for e in self.members(role.opposite)):
            raise RoleConflict(employee.key, role.opposite, role)
        if session is not None:
            session.registry.check(employee.name, role)
        if any(e.key == employee.key for e in self.members(role)):
            return False
        self.members(role).append(employee)
        return True

    def remove(self, role: Role, name: str) -> None:
        members = self.members(role)
        members[:] = [e for e in members if e.key != Employee(name).key]

    def toggle(self, role: Role, employee: Employee, session: Optional[ExecutionSession] = None) -> bool:
        """Select or deselect; returns True when the employee ends up selected."""
        if any(e.key == employee.key for e in self.members(role)):
            self.remove(role, employee.name)
            return False
        self.add(role, employee, session)
        return True


@dataclass
class BulkAssignment:
    item_ids: List[str]
    outcome: Outcome
    execution_date: date
    executors: List[Employee] = field(default_factory=list)
    supervisors: List[Employee] = field(default_factory=list)

    def __post_init__(self):
        self.outcome = Outcome(self.outcome)

    @classmethod
    def from_selection(cls, item_ids, outcome: Outcome, execution_date: date, selection: BulkSelection):
        return cls(
            item_ids=list(item_ids),
            outcome=outcome,
            execution_date=execution_date,
            executors=list(selection.executors),
            supervisors=list(selection.supervisors),
        )


@dataclass
class BulkResult:
    item_ids: List[str]


def _check(session: ExecutionSession, assignment: BulkAssignment) -> None:
    if not assignment.item_ids:
        raise BulkAssignmentError("Select at least one maintenance task")
    if assignment.outcome is Outcome.pending:
        raise BulkAssignmentError("Bulk execution requires a completed or rescheduled outcome")
    if assignment.execution_date is None:
        raise BulkAssignmentError("Select the execution date")
    if assignment.outcome is Outcome.completed and not (assignment.executors and assignment.supervisors):
        raise BulkAssignmentError("Completing tasks requires at least one executor and one supervisor")
    if assignment.outcome is Outcome.rescheduled and not assignment.supervisors:
        raise BulkAssignmentError("Rescheduling tasks requires at least one supervisor")

    for employee in list(assignment.executors) + list(assignment.supervisors):
        if not employee.key:
            raise BulkAssignmentError("Every selected employee needs a name")

    executor_keys = {e.key for e in assignment.executors}
    for employee in assignment.supervisors:
        if employee.key in executor_keys:
            raise RoleConflict(employee.key, Role.executor, Role.supervisor)

    for item_id in assignment.item_ids:
        session.item(item_id)
    for role, people in ((Role.executor, assignment.executors), (Role.supervisor, assignment.supervisors)):
        for employee in people:
            session.registry.check(employee.name, role)


def bulk_apply(session: ExecutionSession, assignment: BulkAssignment) -> BulkResult:
    session.ensure_editable()
    _check(session, assignment)

    kind = DateKind.completed if assignment.outcome is Outcome.completed else DateKind.reschedule
    targets = [session.item(item_id) for item_id in dict.fromkeys(assignment.item_ids)]
    saved = {item.id: copy.deepcopy(item) for item in targets}

    try:
        with session.batch("bulk_apply"):
            for item in targets:
                for employee in assignment.executors:
                    session.registry.assign(item.id, Role.executor, employee)
                for employee in assignment.supervisors:
                    session.registry.assign(item.id, Role.supervisor, employee)
                set_date(session, item.id, kind, assignment.execution_date)
    except Exception:
        session.items[:] = [saved.get(item.id, item) for item in session.items]
        session.registry.rebuild()
        logger.warning("bulk_apply_rolled_back", checklist_id=session.checklist_id, items=list(saved))
        raise

    logger.info(
        "bulk_apply",
        checklist_id=session.checklist_id,
        outcome=assignment.outcome.value,
        items=len(targets),
    )
    return BulkResult(item_ids=[item.id for item in targets])
