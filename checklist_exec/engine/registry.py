"""
Identity & role registry.

HARD STOP rule: a person holds at most one role per execution session. Once
someone is an executor anywhere in the session (any item or the general
roster) they cannot be a supervisor anywhere else, and vice versa.
"""
from typing import Dict, List, Optional

import structlog

from .errors import RoleConflict
from .session import Employee, Notice, Role, normalize_name
from . import items as item_rules

logger = structlog.get_logger(__name__)


class RoleRegistry:
    """Global employee -> role index for one ``ExecutionSession``.

    The index is rebuilt after every mutation (``ExecutionSession.emit``),
    so single-item commands, bulk assignment and resume all consult the
    same view before permitting a new assignment.
    """

    def __init__(self, session):
        self._session = session
        self._index: Dict[str, Role] = {}
        self.rebuild()

    def rebuild(self) -> None:
        index: Dict[str, Role] = {}
        roster = self._session.general_responsibles
        for role in Role:
            for name in roster.names(role):
                index.setdefault(normalize_name(name), role)
        for item in self._session.items:
            for role in Role:
                for employee in item.members(role):
                    index.setdefault(employee.key, role)
        self._index = index

    def role_of(self, name: str) -> Optional[Role]:
        return self._index.get(normalize_name(name))

    def names(self, role: Role) -> List[str]:
        return [name for name, held in self._index.items() if held is role]

    def check(self, name: str, role: Role, item_id: Optional[str] = None) -> None:
        role = Role(role)
        held = self.role_of(name)
        if held is not None and held is not role:
            raise RoleConflict(normalize_name(name), held, role, item_id=item_id)

    def assign(self, item_id: str, role: Role, employee: Employee) -> bool:
        """Add ``employee`` to the item's role set. Returns False when already there."""
        role = Role(role)
        session = self._session
        session.ensure_editable()
        if not employee.key:
            raise ValueError("Employee name is required")
        item = session.item(item_id)
        self.check(employee.name, role, item_id=item_id)
        if item.holds(role, employee.name):
            return False
        item.members(role).append(Employee(name=employee.key, id=employee.id))
        session.emit(f"assign_{role.value}", item_id)
        return True

    def unassign(self, item_id: str, role: Role, employee_name: str) -> List[Notice]:
        """Remove the employee and retract any date the item can no longer support."""
        role = Role(role)
        session = self._session
        session.ensure_editable()
        item = session.item(item_id)
        key = normalize_name(employee_name)
        members = item.members(role)
        remaining = [e for e in members if e.key != key]
        if len(remaining) == len(members):
            return []
        members[:] = remaining
        notices = item_rules.retract_unsupported_dates(item)
        for notice in notices:
            logger.info("date_retracted", item_id=item_id, employee=key, notice=notice.message)
        session.emit(f"unassign_{role.value}", item_id)
        return notices

    def assign_general(self, role: Role, name: str) -> bool:
        role = Role(role)
        session = self._session
        session.ensure_editable()
        key = normalize_name(name)
        if not key:
            raise ValueError("Employee name is required")
        self.check(key, role)
        roster = session.general_responsibles.names(role)
        if key in roster:
            return False
        roster.append(key)
        session.emit(f"general_{role.value}")
        return True

    def unassign_general(self, role: Role, name: str) -> bool:
        role = Role(role)
        session = self._session
        session.ensure_editable()
        key = normalize_name(name)
        roster = session.general_responsibles.names(role)
        if key not in roster:
            return False
        roster.remove(key)
        session.emit(f"general_{role.value}")
        return True


def assign_role(session, item_id: str, role: Role, employee: Employee) -> bool:
    return session.registry.assign(item_id, role, employee)


def unassign_role(session, item_id: str, role: Role, employee_name: str) -> List[Notice]:
    return session.registry.unassign(item_id, role, employee_name)


def set_general_responsibles(session, role: Role, names: List[str]) -> None:
    """Replace the general roster for ``role``; all-or-nothing on conflicts."""
    role = Role(role)
    session.ensure_editable()
    wanted = []
    for name in names:
        key = normalize_name(name)
        if key and key not in wanted:
            wanted.append(key)
    registry = session.registry
    current = set(session.general_responsibles.names(role))
    for key in wanted:
        if key not in current:
            registry.check(key, role)
    roster = session.general_responsibles.names(role)
    roster[:] = wanted
    session.emit(f"general_{role.value}")


def add_general_responsible(session, role: Role, name: str) -> bool:
    return session.registry.assign_general(role, name)


def remove_general_responsible(session, role: Role, name: str) -> bool:
    return session.registry.unassign_general(role, name)
