"""
Checklist execution errors.

Local rule violations (role conflicts, unmet date preconditions) are raised
before any mutation is applied, so the session is left untouched. Validation
deficiencies are not exceptions; see ``validation.validate``.
"""
from typing import List, Optional


class ChecklistError(Exception):
    """Base class for every error raised by the execution engine."""


class ItemNotFound(ChecklistError):
    def __init__(self, item_id: str):
        super().__init__(f"Maintenance item {item_id} is not part of this execution")
        self.item_id = item_id


class SessionFinalized(ChecklistError):
    def __init__(self):
        super().__init__("The execution is finalized and can no longer be edited")


class RoleConflict(ChecklistError):
    """An employee was assigned a role while already holding the opposite one."""

    def __init__(self, employee_name: str, held_role, requested_role, item_id: Optional[str] = None):
        super().__init__(
            f"{employee_name} is already assigned as {held_role.label} in this execution "
            f"and cannot also be {requested_role.label}"
        )
        self.employee_name = employee_name
        self.held_role = held_role
        self.requested_role = requested_role
        self.item_id = item_id


class PreconditionNotMet(ChecklistError):
    """A completion or reschedule date was set without the required assignments."""

    def __init__(self, item_id: str, kind, reason: str):
        super().__init__(reason)
        self.item_id = item_id
        self.kind = kind
        self.reason = reason


class ConfirmationRequired(ChecklistError):
    def __init__(self, item_id: str):
        super().__init__("Reverting the item to pending discards its date; confirmation is required")
        self.item_id = item_id


class BulkAssignmentError(ChecklistError):
    pass


class FinalizeRejected(ChecklistError):
    """Finalize was attempted while the session still has deficiencies."""

    def __init__(self, deficiencies: List):
        super().__init__(f"The execution has {len(deficiencies)} pending deficiencies")
        self.deficiencies = deficiencies


class UploadFailure(ChecklistError):
    def __init__(self, photo_name: str, reason: str):
        super().__init__(f"Photo {photo_name} could not be uploaded: {reason}")
        self.photo_name = photo_name
        self.reason = reason


class PersistenceFailure(ChecklistError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class ResumeFailure(ChecklistError):
    def __init__(self, execution_id, reason: str):
        super().__init__(f"Draft execution {execution_id} could not be loaded: {reason}")
        self.execution_id = execution_id
        self.reason = reason
