"""Checklist execution engine: roles, item outcomes, validation and draft persistence."""
from .bulk import BulkAssignment, BulkSelection, bulk_apply
from .errors import (
    BulkAssignmentError,
    ChecklistError,
    ConfirmationRequired,
    FinalizeRejected,
    ItemNotFound,
    PersistenceFailure,
    PreconditionNotMet,
    ResumeFailure,
    RoleConflict,
    SessionFinalized,
    UploadFailure,
)
from .items import (
    add_photo,
    quick_complete,
    quick_complete_all,
    remove_photo,
    set_date,
    set_issues,
    set_meter_reading,
    set_notes,
    uncomplete,
)
from .persistence import FileDraftIndex, InMemoryDraftIndex, PersistenceController, SaveResult
from .registry import (
    add_general_responsible,
    assign_role,
    remove_general_responsible,
    set_general_responsibles,
    unassign_role,
)
from .session import (
    DateKind,
    Employee,
    ExecutionSession,
    MaintenanceItem,
    Outcome,
    PhotoRef,
    Role,
    Signature,
)
from .signatures import clear_signature, set_signature
from .validation import Deficiency, DeficiencyCode, is_complete, validate
