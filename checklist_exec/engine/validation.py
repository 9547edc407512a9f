"""
Checklist validation.

``validate`` computes every reason the session cannot be finalized, in a
stable order: by category first, then by item position. Drafts are never
validated; only ``finalize`` is gated on an empty result.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Tuple

from .session import ExecutionSession, MaintenanceItem, Outcome, Role, normalize_name


class DeficiencyCode(str, Enum):
    missing_resolution = "missing_resolution"
    missing_notes = "missing_notes"
    missing_issues = "missing_issues"
    missing_executor = "missing_executor"
    missing_supervisor = "missing_supervisor"
    missing_executor_signatures = "missing_executor_signatures"
    missing_supervisor_signatures = "missing_supervisor_signatures"


@dataclass(frozen=True)
class Deficiency:
    code: DeficiencyCode
    message: str
    item_id: Optional[str] = None
    names: Tuple[str, ...] = ()


def _blank(text: Optional[str]) -> bool:
    return not (text or "").strip()


def _label(item: MaintenanceItem) -> str:
    return item.title or item.id


def required_signers(session: ExecutionSession) -> Dict[Role, List[str]]:
    """Distinct names per role across all items plus the general roster, in first-seen order."""
    signers: Dict[Role, List[str]] = {Role.executor: [], Role.supervisor: []}
    for role in Role:
        seen = signers[role]
        for item in session.items:
            for employee in item.members(role):
                if employee.key and employee.key not in seen:
                    seen.append(employee.key)
        for name in session.general_responsibles.names(role):
            key = normalize_name(name)
            if key and key not in seen:
                seen.append(key)
    return signers


def _missing_signatures(session: ExecutionSession, role: Role, min_length: Optional[int]) -> List[str]:
    collected = {normalize_name(name): sig for name, sig in session.signatures.for_role(role).items()}
    missing = []
    for name in required_signers(session)[role]:
        signature = collected.get(name)
        if signature is None or not signature.is_valid(min_length):
            missing.append(name)
    return missing


def validate(session: ExecutionSession, signature_min_length: Optional[int] = None) -> List[Deficiency]:
    items = session.items
    resolved = [i for i in items if i.resolved]
    completed = [i for i in items if i.outcome is Outcome.completed]
    roster = session.general_responsibles
    deficiencies: List[Deficiency] = []

    for item in items:
        if not item.resolved:
            deficiencies.append(Deficiency(
                DeficiencyCode.missing_resolution,
                f"'{_label(item)}' needs a completion or reschedule date",
                item.id,
            ))

    for item in resolved:
        if _blank(item.notes):
            deficiencies.append(Deficiency(
                DeficiencyCode.missing_notes, f"'{_label(item)}' has no notes", item.id,
            ))

    for item in resolved:
        if _blank(item.issues):
            deficiencies.append(Deficiency(
                DeficiencyCode.missing_issues,
                f"'{_label(item)}' has no issues recorded (write 'Sin inconvenientes' if there were none)",
                item.id,
            ))

    # Items without item-level assignments fall back to the general roster.
    if not roster.executors:
        for item in completed:
            if not item.executors:
                deficiencies.append(Deficiency(
                    DeficiencyCode.missing_executor,
                    f"'{_label(item)}' is completed but has no executor and no general executor is set",
                    item.id,
                ))

    if not roster.supervisors:
        for item in resolved:
            if not item.supervisors:
                deficiencies.append(Deficiency(
                    DeficiencyCode.missing_supervisor,
                    f"'{_label(item)}' has no supervisor and no general supervisor is set",
                    item.id,
                ))

    missing = _missing_signatures(session, Role.executor, signature_min_length)
    if missing:
        deficiencies.append(Deficiency(
            DeficiencyCode.missing_executor_signatures,
            "Missing executor signatures: " + ", ".join(missing),
            names=tuple(missing),
        ))
    missing = _missing_signatures(session, Role.supervisor, signature_min_length)
    if missing:
        deficiencies.append(Deficiency(
            DeficiencyCode.missing_supervisor_signatures,
            "Missing supervisor signatures: " + ", ".join(missing),
            names=tuple(missing),
        ))

    return deficiencies


def is_complete(session: ExecutionSession, signature_min_length: Optional[int] = None) -> bool:
    return not validate(session, signature_min_length)
