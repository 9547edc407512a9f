from typing import Optional

from .session import ExecutionSession, Role, Signature, normalize_name


def set_signature(session: ExecutionSession, role: Role, name: str, payload: str) -> Signature:
    """Store the signature image exported for ``name``; validity is judged at finalize."""
    role = Role(role)
    session.ensure_editable()
    key = normalize_name(name)
    if not key:
        raise ValueError("Employee name is required")
    signature = Signature(payload=payload or "")
    session.signatures.for_role(role)[key] = signature
    session.emit(f"sign_{role.value}")
    return signature


def clear_signature(session: ExecutionSession, role: Role, name: str) -> Optional[Signature]:
    role = Role(role)
    session.ensure_editable()
    removed = session.signatures.for_role(role).pop(normalize_name(name), None)
    if removed is not None:
        session.emit(f"sign_{role.value}")
    return removed
