"""
Conversion between execution sessions and the wire payloads exchanged with
the catalog and execution APIs.
"""
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from .session import (
    Employee,
    ExecutionSession,
    GeneralResponsibles,
    MaintenanceItem,
    PhotoRef,
    Signature,
    Signatures,
    normalize_name,
)

# Catalog items carry their task id under different keys depending on origin:
# task id, alternate id, then work-order id.
MAINTENANCE_REF_KEYS = (
    "maintenance_id", "maintenanceId",
    "alternate_id", "alternateId", "id",
    "work_order_id", "workOrderId",
)


def parse_date(value: Any) -> Optional[date]:
    """Accept ``date``/``datetime``, ISO ``YYYY-MM-DD[THH:MM...]`` or ``dd/mm/yyyy``."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if "/" in text:
        day, month, year = text.split("/")
        return date(int(year), int(month), int(day))
    return date.fromisoformat(text[:10])


def format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    text = str(value).strip()
    if text.isdigit():
        return int(text)
    return None


def resolve_maintenance_ref(raw: Dict[str, Any]) -> Optional[int]:
    """First numeric candidate wins; non-numeric ids (e.g. ``"item-3"``) are skipped."""
    for key in MAINTENANCE_REF_KEYS:
        ref = _as_int(raw.get(key))
        if ref is not None:
            return ref
    return None


def _template_items(template: Dict[str, Any]) -> Iterable[Dict[str, Any]]:
    phases = template.get("phases") or []
    if phases:
        for phase in phases:
            for raw in phase.get("items") or []:
                yield raw
    for raw in template.get("items") or []:
        yield raw


def _employees(raw: Iterable[Any]) -> List[Employee]:
    out: List[Employee] = []
    for entry in raw or []:
        if isinstance(entry, dict):
            name, emp_id = entry.get("name"), _as_int(entry.get("id"))
        else:
            name, emp_id = entry, None
        key = normalize_name(name)
        if key and all(e.key != key for e in out):
            out.append(Employee(name=key, id=emp_id))
    return out


def _names(raw: Iterable[Any]) -> List[str]:
    out: List[str] = []
    for name in raw or []:
        key = normalize_name(name)
        if key and key not in out:
            out.append(key)
    return out


def _meter(raw: Dict[str, Any]):
    if raw.get("meter_reading") is not None:
        return float(raw["meter_reading"]), raw.get("meter_unit")
    if raw.get("current_kilometers") is not None:
        return float(raw["current_kilometers"]), "km"
    if raw.get("current_hours") is not None:
        return float(raw["current_hours"]), "hours"
    return None, raw.get("meter_unit")


def session_from_template(checklist_id: int, template: Dict[str, Any]) -> ExecutionSession:
    """Fresh session with one pending item per scheduled task of the checklist."""
    items = []
    for index, raw in enumerate(_template_items(template), start=1):
        items.append(MaintenanceItem(
            id=f"item-{index}",
            maintenance_ref=resolve_maintenance_ref(raw),
            title=raw.get("title") or "",
            asset_id=_as_int(raw.get("asset_id")),
            meter_unit=raw.get("meter_unit"),
            metadata={k: v for k, v in raw.items() if k not in MAINTENANCE_REF_KEYS and k != "title"},
        ))
    return ExecutionSession(
        checklist_id=checklist_id,
        items=items,
        title=template.get("title") or "",
        instructives=list(template.get("instructives") or []),
        company_id=_as_int(template.get("company_id")),
        sector_id=_as_int(template.get("sector_id")),
    )


def item_to_payload(item: MaintenanceItem) -> Dict[str, Any]:
    return {
        "id": item.id,
        "maintenance_id": item.maintenance_ref,
        "title": item.title,
        "completed_date": format_date(item.completed_date),
        "reschedule_date": format_date(item.reschedule_date),
        "notes": item.notes,
        "issues": item.issues,
        "meter_reading": item.meter_reading,
        "meter_unit": item.meter_unit,
        "asset_id": item.asset_id,
        "executors": [{"id": e.id, "name": e.name} for e in item.executors],
        "supervisors": [{"id": e.id, "name": e.name} for e in item.supervisors],
        "photo_urls": [p.url for p in item.photos if p.url],
    }


def session_to_payload(session: ExecutionSession, finalize: bool = False) -> Dict[str, Any]:
    """Snapshot of the session in the ``saveExecution`` request shape."""
    return {
        "checklist_id": session.checklist_id,
        "execution_id": session.draft_execution_id,
        "company_id": session.company_id,
        "sector_id": session.sector_id,
        "finalize": finalize,
        "items": [item_to_payload(item) for item in session.items],
        "responsibles": {
            "executors": list(session.general_responsibles.executors),
            "supervisors": list(session.general_responsibles.supervisors),
        },
        "signatures": {
            "executors": {name: sig.payload for name, sig in session.signatures.executors.items()},
            "supervisors": {name: sig.payload for name, sig in session.signatures.supervisors.items()},
        },
    }


def _signature_map(raw: Any) -> Dict[str, Signature]:
    # older records store signatures as [{name, signature}]
    if isinstance(raw, list):
        raw = {entry.get("name"): entry.get("signature") for entry in raw if isinstance(entry, dict)}
    out = {}
    for name, payload in (raw or {}).items():
        key = normalize_name(name)
        if key and payload:
            out[key] = Signature(payload=payload)
    return out


def _item_from_payload(raw: Dict[str, Any], index: int) -> MaintenanceItem:
    reading, unit = _meter(raw)
    return MaintenanceItem(
        id=str(raw.get("id") or f"item-{index}"),
        maintenance_ref=resolve_maintenance_ref(raw),
        title=raw.get("title") or "",
        executors=_employees(raw.get("executors")),
        supervisors=_employees(raw.get("supervisors")),
        completed_date=parse_date(raw.get("completed_date")),
        reschedule_date=None if raw.get("completed_date") else parse_date(raw.get("reschedule_date")),
        notes=raw.get("notes"),
        issues=raw.get("issues"),
        meter_reading=reading,
        meter_unit=unit,
        asset_id=_as_int(raw.get("asset_id")),
        photos=[PhotoRef(name=url.rsplit("/", 1)[-1], url=url) for url in raw.get("photo_urls") or []],
    )


def session_from_execution(record: Dict[str, Any], template: Optional[Dict[str, Any]] = None) -> ExecutionSession:
    """Rehydrate a session from a saved draft execution."""
    details = record.get("details") or {}
    roster = details.get("responsibles") or {}
    signatures = details.get("signatures") or {}
    template = template or {}
    session = ExecutionSession(
        checklist_id=_as_int(record.get("checklist_id")),
        items=[_item_from_payload(raw, i) for i, raw in enumerate(details.get("items") or [], start=1)],
        general_responsibles=GeneralResponsibles(
            executors=_names(roster.get("executors")),
            supervisors=_names(roster.get("supervisors")),
        ),
        signatures=Signatures(
            executors=_signature_map(signatures.get("executors")),
            supervisors=_signature_map(signatures.get("supervisors")),
        ),
        draft_execution_id=_as_int(record.get("id")),
        title=template.get("title") or "",
        instructives=list(template.get("instructives") or []),
        company_id=_as_int(record.get("company_id")),
        sector_id=_as_int(record.get("sector_id")),
    )
    return session
