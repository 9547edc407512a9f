"""
Checklist execution persistence.

Drafts (IN_PROGRESS) are updated in place for as long as the client sends
their id back. Finalizing closes the execution, clears the checklist's
in-progress pointer and pushes each item's outcome onto its maintenance
task: completed items bump the task's history and counters, rescheduled
items move its next maintenance date.
"""
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy.orm import Session

from ..models.models import ChecklistExecution, MaintenanceAsset, MaintenanceChecklist, MaintenanceTask
from ..schemas.executions import ExecutionItemPayload, SaveExecutionRequest

logger = structlog.get_logger(__name__)

DEFAULT_TASK_MINUTES = 30


class ChecklistNotFound(Exception):
    pass


class ExecutionNotFound(Exception):
    pass


class ExecutionConflict(Exception):
    pass


def to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def _unique_names(names: List[str]) -> List[str]:
    out: List[str] = []
    for name in names or []:
        clean = " ".join((name or "").split())
        if clean and clean not in out:
            out.append(clean)
    return out


def _executed_by_summary(executors: List[str], supervisors: List[str], fallback: Optional[str]) -> str:
    if executors:
        return ", ".join(executors)
    if supervisors:
        return ", ".join(supervisors)
    return fallback or "Usuario del sistema"


def _details(req: SaveExecutionRequest, executors: List[str], supervisors: List[str]) -> Dict[str, Any]:
    return {
        "items": [item.model_dump(mode="json") for item in req.items],
        "responsibles": {"executors": executors, "supervisors": supervisors},
        "signatures": req.signatures.model_dump(),
        "finalize": req.finalize,
    }


def checklist_template(checklist: MaintenanceChecklist) -> Dict[str, Any]:
    return {
        "id": checklist.id,
        "title": checklist.title,
        "description": checklist.description,
        "frequency": checklist.frequency,
        "company_id": checklist.company_id,
        "sector_id": checklist.sector_id,
        "items": checklist.items or [],
        "phases": checklist.phases or [],
        "instructives": checklist.instructives or [],
        "is_completed": checklist.is_completed,
        "execution_status": checklist.execution_status,
        "in_progress_execution_id": checklist.in_progress_execution_id,
        "last_execution_date": checklist.last_execution_date,
    }


def _resolve_execution(db: Session, checklist_id: int, execution_id: Optional[int]) -> Optional[ChecklistExecution]:
    if execution_id is None:
        return None
    execution = db.query(ChecklistExecution).filter(ChecklistExecution.id == execution_id).first()
    if not execution:
        raise ExecutionNotFound(f"Execution {execution_id} not found")
    if execution.checklist_id != checklist_id:
        raise ExecutionConflict(f"Execution {execution_id} belongs to another checklist")
    if execution.status != "IN_PROGRESS":
        raise ExecutionConflict(f"Execution {execution_id} is already finalized")
    return execution


def _history_record(kind: str, task: MaintenanceTask, checklist_id: int, execution: ChecklistExecution, **fields) -> Dict[str, Any]:
    return {
        "id": f"{kind}-{task.id}-{uuid.uuid4().hex[:8]}",
        "checklist_id": checklist_id,
        "checklist_execution_id": execution.id,
        "company_id": execution.company_id or task.company_id,
        "sector_id": execution.sector_id or task.sector_id,
        "is_from_checklist": True,
        **fields,
    }


def _complete_task(
    db: Session,
    task: MaintenanceTask,
    item: ExecutionItemPayload,
    *,
    checklist_id: int,
    execution: ChecklistExecution,
    executors: List[str],
    supervisors: List[str],
    executed_by: str,
) -> None:
    minutes = task.estimated_minutes if task.estimated_minutes and task.estimated_minutes > 0 else DEFAULT_TASK_MINUTES
    record = _history_record(
        "exec", task, checklist_id, execution,
        executed_at=item.completed_date.isoformat(),
        actual_duration=minutes,
        actual_duration_unit="MINUTES",
        notes=item.notes or f"Ejecutado desde checklist {checklist_id}",
        issues=item.issues or "",
        completion_status="COMPLETED",
        executed_by=", ".join(executors) if executors else executed_by,
        executors=executors,
        supervisors=supervisors,
        photo_urls=list(item.photo_urls),
    )
    task.status = "COMPLETED"
    task.last_maintenance_date = item.completed_date
    task.notes = item.notes or task.notes
    task.maintenance_count = (task.maintenance_count or 0) + 1
    task.last_execution = {
        "executed_at": record["executed_at"],
        "executed_by": record["executed_by"],
        "duration": minutes,
        "notes": record["notes"],
        "executors": executors,
        "supervisors": supervisors,
        "photo_urls": record["photo_urls"],
        "checklist_id": checklist_id,
        "checklist_execution_id": execution.id,
    }
    task.execution_history = [record] + list(task.execution_history or [])
    task.updated_at = datetime.now(timezone.utc)
    if item.meter_reading is not None and task.asset_id:
        _update_asset_meter(db, task.asset_id, item.meter_reading, item.meter_unit)


def _reschedule_task(
    task: MaintenanceTask,
    item: ExecutionItemPayload,
    *,
    checklist_id: int,
    execution: ChecklistExecution,
    executors: List[str],
    supervisors: List[str],
    executed_by: str,
) -> None:
    now = datetime.now(timezone.utc)
    original = task.next_maintenance_date
    record = _history_record(
        "reschedule", task, checklist_id, execution,
        executed_at=now.isoformat(),
        actual_duration=0,
        actual_duration_unit="REPROGRAMACION",
        notes=f"Reprogramado desde checklist {checklist_id} - {item.notes or 'Sin motivo especificado'}",
        issues=item.issues or "",
        completion_status="RESCHEDULED",
        executed_by=", ".join(supervisors) if supervisors else executed_by,
        executors=executors,
        supervisors=supervisors,
        original_date=original.isoformat() if original else None,
        new_date=item.reschedule_date.isoformat(),
        reschedule_reason=item.notes or "Reprogramado desde checklist",
    )
    task.status = "SCHEDULED"
    task.next_maintenance_date = item.reschedule_date
    task.last_execution = {
        "executed_at": record["executed_at"],
        "executed_by": record["executed_by"],
        "notes": record["notes"],
        "executors": executors,
        "supervisors": supervisors,
        "checklist_id": checklist_id,
        "checklist_execution_id": execution.id,
    }
    task.execution_history = [record] + list(task.execution_history or [])
    task.updated_at = now


def _update_asset_meter(db: Session, asset_id: int, reading: float, unit: Optional[str]) -> None:
    asset = db.query(MaintenanceAsset).filter(MaintenanceAsset.id == asset_id).first()
    if not asset:
        logger.warning("asset_not_found", asset_id=asset_id)
        return
    if unit == "hours":
        if asset.hours_current is None or reading > asset.hours_current:
            asset.hours_current = reading
    else:
        if asset.odometer_current is None or reading > asset.odometer_current:
            asset.odometer_current = int(reading)
    asset.updated_at = datetime.now(timezone.utc)


def _apply_outcomes(
    db: Session,
    req: SaveExecutionRequest,
    *,
    checklist_id: int,
    execution: ChecklistExecution,
    general_executors: List[str],
    general_supervisors: List[str],
    executed_by: str,
) -> None:
    for item in req.items:
        if item.maintenance_id is None:
            logger.warning("item_without_maintenance_id", checklist_id=checklist_id, item_id=item.id)
            continue
        if item.completed_date is None and item.reschedule_date is None:
            continue
        task = db.query(MaintenanceTask).filter(MaintenanceTask.id == item.maintenance_id).first()
        if not task:
            logger.warning("maintenance_task_not_found", checklist_id=checklist_id, maintenance_id=item.maintenance_id)
            continue
        executors = item.names("executors") or general_executors
        supervisors = item.names("supervisors") or general_supervisors
        context = dict(
            checklist_id=checklist_id,
            execution=execution,
            executors=executors,
            supervisors=supervisors,
            executed_by=executed_by,
        )
        if item.completed_date is not None:
            _complete_task(db, task, item, **context)
        else:
            _reschedule_task(task, item, **context)


def save_execution(db: Session, req: SaveExecutionRequest) -> Dict[str, Any]:
    checklist_id = to_int(req.checklist_id)
    if not checklist_id:
        raise ValueError("Invalid checklist id")
    checklist = db.query(MaintenanceChecklist).filter(MaintenanceChecklist.id == checklist_id).first()
    if not checklist:
        raise ChecklistNotFound(f"Checklist {checklist_id} not found")

    execution_id = to_int(req.execution_id)
    if req.execution_id is not None and execution_id is None:
        raise ValueError("Invalid execution id")
    execution = _resolve_execution(db, checklist_id, execution_id)

    general_executors = _unique_names(req.responsibles.executors)
    general_supervisors = _unique_names(req.responsibles.supervisors)
    executed_by = _executed_by_summary(general_executors, general_supervisors, req.executed_by_name)
    now = datetime.now(timezone.utc)
    completed = sum(1 for i in req.items if i.completed_date)
    rescheduled = sum(1 for i in req.items if i.reschedule_date and not i.completed_date)

    if execution is None:
        execution = ChecklistExecution(checklist_id=checklist_id)
        db.add(execution)
    execution.executed_at = now
    execution.executed_by = executed_by
    execution.status = "COMPLETED" if req.finalize else "IN_PROGRESS"
    execution.completed_items = completed
    execution.rescheduled_items = rescheduled
    execution.total_items = len(req.items)
    execution.execution_time = len(req.items) * DEFAULT_TASK_MINUTES
    execution.company_id = req.company_id or checklist.company_id
    execution.sector_id = req.sector_id or checklist.sector_id
    execution.details = _details(req, general_executors, general_supervisors)
    execution.updated_at = now
    db.flush()

    if req.finalize:
        checklist.is_completed = True
        checklist.execution_status = "COMPLETED"
        checklist.last_execution_date = now
        checklist.in_progress_execution_id = None
        _apply_outcomes(
            db, req,
            checklist_id=checklist_id,
            execution=execution,
            general_executors=general_executors,
            general_supervisors=general_supervisors,
            executed_by=executed_by,
        )
    else:
        checklist.execution_status = "IN_PROGRESS"
        checklist.in_progress_execution_id = execution.id
    checklist.updated_at = now

    db.commit()
    db.refresh(execution)
    logger.info(
        "execution_saved",
        checklist_id=checklist_id,
        execution_id=execution.id,
        finalized=req.finalize,
        items=len(req.items),
    )

    processed = [
        {
            "maintenance_id": item.maintenance_id,
            "was_completed": item.completed_date is not None,
            "was_rescheduled": item.reschedule_date is not None and item.completed_date is None,
            "new_status": "COMPLETED" if item.completed_date else ("SCHEDULED" if item.reschedule_date else "PENDING"),
        }
        for item in req.items
    ]
    message = (
        f"Checklist finalized. {len(req.items)} maintenance tasks processed."
        if req.finalize
        else "Checklist saved. You can continue it later."
    )
    return {
        "success": True,
        "execution_id": execution.id,
        "message": message,
        "processed": processed,
        "details": {
            "completed_count": completed,
            "rescheduled_count": rescheduled,
            "total_items": len(req.items),
            "finalized": req.finalize,
        },
    }


def get_execution(db: Session, execution_id: int) -> ChecklistExecution:
    execution = db.query(ChecklistExecution).filter(ChecklistExecution.id == execution_id).first()
    if not execution:
        raise ExecutionNotFound(f"Execution {execution_id} not found")
    return execution


def list_executions(db: Session, checklist_id: int, company_id: Optional[int] = None) -> List[ChecklistExecution]:
    query = db.query(ChecklistExecution).filter(ChecklistExecution.checklist_id == checklist_id)
    if company_id:
        query = query.filter(ChecklistExecution.company_id == company_id)
    return query.order_by(ChecklistExecution.executed_at.desc(), ChecklistExecution.id.desc()).all()


def reopen_checklist(db: Session, checklist: MaintenanceChecklist) -> MaintenanceChecklist:
    checklist.is_completed = False
    checklist.execution_status = "PENDING"
    checklist.updated_at = datetime.now(timezone.utc)
    db.commit()
    db.refresh(checklist)
    return checklist
