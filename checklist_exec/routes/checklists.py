from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..models.models import MaintenanceAsset, MaintenanceChecklist, MaintenanceTask
from ..schemas.catalog import (
    ChecklistCreate,
    ChecklistTemplateResponse,
    MaintenanceAssetCreate,
    MaintenanceAssetResponse,
    MaintenanceTaskCreate,
    MaintenanceTaskResponse,
)
from ..services.execution_service import checklist_template, reopen_checklist

router = APIRouter(prefix="/maintenance", tags=["maintenance"])


def _get_checklist(db: Session, checklist_id: int) -> MaintenanceChecklist:
    checklist = db.query(MaintenanceChecklist).filter(MaintenanceChecklist.id == checklist_id).first()
    if not checklist:
        raise HTTPException(status_code=404, detail="Checklist not found")
    return checklist


# ---------- checklists ----------
@router.post("/checklists", response_model=ChecklistTemplateResponse, status_code=201)
def create_checklist(body: ChecklistCreate, db: Session = Depends(get_db)):
    checklist = MaintenanceChecklist(
        title=body.title,
        description=body.description,
        frequency=body.frequency.value,
        company_id=body.company_id,
        sector_id=body.sector_id,
        items=[i.model_dump(mode="json", exclude_none=True) for i in body.items],
        phases=[p.model_dump(mode="json", exclude_none=True) for p in body.phases],
        instructives=body.instructives,
    )
    db.add(checklist)
    db.commit()
    db.refresh(checklist)
    return checklist_template(checklist)


@router.get("/checklists/{checklist_id}", response_model=ChecklistTemplateResponse)
def get_checklist(checklist_id: int, db: Session = Depends(get_db)):
    return checklist_template(_get_checklist(db, checklist_id))


@router.post("/checklists/{checklist_id}/reopen", response_model=ChecklistTemplateResponse)
def reopen(checklist_id: int, db: Session = Depends(get_db)):
    """Mark a completed checklist as pending again for its next run."""
    return checklist_template(reopen_checklist(db, _get_checklist(db, checklist_id)))


# ---------- maintenance tasks ----------
@router.post("/tasks", response_model=MaintenanceTaskResponse, status_code=201)
def create_task(body: MaintenanceTaskCreate, db: Session = Depends(get_db)):
    if body.asset_id is not None:
        if not db.query(MaintenanceAsset).filter(MaintenanceAsset.id == body.asset_id).first():
            raise HTTPException(status_code=400, detail="Asset not found")
    task = MaintenanceTask(
        title=body.title,
        description=body.description,
        company_id=body.company_id,
        sector_id=body.sector_id,
        asset_id=body.asset_id,
        estimated_minutes=body.estimated_minutes,
        next_maintenance_date=body.next_maintenance_date,
        status="SCHEDULED",
        maintenance_count=0,
        execution_history=[],
        created_at=datetime.now(timezone.utc),
    )
    db.add(task)
    db.commit()
    db.refresh(task)
    return task


@router.get("/tasks/{task_id}", response_model=MaintenanceTaskResponse)
def get_task(task_id: int, db: Session = Depends(get_db)):
    task = db.query(MaintenanceTask).filter(MaintenanceTask.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Maintenance task not found")
    return task


# ---------- assets ----------
@router.post("/assets", response_model=MaintenanceAssetResponse, status_code=201)
def create_asset(body: MaintenanceAssetCreate, db: Session = Depends(get_db)):
    asset = MaintenanceAsset(**body.model_dump())
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@router.get("/assets/{asset_id}", response_model=MaintenanceAssetResponse)
def get_asset(asset_id: int, db: Session = Depends(get_db)):
    asset = db.query(MaintenanceAsset).filter(MaintenanceAsset.id == asset_id).first()
    if not asset:
        raise HTTPException(status_code=404, detail="Asset not found")
    return asset
