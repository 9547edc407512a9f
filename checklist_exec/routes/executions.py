from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from ..db import get_db
from ..schemas.executions import ExecutionResponse, SaveExecutionRequest, SaveExecutionResponse
from ..services import execution_service
from ..services.execution_service import ChecklistNotFound, ExecutionConflict, ExecutionNotFound

router = APIRouter(prefix="/maintenance/checklist-execution", tags=["executions"])

@router.post("", response_model=SaveExecutionResponse)
def save_execution(body: SaveExecutionRequest, db: Session = Depends(get_db)):
    try:
        return execution_service.save_execution(db, body)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ChecklistNotFound, ExecutionNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ExecutionConflict as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("", response_model=List[ExecutionResponse])
def list_executions(checklist_id: int, company_id: Optional[int] = None, db: Session = Depends(get_db)):
    return execution_service.list_executions(db, checklist_id, company_id)


@router.get("/{execution_id}", response_model=ExecutionResponse)
def get_execution(execution_id: int, db: Session = Depends(get_db)):
    try:
        return execution_service.get_execution(db, execution_id)
    except ExecutionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
