from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator

from ..engine.serialization import parse_date


class EmployeeRef(BaseModel):
    id: Optional[int] = None
    name: str


class ExecutionItemPayload(BaseModel):
    id: Optional[str] = None
    maintenance_id: Optional[int] = None
    title: Optional[str] = None
    completed_date: Optional[date] = None
    reschedule_date: Optional[date] = None
    notes: Optional[str] = None
    issues: Optional[str] = None
    meter_reading: Optional[float] = None
    meter_unit: Optional[str] = None  # km|hours
    asset_id: Optional[int] = None
    executors: List[Union[EmployeeRef, str]] = Field(default_factory=list)
    supervisors: List[Union[EmployeeRef, str]] = Field(default_factory=list)
    photo_urls: List[str] = Field(default_factory=list)

    @field_validator("completed_date", "reschedule_date", mode="before")
    @classmethod
    def _parse_dates(cls, value):
        return parse_date(value)

    def names(self, role: str) -> List[str]:
        out = []
        for entry in getattr(self, role):
            name = entry.name if isinstance(entry, EmployeeRef) else entry
            name = " ".join((name or "").split())
            if name and name not in out:
                out.append(name)
        return out


class Responsibles(BaseModel):
    executors: List[str] = Field(default_factory=list)
    supervisors: List[str] = Field(default_factory=list)


class SignaturesPayload(BaseModel):
    executors: Dict[str, str] = Field(default_factory=dict)
    supervisors: Dict[str, str] = Field(default_factory=dict)


class SaveExecutionRequest(BaseModel):
    checklist_id: Union[int, str]
    execution_id: Optional[Union[int, str]] = None
    company_id: Optional[int] = None
    sector_id: Optional[int] = None
    executed_by_name: Optional[str] = None
    finalize: bool = False
    items: List[ExecutionItemPayload]
    responsibles: Responsibles = Field(default_factory=Responsibles)
    signatures: SignaturesPayload = Field(default_factory=SignaturesPayload)


class ProcessedMaintenance(BaseModel):
    maintenance_id: Optional[int]
    was_completed: bool
    was_rescheduled: bool
    new_status: str  # COMPLETED|SCHEDULED|PENDING


class ExecutionCounts(BaseModel):
    completed_count: int
    rescheduled_count: int
    total_items: int
    finalized: bool


class SaveExecutionResponse(BaseModel):
    success: bool
    execution_id: int
    message: str
    processed: List[ProcessedMaintenance]
    details: ExecutionCounts


class ExecutionResponse(BaseModel):
    id: int
    checklist_id: int
    status: str
    executed_at: datetime
    executed_by: Optional[str] = None
    completed_items: int
    rescheduled_items: int
    total_items: int
    execution_time: Optional[int] = None
    company_id: Optional[int] = None
    sector_id: Optional[int] = None
    details: Optional[Dict[str, Any]] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
