from datetime import date, datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from pydantic import BaseModel, Field


class ChecklistFrequency(str, Enum):
    daily = "DAILY"
    weekly = "WEEKLY"
    biweekly = "BIWEEKLY"
    monthly = "MONTHLY"
    quarterly = "QUARTERLY"
    yearly = "YEARLY"


class MeterUnit(str, Enum):
    km = "km"
    hours = "hours"


# Checklist template schemas
class ChecklistItemTemplate(BaseModel):
    maintenance_id: Optional[int] = None
    alternate_id: Optional[int] = None
    work_order_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    estimated_minutes: Optional[int] = None
    asset_id: Optional[int] = None
    meter_unit: Optional[MeterUnit] = None


class ChecklistPhaseTemplate(BaseModel):
    name: str
    items: List[ChecklistItemTemplate] = Field(default_factory=list)


class ChecklistCreate(BaseModel):
    title: str
    description: Optional[str] = None
    frequency: ChecklistFrequency = ChecklistFrequency.monthly
    company_id: int
    sector_id: Optional[int] = None
    items: List[ChecklistItemTemplate] = Field(default_factory=list)
    phases: List[ChecklistPhaseTemplate] = Field(default_factory=list)
    instructives: List[Dict[str, Any]] = Field(default_factory=list)


class ChecklistTemplateResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    frequency: str
    company_id: int
    sector_id: Optional[int] = None
    items: List[Dict[str, Any]] = Field(default_factory=list)
    phases: List[Dict[str, Any]] = Field(default_factory=list)
    instructives: List[Dict[str, Any]] = Field(default_factory=list)
    is_completed: bool = False
    execution_status: str
    in_progress_execution_id: Optional[int] = None
    last_execution_date: Optional[datetime] = None


# Maintenance task schemas
class MaintenanceTaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    company_id: Optional[int] = None
    sector_id: Optional[int] = None
    asset_id: Optional[int] = None
    estimated_minutes: Optional[int] = None
    next_maintenance_date: Optional[date] = None


class MaintenanceTaskResponse(BaseModel):
    id: int
    title: str
    description: Optional[str] = None
    company_id: Optional[int] = None
    sector_id: Optional[int] = None
    asset_id: Optional[int] = None
    status: str
    estimated_minutes: Optional[int] = None
    next_maintenance_date: Optional[date] = None
    last_maintenance_date: Optional[date] = None
    maintenance_count: int = 0
    notes: Optional[str] = None
    last_execution: Optional[Dict[str, Any]] = None
    execution_history: Optional[List[Dict[str, Any]]] = None

    class Config:
        from_attributes = True


class MaintenanceAssetCreate(BaseModel):
    name: str
    asset_type: str = "vehicle"
    company_id: Optional[int] = None
    odometer_current: Optional[int] = None
    hours_current: Optional[float] = None


class MaintenanceAssetResponse(MaintenanceAssetCreate):
    id: int

    class Config:
        from_attributes = True


# Employee schemas
class EmployeeCreate(BaseModel):
    name: str
    company_id: int
    category: Optional[str] = None


class EmployeeResponse(BaseModel):
    id: int
    name: str
    company_id: int
    category: Optional[str] = None

    class Config:
        from_attributes = True
