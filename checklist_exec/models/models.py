import uuid
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Boolean,
    ForeignKey,
    Integer,
    Float,
    JSON,
    BigInteger,
    Text,
    Index,
    Uuid,
)
from sqlalchemy.orm import relationship, Mapped, mapped_column

from ..db import Base


def uuid_pk() -> Mapped[uuid.UUID]:
    return mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)


class FileObject(Base):
    __tablename__ = "file_objects"

    id: Mapped[uuid.UUID] = uuid_pk()
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    container: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(1024), nullable=False, index=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger)
    content_type: Mapped[Optional[str]] = mapped_column(String(255))
    checksum_sha256: Mapped[Optional[str]] = mapped_column(String(128))
    checklist_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    source_ref: Mapped[Optional[str]] = mapped_column(String(255))  # e.g. "item-3" within an execution
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class Employee(Base):
    """People that can be assigned as executor or supervisor"""
    __tablename__ = "employees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(100), index=True)  # mantenimiento|produccion|...
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)


class MaintenanceAsset(Base):
    """Mobile units and machines whose meters are updated from executions"""
    __tablename__ = "maintenance_assets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    asset_type: Mapped[str] = mapped_column(String(50), default="vehicle")  # vehicle|machine
    company_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    odometer_current: Mapped[Optional[int]] = mapped_column(Integer)  # kilometers
    hours_current: Mapped[Optional[float]] = mapped_column(Float)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class MaintenanceTask(Base):
    """Scheduled preventive maintenance task (catalog entry)"""
    __tablename__ = "maintenance_tasks"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    company_id: Mapped[Optional[int]] = mapped_column(Integer, index=True)
    sector_id: Mapped[Optional[int]] = mapped_column(Integer)
    asset_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey("maintenance_assets.id", ondelete="SET NULL"))
    status: Mapped[str] = mapped_column(String(50), default="SCHEDULED", index=True)  # SCHEDULED|COMPLETED
    estimated_minutes: Mapped[Optional[int]] = mapped_column(Integer)
    next_maintenance_date: Mapped[Optional[date]] = mapped_column(Date)
    last_maintenance_date: Mapped[Optional[date]] = mapped_column(Date)
    maintenance_count: Mapped[int] = mapped_column(Integer, default=0)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    last_execution: Mapped[Optional[dict]] = mapped_column(JSON)  # {executed_by, executors, supervisors, photo_urls, checklist_id, ...}
    execution_history: Mapped[Optional[list]] = mapped_column(JSON)  # newest first
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    asset = relationship("MaintenanceAsset")


class MaintenanceChecklist(Base):
    """Checklist template grouping maintenance tasks executed together"""
    __tablename__ = "maintenance_checklists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    frequency: Mapped[str] = mapped_column(String(50), default="MONTHLY")
    company_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    sector_id: Mapped[Optional[int]] = mapped_column(Integer)
    items: Mapped[Optional[list]] = mapped_column(JSON)  # [{maintenance_id, title, ...}]
    phases: Mapped[Optional[list]] = mapped_column(JSON)  # [{name, items: [...]}]
    instructives: Mapped[Optional[list]] = mapped_column(JSON)
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    execution_status: Mapped[str] = mapped_column(String(50), default="PENDING")  # PENDING|IN_PROGRESS|COMPLETED
    in_progress_execution_id: Mapped[Optional[int]] = mapped_column(Integer)
    last_execution_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    executions = relationship(
        "ChecklistExecution",
        back_populates="checklist",
        cascade="all, delete-orphan",
        order_by="ChecklistExecution.executed_at.desc()",
    )


class ChecklistExecution(Base):
    """One run of a checklist; IN_PROGRESS while it is a draft"""
    __tablename__ = "checklist_executions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    checklist_id: Mapped[int] = mapped_column(Integer, ForeignKey("maintenance_checklists.id", ondelete="CASCADE"), nullable=False)
    executed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    executed_by: Mapped[Optional[str]] = mapped_column(String(500))
    status: Mapped[str] = mapped_column(String(50), default="IN_PROGRESS")  # IN_PROGRESS|COMPLETED
    completed_items: Mapped[int] = mapped_column(Integer, default=0)
    rescheduled_items: Mapped[int] = mapped_column(Integer, default=0)
    total_items: Mapped[int] = mapped_column(Integer, default=0)
    execution_time: Mapped[Optional[int]] = mapped_column(Integer)  # estimated minutes
    company_id: Mapped[Optional[int]] = mapped_column(Integer)
    sector_id: Mapped[Optional[int]] = mapped_column(Integer)
    details: Mapped[Optional[dict]] = mapped_column(JSON)  # {items, responsibles, signatures, finalize}
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=datetime.utcnow)
    updated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    checklist = relationship("MaintenanceChecklist", back_populates="executions")

    __table_args__ = (
        Index("idx_checklist_execution_status", "checklist_id", "status"),
    )
