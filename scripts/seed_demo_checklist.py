"""
Seed the local database with a demo plant: assignable employees, one vehicle,
its maintenance tasks and a monthly checklist grouping them.

Usage:
  python scripts/seed_demo_checklist.py

This script is idempotent: running it multiple times will upsert the same
records based on their names/titles.
"""

from datetime import date, timedelta

from checklist_exec.config import settings
from checklist_exec.db import SessionLocal, Base, engine
from checklist_exec.models.models import (
    Employee,
    MaintenanceAsset,
    MaintenanceChecklist,
    MaintenanceTask,
)


def ensure_employee(session, name: str, category: str) -> Employee:
    employee = (
        session.query(Employee)
        .filter(Employee.name == name, Employee.company_id == settings.default_company_id)
        .first()
    )
    if not employee:
        employee = Employee(name=name, company_id=settings.default_company_id, category=category)
        session.add(employee)
        session.flush()
    return employee


def ensure_asset(session, name: str, **fields) -> MaintenanceAsset:
    asset = session.query(MaintenanceAsset).filter(MaintenanceAsset.name == name).first()
    if not asset:
        asset = MaintenanceAsset(name=name, company_id=settings.default_company_id, **fields)
        session.add(asset)
        session.flush()
    return asset


def ensure_task(session, title: str, asset_id=None, estimated_minutes: int = 30, due_in_days: int = 7) -> MaintenanceTask:
    task = session.query(MaintenanceTask).filter(MaintenanceTask.title == title).first()
    if not task:
        task = MaintenanceTask(
            title=title,
            company_id=settings.default_company_id,
            sector_id=settings.default_sector_id,
            asset_id=asset_id,
            estimated_minutes=estimated_minutes,
            next_maintenance_date=date.today() + timedelta(days=due_in_days),
            status="SCHEDULED",
            maintenance_count=0,
            execution_history=[],
        )
        session.add(task)
        session.flush()
    return task


def main() -> None:
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        for name, category in [
            ("Ana Gómez", "mantenimiento"),
            ("Pedro Sosa", "mantenimiento"),
            ("Luis Pardo", "produccion"),
            ("Marta Díaz", "produccion"),
        ]:
            ensure_employee(session, name, category)

        truck = ensure_asset(session, "Camioneta Hilux AB123CD", asset_type="vehicle", odometer_current=125000)
        oil = ensure_task(session, "Cambio de aceite y filtro", asset_id=truck.id, estimated_minutes=45)
        brakes = ensure_task(session, "Revisión de frenos", asset_id=truck.id, estimated_minutes=60, due_in_days=3)
        compressor = ensure_task(session, "Purga de compresor", estimated_minutes=15, due_in_days=1)

        title = "Preventivo mensual flota y planta"
        checklist = session.query(MaintenanceChecklist).filter(MaintenanceChecklist.title == title).first()
        if not checklist:
            checklist = MaintenanceChecklist(title=title, company_id=settings.default_company_id)
            session.add(checklist)
        checklist.sector_id = settings.default_sector_id
        checklist.frequency = "MONTHLY"
        checklist.phases = [
            {"name": "Flota", "items": [
                {"maintenance_id": oil.id, "title": oil.title, "asset_id": truck.id, "meter_unit": "km"},
                {"maintenance_id": brakes.id, "title": brakes.title, "asset_id": truck.id, "meter_unit": "km"},
            ]},
            {"name": "Planta", "items": [
                {"maintenance_id": compressor.id, "title": compressor.title},
            ]},
        ]
        checklist.items = []
        checklist.instructives = []

        session.commit()
        print(f"Seed completed: checklist {checklist.id} with 3 tasks.")
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


if __name__ == "__main__":
    main()
