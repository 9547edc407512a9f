from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ..config import settings
from ..db import get_db
from ..models.models import Employee
from ..schemas.catalog import EmployeeCreate, EmployeeResponse


router = APIRouter(prefix="/employees", tags=["employees"])


def _allowed_categories(requested: Optional[List[str]]) -> List[str]:
    allowed = [c.lower() for c in settings.assignable_employee_categories]
    if not requested:
        return allowed
    return [c.lower() for c in requested if c and c.lower() in allowed]


@router.get("", response_model=List[EmployeeResponse])
def list_employees(
    company_id: int,
    category: Optional[List[str]] = Query(None),
    db: Session = Depends(get_db),
):
    categories = _allowed_categories(category)
    if not categories:
        return []
    return (
        db.query(Employee)
        .filter(Employee.company_id == company_id)
        .filter(Employee.active.is_(True))
        .filter(Employee.category.in_(categories))
        .order_by(Employee.name.asc())
        .all()
    )


@router.post("", response_model=EmployeeResponse, status_code=201)
def create_employee(body: EmployeeCreate, db: Session = Depends(get_db)):
    employee = Employee(
        name=" ".join(body.name.split()),
        company_id=body.company_id,
        category=(body.category or "").lower() or None,
    )
    db.add(employee)
    db.commit()
    db.refresh(employee)
    return employee
