from typing import Any, Dict, List, Optional

from .session import Employee, PhotoRef


class CatalogGateway:
    def get_checklist_template(self, checklist_id: int) -> Dict[str, Any]:
        raise NotImplementedError

    def get_in_progress_execution_id(self, checklist_id: int) -> Optional[int]:
        raise NotImplementedError


class EmployeeDirectory:
    def list_assignable_employees(self, company_id: int, categories: Optional[List[str]] = None) -> List[Employee]:
        raise NotImplementedError


class UploadGateway:
    def upload(self, photo: PhotoRef, context: Dict[str, Any]) -> str:
        """Store the photo and return its URL; raises ``UploadFailure``."""
        raise NotImplementedError


class ExecutionGateway:
    def save_execution(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Returns ``{"execution_id": ..., "success": ...}``; raises ``PersistenceFailure``."""
        raise NotImplementedError

    def get_execution(self, execution_id: int) -> Dict[str, Any]:
        """Returns the stored execution record; raises ``ResumeFailure``."""
        raise NotImplementedError
