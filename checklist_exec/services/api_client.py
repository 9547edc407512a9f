"""
Checklist API client
httpx implementation of the catalog, employee directory, upload and
execution gateways used by the execution engine.
"""
from typing import Any, Dict, List, Optional

import httpx
import structlog

from ..config import settings
from ..engine.errors import PersistenceFailure, ResumeFailure, UploadFailure
from ..engine.gateways import CatalogGateway, EmployeeDirectory, ExecutionGateway, UploadGateway
from ..engine.session import Employee, PhotoRef

logger = structlog.get_logger(__name__)


def _error_detail(exc: httpx.HTTPError) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        try:
            detail = exc.response.json().get("detail")
        except ValueError:
            detail = None
        return f"HTTP {exc.response.status_code}: {detail or exc.response.text or exc.response.reason_phrase}"
    return str(exc) or exc.__class__.__name__


class ChecklistApiClient(CatalogGateway, EmployeeDirectory, UploadGateway, ExecutionGateway):
    """Client for the checklist execution HTTP API.

    ``client`` may be any ``httpx.Client`` (e.g. a ``TestClient`` mounted on
    the app); otherwise a client is opened per request against ``base_url``.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout or settings.api_timeout_s
        self._client = client

    def _request(self, method: str, endpoint: str, **kwargs) -> Any:
        """Make an HTTP request and return the decoded JSON body"""
        if self._client is not None:
            return self._decode(self._client.request(method, endpoint, **kwargs))
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        with httpx.Client(timeout=self.timeout) as client:
            return self._decode(client.request(method, url, **kwargs))

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        response.raise_for_status()
        try:
            return response.json()
        except ValueError as e:
            # proxies and error pages answer 200 with HTML
            raise httpx.DecodingError(
                f"Expected JSON from {response.request.url.path}, got {response.headers.get('content-type') or 'no content type'}",
                request=response.request,
            ) from e

    # ---------- catalog ----------
    def get_checklist_template(self, checklist_id: int) -> Dict[str, Any]:
        try:
            return self._request("GET", f"/maintenance/checklists/{checklist_id}")
        except httpx.HTTPError as e:
            raise PersistenceFailure(
                f"Checklist {checklist_id} could not be loaded: {_error_detail(e)}",
                status_code=getattr(getattr(e, "response", None), "status_code", None),
            ) from e

    def get_in_progress_execution_id(self, checklist_id: int) -> Optional[int]:
        return self.get_checklist_template(checklist_id).get("in_progress_execution_id")

    # ---------- employees ----------
    def list_assignable_employees(self, company_id: int, categories: Optional[List[str]] = None) -> List[Employee]:
        params: Dict[str, Any] = {"company_id": company_id}
        if categories:
            params["category"] = list(categories)
        try:
            rows = self._request("GET", "/employees", params=params)
        except httpx.HTTPError as e:
            raise PersistenceFailure(f"Employees could not be loaded: {_error_detail(e)}") from e
        return [Employee(name=row["name"], id=row.get("id")) for row in rows]

    # ---------- files ----------
    def upload(self, photo: PhotoRef, context: Dict[str, Any]) -> str:
        if not photo.content:
            raise UploadFailure(photo.name, "no content to upload")
        data = {"original_name": photo.name}
        if context.get("checklist_id") is not None:
            data["checklist_id"] = str(context["checklist_id"])
        if context.get("item_id"):
            data["item_id"] = str(context["item_id"])
        try:
            body = self._request(
                "POST",
                "/files/upload",
                data=data,
                files={"file": (photo.name, photo.content, photo.content_type)},
            )
        except httpx.HTTPError as e:
            raise UploadFailure(photo.name, _error_detail(e)) from e
        url = body.get("url")
        if not url:
            raise UploadFailure(photo.name, "the upload service returned no url")
        return url

    # ---------- executions ----------
    def save_execution(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._request("POST", "/maintenance/checklist-execution", json=payload)
        except httpx.HTTPStatusError as e:
            logger.warning("save_execution_rejected", status=e.response.status_code, checklist_id=payload.get("checklist_id"))
            raise PersistenceFailure(_error_detail(e), status_code=e.response.status_code) from e
        except httpx.HTTPError as e:
            raise PersistenceFailure(_error_detail(e)) from e

    def get_execution(self, execution_id: int) -> Dict[str, Any]:
        try:
            return self._request("GET", f"/maintenance/checklist-execution/{execution_id}")
        except httpx.HTTPError as e:
            raise ResumeFailure(execution_id, _error_detail(e)) from e
