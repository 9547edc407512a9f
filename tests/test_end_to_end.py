"""Engine driven through the HTTP gateway client against the running app."""
from datetime import date

import httpx
import pytest

from checklist_exec.engine import (
    DateKind,
    Employee,
    PersistenceController,
    PhotoRef,
    ResumeFailure,
    Role,
    add_photo,
    assign_role,
    set_date,
    set_general_responsibles,
    set_issues,
    set_notes,
    set_signature,
)
from checklist_exec.engine.errors import PersistenceFailure, UploadFailure
from checklist_exec.engine.persistence import InMemoryDraftIndex
from checklist_exec.engine.validation import required_signers
from checklist_exec.services.api_client import ChecklistApiClient

SIGNATURE = "data:image/png;base64," + "D" * 200


class NoTimer:
    def __init__(self, delay, callback):
        pass

    def reset(self):
        pass

    def cancel(self):
        pass


@pytest.fixture
def api(client):
    return ChecklistApiClient(client=client)


@pytest.fixture
def checklist(client):
    task_ids = []
    for title in ("Cambio de aceite", "Limpieza de filtros"):
        task_ids.append(client.post("/maintenance/tasks", json={"title": title, "company_id": 1}).json()["id"])
    return client.post("/maintenance/checklists", json={
        "title": "Compresores",
        "company_id": 1,
        "items": [{"maintenance_id": task_id, "title": f"Tarea {task_id}"} for task_id in task_ids],
    }).json()


def _controller(api, draft_index=None):
    return PersistenceController(api, api, api, draft_index=draft_index or InMemoryDraftIndex(), timer_factory=NoTimer)


def test_employee_directory(client, api):
    client.post("/employees", json={"name": "Ana", "company_id": 1, "category": "mantenimiento"})
    client.post("/employees", json={"name": "Luis", "company_id": 1, "category": "produccion"})
    assert [e.name for e in api.list_assignable_employees(1, ["mantenimiento"])] == ["Ana"]
    assert [e.name for e in api.list_assignable_employees(1)] == ["Ana", "Luis"]


def test_draft_resume_and_finalize(client, api, checklist):
    controller = _controller(api)
    session = controller.open_session(checklist["id"])
    assert len(session.items) == 2

    set_general_responsibles(session, Role.supervisor, ["Luis"])
    assign_role(session, "item-1", Role.executor, Employee("Ana"))
    assign_role(session, "item-1", Role.supervisor, Employee("Luis"))
    set_date(session, "item-1", DateKind.completed, date(2024, 3, 1))
    add_photo(session, "item-1", PhotoRef(name="compresor.jpg", content=b"\xff\xd8jpeg"))
    first = controller.save_draft()
    assert first.warnings == []
    assert controller.save_draft().execution_id == first.execution_id
    controller.close()

    # a new controller with no local draft index finds the draft through the checklist
    other = _controller(api)
    resumed = other.open_session(checklist["id"])
    assert resumed.draft_execution_id == first.execution_id
    photo_url = resumed.item("item-1").photos[0].url
    assert client.get(photo_url).content == b"\xff\xd8jpeg"

    for item in resumed.items:
        set_notes(resumed, item.id, "ok")
        set_issues(resumed, item.id, "Sin inconvenientes")
    assign_role(resumed, "item-2", Role.supervisor, Employee("Luis"))
    set_date(resumed, "item-2", DateKind.reschedule, date(2024, 4, 10))
    for role, names in required_signers(resumed).items():
        for name in names:
            set_signature(resumed, role, name, SIGNATURE)

    result = other.finalize()
    assert result.execution_id == first.execution_id
    record = api.get_execution(first.execution_id)
    assert record["status"] == "COMPLETED"
    assert len(api.get_checklist_template(checklist["id"])["items"]) == 2
    assert api.get_in_progress_execution_id(checklist["id"]) is None


def test_resubmitting_a_finalized_execution_is_a_conflict(api, checklist):
    payload = {"checklist_id": checklist["id"], "finalize": True, "items": []}
    execution_id = api.save_execution(payload)["execution_id"]
    with pytest.raises(PersistenceFailure) as exc:
        api.save_execution(dict(payload, execution_id=execution_id))
    assert exc.value.status_code == 409


def test_errors_are_wrapped(api):
    with pytest.raises(ResumeFailure):
        api.get_execution(12345)
    with pytest.raises(PersistenceFailure):
        api.get_checklist_template(12345)
    with pytest.raises(UploadFailure):
        api.upload(PhotoRef(name="vacia.jpg", url=None), {"item_id": "item-1"})


@pytest.fixture
def html_proxy_api():
    """Upstream that serves the catalog but answers saves with a 200 HTML page."""
    template = {
        "id": 5,
        "title": "Prensa",
        "items": [{"maintenance_id": 1, "title": "Engrase"}],
        "in_progress_execution_id": None,
    }

    def handler(request):
        if request.method == "GET" and request.url.path == "/maintenance/checklists/5":
            return httpx.Response(200, json=template)
        return httpx.Response(200, text="<html>proxy</html>", headers={"content-type": "text/html"})

    with httpx.Client(transport=httpx.MockTransport(handler), base_url="http://upstream.test") as http:
        yield ChecklistApiClient(client=http)


def test_non_json_reply_is_wrapped(html_proxy_api):
    with pytest.raises(PersistenceFailure):
        html_proxy_api.save_execution({"checklist_id": 5, "items": []})
    with pytest.raises(ResumeFailure):
        html_proxy_api.get_execution(9)


def test_autosave_and_close_tolerate_a_non_json_reply(html_proxy_api):
    controller = _controller(html_proxy_api)
    session = controller.open_session(5)
    assign_role(session, "item-1", Role.executor, Employee("Ana"))

    assert controller.autosave() is None
    assert controller.dirty is True
    assert "Expected JSON" in controller.last_error

    controller.close()
    assert controller.session is None
