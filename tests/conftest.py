import os
import tempfile
from pathlib import Path

_tmp = Path(tempfile.mkdtemp(prefix="checklist-exec-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_tmp / 'test.db'}"
os.environ["STORAGE_DIR"] = str(_tmp / "storage")
os.environ["DRAFT_INDEX_PATH"] = str(_tmp / "drafts.json")
os.environ["PUBLIC_BASE_URL"] = "http://testserver"
os.environ["RATE_LIMIT"] = "100000/minute"
os.environ["AUTO_CREATE_DB"] = "false"

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from checklist_exec.db import Base, get_db
from checklist_exec.engine.errors import PersistenceFailure, ResumeFailure, UploadFailure
from checklist_exec.engine.gateways import CatalogGateway, ExecutionGateway, UploadGateway
from checklist_exec.engine.persistence import InMemoryDraftIndex, PersistenceController
from checklist_exec.engine.serialization import session_from_template
from checklist_exec.main import app

engine = create_engine(os.environ["DATABASE_URL"], connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()


app.dependency_overrides[get_db] = override_get_db


@pytest.fixture
def db_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db_tables):
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db(db_tables):
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


# ---------- engine fakes ----------
TEMPLATE = {
    "id": 10,
    "title": "Preventivo mensual planta",
    "company_id": 1,
    "sector_id": 2,
    "instructives": [{"title": "Seguridad", "url": "https://docs.test/seguridad.pdf"}],
    "items": [
        {"maintenance_id": 101, "title": "Cambio de aceite", "asset_id": 7, "meter_unit": "km"},
        {"maintenanceId": "102", "title": "Revisión de frenos"},
        {"id": "item-x", "work_order_id": 103, "title": "Limpieza de filtros"},
    ],
}


class FakeCatalog(CatalogGateway):
    def __init__(self, templates=None, in_progress=None):
        self.templates = templates if templates is not None else {10: TEMPLATE}
        self.in_progress = in_progress or {}

    def get_checklist_template(self, checklist_id):
        if checklist_id not in self.templates:
            raise PersistenceFailure(f"Checklist {checklist_id} not found", status_code=404)
        return self.templates[checklist_id]

    def get_in_progress_execution_id(self, checklist_id):
        return self.in_progress.get(checklist_id)


class FakeExecutions(ExecutionGateway):
    """Keeps saved payloads keyed by execution id, starting at 777."""

    def __init__(self, first_id=777):
        self.next_id = first_id
        self.records = {}
        self.calls = []
        self.fail_with = None
        self.unreadable = set()

    def save_execution(self, payload):
        self.calls.append(payload)
        if self.fail_with is not None:
            raise self.fail_with
        execution_id = payload.get("execution_id")
        if execution_id is None:
            execution_id = self.next_id
            self.next_id += 1
        elif self.records.get(execution_id, {}).get("status") == "COMPLETED":
            raise PersistenceFailure("Execution is already finalized", status_code=409)
        self.records[execution_id] = {
            "id": execution_id,
            "checklist_id": payload["checklist_id"],
            "status": "COMPLETED" if payload["finalize"] else "IN_PROGRESS",
            "company_id": payload.get("company_id"),
            "sector_id": payload.get("sector_id"),
            "details": {
                "items": payload["items"],
                "responsibles": payload["responsibles"],
                "signatures": payload["signatures"],
            },
        }
        return {"success": True, "execution_id": execution_id, "message": "ok"}

    def get_execution(self, execution_id):
        if execution_id in self.unreadable or execution_id not in self.records:
            raise ResumeFailure(execution_id, "HTTP 404: not found")
        return self.records[execution_id]


class FakeUploads(UploadGateway):
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.uploaded = []

    def upload(self, photo, context):
        if photo.name in self.failing:
            raise UploadFailure(photo.name, "HTTP 500: storage unavailable")
        self.uploaded.append((photo.name, dict(context)))
        return f"https://files.test/{context.get('item_id')}/{photo.name}"


class ManualTimer:
    """Idle timer driven by the test instead of a thread."""

    def __init__(self, delay, callback):
        self.delay = delay
        self.callback = callback
        self.pending = False
        self.resets = 0

    def reset(self):
        self.pending = True
        self.resets += 1

    def cancel(self):
        self.pending = False

    def fire(self):
        self.pending = False
        return self.callback()


@pytest.fixture
def session():
    return session_from_template(10, TEMPLATE)


@pytest.fixture
def catalog():
    return FakeCatalog()


@pytest.fixture
def executions():
    return FakeExecutions()


@pytest.fixture
def uploads():
    return FakeUploads()


@pytest.fixture
def timers():
    return []


@pytest.fixture
def controller(catalog, executions, uploads, timers):
    def timer_factory(delay, callback):
        timer = ManualTimer(delay, callback)
        timers.append(timer)
        return timer

    return PersistenceController(
        catalog,
        executions,
        uploads,
        draft_index=InMemoryDraftIndex(),
        idle_seconds=5,
        timer_factory=timer_factory,
    )
