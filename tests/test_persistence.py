from datetime import date

import pytest

from checklist_exec.engine import (
    DateKind,
    Employee,
    FinalizeRejected,
    PersistenceFailure,
    PhotoRef,
    ResumeFailure,
    Role,
    SessionFinalized,
    add_photo,
    assign_role,
    set_date,
    set_general_responsibles,
    set_issues,
    set_notes,
    set_signature,
)
from checklist_exec.engine.persistence import FileDraftIndex
from checklist_exec.engine.validation import required_signers

VALID_SIGNATURE = "data:image/png;base64," + "B" * 200


def _fill(session):
    """Resolve every item and collect all signatures."""
    for item in session.items:
        assign_role(session, item.id, Role.executor, Employee("Ana"))
        assign_role(session, item.id, Role.supervisor, Employee("Luis"))
        set_date(session, item.id, DateKind.completed, date(2024, 3, 1))
        set_notes(session, item.id, "ok")
        set_issues(session, item.id, "Sin inconvenientes")
    for role, names in required_signers(session).items():
        for name in names:
            set_signature(session, role, name, VALID_SIGNATURE)


def test_open_without_draft_starts_from_template(controller):
    session = controller.open_session(10)
    assert [i.maintenance_ref for i in session.items] == [101, 102, 103]
    assert session.draft_execution_id is None
    assert controller.dirty is False


def test_open_unknown_checklist_without_draft_fails(controller):
    with pytest.raises(ResumeFailure):
        controller.open_session(99)


def test_mutation_marks_dirty_and_restarts_timer(controller, timers):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    set_notes(session, "item-2", "y")
    assert controller.dirty is True
    assert timers[0].pending is True
    assert timers[0].resets == 2


def test_draft_saves_are_idempotent(controller, executions):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    first = controller.save_draft()
    second = controller.save_draft()
    assert first.execution_id == second.execution_id == 777
    assert list(executions.records) == [777]
    assert executions.calls[0]["execution_id"] is None
    assert executions.calls[1]["execution_id"] == 777
    assert controller.draft_index.get(10) == 777
    assert controller.dirty is False
    assert controller.last_saved_at is not None


def test_idle_timer_saves_when_dirty(controller, executions, timers):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    result = timers[0].fire()
    assert result.execution_id == 777
    assert controller.dirty is False
    assert timers[0].fire() is None
    assert len(executions.calls) == 1


def test_autosave_failure_is_swallowed_and_retried(controller, executions, timers):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    executions.fail_with = PersistenceFailure("HTTP 503: unavailable", status_code=503)
    assert timers[0].fire() is None
    assert controller.dirty is True
    assert "503" in controller.last_error

    executions.fail_with = None
    set_notes(session, "item-1", "xy")
    assert timers[0].fire().execution_id == 777
    assert controller.last_error is None


def test_manual_draft_failure_is_raised_and_keeps_dirty(controller, executions):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    executions.fail_with = PersistenceFailure("HTTP 500: boom", status_code=500)
    with pytest.raises(PersistenceFailure):
        controller.save_draft()
    assert controller.dirty is True


def test_unsuccessful_response_is_a_failure(controller, executions):
    controller.open_session(10)
    executions.save_execution = lambda payload: {"success": False, "message": "rejected"}
    with pytest.raises(PersistenceFailure, match="rejected"):
        controller.save_draft()


def test_mutation_during_save_stays_dirty(controller, executions):
    session = controller.open_session(10)
    set_notes(session, "item-1", "before")
    original = executions.save_execution

    def save_while_user_types(payload):
        set_notes(session, "item-2", "typed mid-save")
        return original(payload)

    executions.save_execution = save_while_user_types
    controller.save_draft()
    assert controller.dirty is True
    saved = executions.records[777]["details"]["items"]
    assert saved[1]["notes"] is None


def test_photos_are_uploaded_first_and_failures_omitted(controller, executions, uploads):
    uploads.failing.add("borrosa.jpg")
    session = controller.open_session(10)
    add_photo(session, "item-1", PhotoRef(name="filtro.jpg", content=b"jpeg"))
    add_photo(session, "item-1", PhotoRef(name="borrosa.jpg", content=b"jpeg"))
    result = controller.save_draft()

    assert len(result.warnings) == 1
    assert "borrosa.jpg" in result.warnings[0]
    urls = executions.calls[0]["items"][0]["photo_urls"]
    assert urls == ["https://files.test/item-1/filtro.jpg"]
    photos = {p.name: p for p in session.item("item-1").photos}
    assert photos["filtro.jpg"].uploaded and photos["filtro.jpg"].content is None
    assert not photos["borrosa.jpg"].uploaded

    uploads.failing.clear()
    controller.save_draft()
    assert [name for name, _ in uploads.uploaded] == ["filtro.jpg", "borrosa.jpg"]
    assert len(executions.calls[1]["items"][0]["photo_urls"]) == 2


def test_finalize_is_gated_on_validation(controller, executions):
    session = controller.open_session(10)
    with pytest.raises(FinalizeRejected) as exc:
        controller.finalize()
    assert len(exc.value.deficiencies) >= 3
    assert executions.calls == []
    assert session.finalized is False


def test_finalize_locks_session_and_forgets_draft(controller, executions, timers):
    session = controller.open_session(10)
    set_notes(session, "item-1", "x")
    controller.save_draft()
    _fill(session)
    result = controller.finalize()

    assert result.finalized is True
    assert result.execution_id == 777
    assert executions.records[777]["status"] == "COMPLETED"
    assert executions.calls[-1]["finalize"] is True
    assert session.finalized is True
    assert controller.draft_index.get(10) is None
    assert timers[0].pending is False
    with pytest.raises(SessionFinalized):
        set_notes(session, "item-1", "late edit")


def test_failed_finalize_leaves_session_editable(controller, executions):
    session = controller.open_session(10)
    _fill(session)
    executions.fail_with = PersistenceFailure("HTTP 502: bad gateway", status_code=502)
    with pytest.raises(PersistenceFailure):
        controller.finalize()
    assert session.finalized is False
    set_notes(session, "item-1", "retry")
    executions.fail_with = None
    assert controller.finalize().finalized is True


def test_resume_reproduces_last_saved_state(controller, catalog, executions, uploads):
    session = controller.open_session(10)
    set_general_responsibles(session, Role.supervisor, ["Marta"])
    assign_role(session, "item-1", Role.executor, Employee("Ana", id=3))
    assign_role(session, "item-1", Role.supervisor, Employee("Luis"))
    set_date(session, "item-1", DateKind.completed, date(2024, 3, 1))
    set_notes(session, "item-1", "Aceite 15W40")
    set_issues(session, "item-1", "Pérdida menor")
    assign_role(session, "item-2", Role.supervisor, Employee("Luis"))
    set_date(session, "item-2", DateKind.reschedule, date(2024, 4, 10))
    set_signature(session, Role.executor, "Ana", VALID_SIGNATURE)
    controller.save_draft()
    controller.close()

    resumed = controller.open_session(10)
    assert resumed is not session
    assert resumed.draft_execution_id == 777
    assert resumed.general_responsibles.supervisors == ["Marta"]
    for before, after in zip(session.items, resumed.items):
        assert after.id == before.id
        assert after.maintenance_ref == before.maintenance_ref
        assert after.executors == before.executors
        assert after.supervisors == before.supervisors
        assert after.completed_date == before.completed_date
        assert after.reschedule_date == before.reschedule_date
        assert after.notes == before.notes
        assert after.issues == before.issues
    assert resumed.signatures.executors["Ana"].payload == VALID_SIGNATURE
    assert resumed.registry.role_of("Luis") is Role.supervisor
    assert resumed.title == "Preventivo mensual planta"


def test_close_saves_pending_changes(controller, executions):
    session = controller.open_session(10)
    set_notes(session, "item-3", "cerrado a medias")
    controller.close()
    assert executions.records[777]["details"]["items"][2]["notes"] == "cerrado a medias"
    assert controller.session is None


def test_resume_uses_server_in_progress_id(controller, catalog, executions):
    executions.records[555] = {
        "id": 555,
        "checklist_id": 10,
        "status": "IN_PROGRESS",
        "details": {
            "items": [{"id": "item-1", "maintenance_id": 101, "title": "Cambio de aceite",
                       "completed_date": "01/03/2024", "executors": ["Ana"], "supervisors": [{"id": 2, "name": "Luis"}]}],
            "responsibles": {"executors": [], "supervisors": []},
            "signatures": [{"name": "Ana", "signature": VALID_SIGNATURE}],
        },
    }
    catalog.in_progress[10] = 555
    session = controller.open_session(10)
    assert session.draft_execution_id == 555
    item = session.item("item-1")
    assert item.completed_date == date(2024, 3, 1)
    assert item.supervisors == [Employee("Luis", id=2)]
    assert session.signatures.executors["Ana"].payload == VALID_SIGNATURE
    assert controller.draft_index.get(10) == 555


def test_unreadable_draft_falls_back_to_template(controller, executions):
    controller.draft_index.put(10, 404)
    session = controller.open_session(10)
    assert session.draft_execution_id is None
    assert len(session.items) == 3
    assert controller.draft_index.get(10) is None


@pytest.mark.parametrize("details", [
    {"items": [{"id": "item-1", "completed_date": "31/12"}]},
    {"items": [{"id": "item-1", "completed_date": "2024-13-45"}]},
    {"items": [{"id": "item-1"}], "signatures": {"executors": "Ana"}},
    {"items": "item-1"},
])
def test_corrupt_draft_record_falls_back_to_template(controller, catalog, executions, details):
    executions.records[556] = {"id": 556, "checklist_id": 10, "status": "IN_PROGRESS", "details": details}
    catalog.in_progress[10] = 556
    controller.draft_index.put(10, 556)

    session = controller.open_session(10)

    assert session.draft_execution_id is None
    assert [item.id for item in session.items] == ["item-1", "item-2", "item-3"]
    assert controller.draft_index.get(10) is None
    assert controller.session is session


def test_completed_draft_is_not_resumed(controller, executions):
    session = controller.open_session(10)
    _fill(session)
    controller.save_draft()
    executions.records[777]["status"] = "COMPLETED"
    controller.close()
    fresh = controller.open_session(10)
    assert fresh.draft_execution_id is None
    assert all(not item.resolved for item in fresh.items)


def test_reset_keeps_draft_id_and_overwrites(controller, executions, timers):
    session = controller.open_session(10)
    _fill(session)
    controller.save_draft()
    fresh = controller.reset_session()
    assert fresh is controller.session
    assert fresh.draft_execution_id == 777
    assert all(not item.resolved for item in fresh.items)
    assert controller.dirty is True
    timers[0].fire()
    assert list(executions.records) == [777]
    assert executions.records[777]["details"]["items"][0]["completed_date"] is None


def test_file_draft_index_survives_restarts(tmp_path):
    path = tmp_path / "drafts.json"
    FileDraftIndex(str(path)).put(10, 777)
    index = FileDraftIndex(str(path))
    assert index.get(10) == 777
    index.discard(10)
    assert FileDraftIndex(str(path)).get(10) is None


def test_corrupt_draft_index_reads_as_empty(tmp_path):
    path = tmp_path / "drafts.json"
    path.write_text("{not json", encoding="utf-8")
    assert FileDraftIndex(str(path)).get(10) is None
