"""
Session persistence and resume.

Draft saves submit the whole session (photos uploaded first) and keep
updating the same server-side execution once its id is known. Finalize is
gated on ``validate``. Every mutation marks the session dirty and restarts an
idle timer; when it fires a draft save is attempted. Auto-save failures are
logged and retried on the next cycle, never raised to the user.

Opening a checklist resumes the recorded draft for it when there is one, and
only falls back to a fresh session from the template when there is none or
it cannot be loaded.
"""
import json
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

import structlog

from ..config import settings
from .errors import ChecklistError, FinalizeRejected, PersistenceFailure, ResumeFailure, UploadFailure
from .gateways import CatalogGateway, ExecutionGateway, UploadGateway
from .serialization import session_from_execution, session_from_template, session_to_payload
from .session import ExecutionSession, MutationEvent
from .validation import validate

logger = structlog.get_logger(__name__)


class DraftIndex:
    """checklist id -> id of the draft execution being filled for it."""

    def get(self, checklist_id: int) -> Optional[int]:
        raise NotImplementedError

    def put(self, checklist_id: int, execution_id: int) -> None:
        raise NotImplementedError

    def discard(self, checklist_id: int) -> None:
        raise NotImplementedError


class InMemoryDraftIndex(DraftIndex):
    def __init__(self):
        self._drafts: Dict[int, int] = {}

    def get(self, checklist_id: int) -> Optional[int]:
        return self._drafts.get(checklist_id)

    def put(self, checklist_id: int, execution_id: int) -> None:
        self._drafts[checklist_id] = execution_id

    def discard(self, checklist_id: int) -> None:
        self._drafts.pop(checklist_id, None)


class FileDraftIndex(DraftIndex):
    """Draft ids kept in a small JSON file so they survive restarts."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.draft_index_path)
        self._lock = threading.Lock()

    def _load(self) -> Dict[str, int]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text(encoding="utf-8")) or {}
        except ValueError:
            logger.warning("draft_index_corrupt", path=str(self.path))
            return {}

    def _store(self, drafts: Dict[str, int]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(drafts, sort_keys=True), encoding="utf-8")

    def get(self, checklist_id: int) -> Optional[int]:
        with self._lock:
            return self._load().get(str(checklist_id))

    def put(self, checklist_id: int, execution_id: int) -> None:
        with self._lock:
            drafts = self._load()
            drafts[str(checklist_id)] = execution_id
            self._store(drafts)

    def discard(self, checklist_id: int) -> None:
        with self._lock:
            drafts = self._load()
            if drafts.pop(str(checklist_id), None) is not None:
                self._store(drafts)


class IdleTimer:
    """Fires ``callback`` once after ``delay`` seconds without a ``reset``."""

    def __init__(self, delay: float, callback: Callable[[], object]):
        self.delay = delay
        self.callback = callback
        self._timer: Optional[threading.Timer] = None

    def reset(self) -> None:
        self.cancel()
        self._timer = threading.Timer(self.delay, self.callback)
        self._timer.daemon = True
        self._timer.start()

    def cancel(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def pending(self) -> bool:
        return self._timer is not None and self._timer.is_alive()


@dataclass
class SaveResult:
    execution_id: Optional[int]
    finalized: bool
    saved_at: datetime
    warnings: List[str] = field(default_factory=list)
    message: Optional[str] = None


class PersistenceController:
    def __init__(
        self,
        catalog: CatalogGateway,
        executions: ExecutionGateway,
        uploads: UploadGateway,
        draft_index: Optional[DraftIndex] = None,
        idle_seconds: Optional[float] = None,
        timer_factory: Callable[[float, Callable[[], object]], IdleTimer] = IdleTimer,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.catalog = catalog
        self.executions = executions
        self.uploads = uploads
        self.draft_index = draft_index if draft_index is not None else InMemoryDraftIndex()
        self.clock = clock
        delay = settings.autosave_idle_seconds if idle_seconds is None else idle_seconds
        self._timer = timer_factory(delay, self.autosave)
        self._lock = threading.RLock()
        self.session: Optional[ExecutionSession] = None
        self.dirty = False
        self.last_saved_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    # ---------- session lifecycle ----------
    def open_session(self, checklist_id: int) -> ExecutionSession:
        """Resume the recorded draft for ``checklist_id`` or start from its template."""
        try:
            template = self.catalog.get_checklist_template(checklist_id)
        except ChecklistError as exc:
            logger.warning("template_fetch_failed", checklist_id=checklist_id, error=str(exc))
            template = None

        session = self._resume(checklist_id, template)
        if session is None:
            if template is None:
                raise ResumeFailure(None, f"checklist {checklist_id} template is unavailable")
            session = session_from_template(checklist_id, template)
            logger.info("session_started", checklist_id=checklist_id, items=len(session.items))
        self.attach(session)
        return session

    def _draft_id_for(self, checklist_id: int) -> Optional[int]:
        execution_id = self.draft_index.get(checklist_id)
        if execution_id is not None:
            return execution_id
        try:
            return self.catalog.get_in_progress_execution_id(checklist_id)
        except ChecklistError as exc:
            logger.warning("in_progress_lookup_failed", checklist_id=checklist_id, error=str(exc))
            return None

    def _resume(self, checklist_id: int, template: Optional[dict]) -> Optional[ExecutionSession]:
        execution_id = self._draft_id_for(checklist_id)
        if execution_id is None:
            return None
        try:
            record = self.executions.get_execution(execution_id)
        except ResumeFailure as exc:
            logger.warning("draft_resume_failed", checklist_id=checklist_id, execution_id=execution_id, error=exc.reason)
            self.draft_index.discard(checklist_id)
            return None
        if record.get("status") == "COMPLETED":
            self.draft_index.discard(checklist_id)
            return None
        try:
            session = session_from_execution(record, template)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("draft_resume_failed", checklist_id=checklist_id, execution_id=execution_id, error=f"unreadable draft: {exc}")
            self.draft_index.discard(checklist_id)
            return None
        if session.checklist_id is None:
            session.checklist_id = checklist_id
        session.draft_execution_id = execution_id
        self.draft_index.put(checklist_id, execution_id)
        logger.info("session_resumed", checklist_id=checklist_id, execution_id=execution_id, items=len(session.items))
        return session

    def attach(self, session: ExecutionSession) -> None:
        if self.session is not None and self.session is not session:
            self.session.unsubscribe(self._on_mutation)
        self.session = session
        self.dirty = False
        session.subscribe(self._on_mutation)

    def _on_mutation(self, event: MutationEvent) -> None:
        self.dirty = True
        self._timer.reset()

    def close(self) -> None:
        """Leave the session: one best-effort draft save, then drop it."""
        session = self.session
        if session is None:
            return
        self._timer.cancel()
        if self.dirty and not session.finalized:
            try:
                self._submit(session, finalize=False)
            except ChecklistError as exc:
                self.last_error = str(exc)
                logger.warning("close_save_failed", checklist_id=session.checklist_id, error=str(exc))
        session.unsubscribe(self._on_mutation)
        self.session = None
        self.dirty = False

    def reset_session(self) -> ExecutionSession:
        """Discard local progress and start over from the template.

        The draft id is kept so the next save overwrites the same server record.
        """
        session = self._require_session()
        self._timer.cancel()
        template = self.catalog.get_checklist_template(session.checklist_id)
        fresh = session_from_template(session.checklist_id, template)
        if not session.finalized:
            fresh.draft_execution_id = session.draft_execution_id
        self.attach(fresh)
        if fresh.draft_execution_id is not None:
            self.dirty = True
            self._timer.reset()
        logger.info("session_reset", checklist_id=fresh.checklist_id)
        return fresh

    # ---------- saving ----------
    def _require_session(self) -> ExecutionSession:
        if self.session is None:
            raise PersistenceFailure("No execution session is open")
        return self.session

    def _upload_pending(self, session: ExecutionSession, payload: dict, pending) -> List[str]:
        warnings = []
        by_id = {entry["id"]: entry for entry in payload["items"]}
        context = {"checklist_id": session.checklist_id, "execution_id": session.draft_execution_id}
        for item_id, photo in pending:
            try:
                url = self.uploads.upload(photo, dict(context, item_id=item_id))
            except UploadFailure as exc:
                warnings.append(str(exc))
                logger.warning("photo_upload_failed", item_id=item_id, photo=photo.name, error=exc.reason)
                continue
            photo.url = url
            photo.content = None
            by_id[item_id]["photo_urls"].append(url)
        return warnings

    def _submit(self, session: ExecutionSession, finalize: bool) -> SaveResult:
        with self._lock:
            revision = session.revision
            payload = session_to_payload(session, finalize=finalize)
            pending = [(item.id, photo) for item in session.items for photo in item.photos if not photo.uploaded]
            warnings = self._upload_pending(session, payload, pending)

            response = self.executions.save_execution(payload)
            if not response.get("success", False):
                raise PersistenceFailure(response.get("message") or "The execution was not saved")
            execution_id = response.get("execution_id")
            if execution_id is None:
                raise PersistenceFailure("The execution API did not return an execution id")

            if not finalize:
                if session.draft_execution_id is None:
                    session.draft_execution_id = execution_id
                self.draft_index.put(session.checklist_id, session.draft_execution_id)
            self.last_saved_at = self.clock()
            self.last_error = None
            # a mutation that arrived mid-save stays dirty for the next cycle
            self.dirty = session.revision != revision
            return SaveResult(
                execution_id=execution_id,
                finalized=finalize,
                saved_at=self.last_saved_at,
                warnings=warnings,
                message=response.get("message"),
            )

    def save_draft(self) -> SaveResult:
        session = self._require_session()
        session.ensure_editable()
        result = self._submit(session, finalize=False)
        logger.info("draft_saved", checklist_id=session.checklist_id, execution_id=result.execution_id)
        return result

    def autosave(self) -> Optional[SaveResult]:
        session = self.session
        if session is None or session.finalized or not self.dirty:
            return None
        try:
            result = self._submit(session, finalize=False)
        except ChecklistError as exc:
            self.last_error = str(exc)
            logger.warning("autosave_failed", checklist_id=session.checklist_id, error=str(exc))
            return None
        logger.info("autosaved", checklist_id=session.checklist_id, execution_id=result.execution_id)
        return result

    def finalize(self, signature_min_length: Optional[int] = None) -> SaveResult:
        session = self._require_session()
        session.ensure_editable()
        deficiencies = validate(session, signature_min_length)
        if deficiencies:
            raise FinalizeRejected(deficiencies)
        self._timer.cancel()
        try:
            result = self._submit(session, finalize=True)
        except ChecklistError as exc:
            logger.error("finalize_failed", checklist_id=session.checklist_id, error=str(exc))
            raise
        session.finalized = True
        self.dirty = False
        self.draft_index.discard(session.checklist_id)
        logger.info("execution_finalized", checklist_id=session.checklist_id, execution_id=result.execution_id)
        return result
