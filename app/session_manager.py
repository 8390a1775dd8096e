import asyncio
import logging
import uuid
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple

from app.errors import ConflictError, NotFoundError, PlanStudioError
from app.models import PlanView, SessionView, TestPlan
from app.quality import evaluate, needs_improvement
from app.services.document_loader import read_documents
from app.services.reconciler import active_cases, reconcile, summarize

logger = logging.getLogger("app.sessions")

# idle -> parsing -> generating -> success | error; success <-> improving
TRANSITIONS: Dict[str, Set[str]] = {
    "idle": {"parsing"},
    "parsing": {"generating", "error"},
    "generating": {"success", "error"},
    "success": {"improving", "idle"},
    "improving": {"improving", "success"},
    "error": {"idle"},
}


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class SessionEvent:
    type: str
    message: str
    timestamp: str = field(default_factory=now_iso)


@dataclass
class SessionRecord:
    id: str
    status: str = "idle"
    project_name: str = ""
    qa_analyst_name: str = ""
    file_names: List[str] = field(default_factory=list)
    source_text: Optional[str] = None
    plans: List[TestPlan] = field(default_factory=list)
    improving_plan_ids: Set[str] = field(default_factory=set)
    just_improved_plan_id: Optional[str] = None
    error: Optional[str] = None
    created_at: str = field(default_factory=now_iso)
    updated_at: str = field(default_factory=now_iso)
    events: List[SessionEvent] = field(default_factory=list)

    def find_plan(self, identifier: str) -> Optional[TestPlan]:
        return next((p for p in self.plans if p.identifier == identifier), None)

    def to_view(self) -> SessionView:
        return SessionView(
            id=self.id,
            status=self.status,
            file_names=list(self.file_names),
            project_name=self.project_name,
            qa_analyst_name=self.qa_analyst_name,
            plans=[
                PlanView(
                    plan=plan,
                    needs_improvement=needs_improvement(plan.quality_report),
                    summary=summarize(plan),
                    metrics=evaluate(plan.quality_report),
                )
                for plan in self.plans
            ],
            improving_plan_ids=sorted(self.improving_plan_ids),
            just_improved_plan_id=self.just_improved_plan_id,
            error=self.error,
            created_at=self.created_at,
            updated_at=self.updated_at,
            events=[asdict(ev) for ev in self.events],
        )


class SessionManager:
    """In-memory upload sessions.

    The lock guards state only and is never held across a gateway call, so
    improvements of different plans in one session run concurrently.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, SessionRecord] = {}
        self._lock = asyncio.Lock()

    def _require(self, session_id: str) -> SessionRecord:
        record = self._sessions.get(session_id)
        if not record:
            raise NotFoundError("session not found", session_id=session_id)
        return record

    @staticmethod
    def _transition(record: SessionRecord, status: str) -> None:
        if status not in TRANSITIONS[record.status]:
            raise ConflictError(
                f"cannot move from {record.status} to {status}",
                session_id=record.id,
                status=record.status,
            )
        record.status = status
        record.updated_at = now_iso()
        record.events.append(SessionEvent(type="status", message=status))

    @staticmethod
    def _clear(record: SessionRecord) -> None:
        record.file_names = []
        record.source_text = None
        record.plans = []
        record.improving_plan_ids = set()
        record.just_improved_plan_id = None
        record.error = None

    async def create_session(self, project_name: str = "", qa_analyst_name: str = "") -> SessionRecord:
        record = SessionRecord(
            id=str(uuid.uuid4()),
            project_name=project_name,
            qa_analyst_name=qa_analyst_name,
        )
        async with self._lock:
            self._sessions[record.id] = record
        logger.info("Created session %s", record.id)
        return record

    async def get_session(self, session_id: str) -> SessionRecord:
        async with self._lock:
            return self._require(session_id)

    async def list_sessions(self) -> List[Dict[str, Any]]:
        async with self._lock:
            return [r.to_view().to_wire() for r in self._sessions.values()]

    async def reset(self, session_id: str) -> SessionRecord:
        async with self._lock:
            record = self._require(session_id)
            if record.improving_plan_ids or record.status in {"parsing", "generating"}:
                raise ConflictError("an operation is in flight", session_id=session_id, status=record.status)
            self._clear(record)
            if record.status != "idle":
                self._transition(record, "idle")
            return record

    async def generate(
        self,
        session_id: str,
        documents: List[Tuple[str, bytes]],
        gateway: Any,
        project_name: Optional[str] = None,
        qa_analyst_name: Optional[str] = None,
    ) -> SessionRecord:
        """Parse the uploads and replace the whole plan set; failures leave the session in `error`."""
        async with self._lock:
            record = self._require(session_id)
            if record.status in {"success", "error"} and not record.improving_plan_ids:
                # A fresh upload starts over.
                self._clear(record)
                self._transition(record, "idle")
            self._transition(record, "parsing")
            if project_name is not None:
                record.project_name = project_name
            if qa_analyst_name is not None:
                record.qa_analyst_name = qa_analyst_name
            record.file_names = [name for name, _ in documents]

        plans = None
        message = "Could not generate the test plans."
        try:
            text = read_documents(documents)
            async with self._lock:
                record.source_text = text
                self._transition(record, "generating")
            plans = await gateway.generate(text, record.qa_analyst_name, record.project_name)
        except PlanStudioError as exc:
            message = exc.message
            logger.warning("Session %s failed: %s", session_id, exc.to_dict())
            raise
        except Exception:
            logger.exception("Session %s failed unexpectedly", session_id)
            raise
        finally:
            if plans is None:
                async with self._lock:
                    self._record_failure(record, message)
                    self._transition(record, "error")

        async with self._lock:
            record.plans = list(plans)
            self._transition(record, "success")
        logger.info("Session %s generated %s plan(s)", session_id, len(plans))
        return record

    async def improve(self, session_id: str, identifier: str, gateway: Any) -> SessionRecord:
        """Improve one plan and swap in its reconciled version; on failure the plan set is untouched."""
        async with self._lock:
            record = self._require(session_id)
            if record.status not in {"success", "improving"}:
                raise ConflictError("no plans to improve", session_id=session_id, status=record.status)
            if identifier in record.improving_plan_ids:
                raise ConflictError("plan is already being improved", session_id=session_id, plan=identifier)
            current = record.find_plan(identifier)
            if current is None:
                raise NotFoundError("plan not found", session_id=session_id, plan=identifier)
            record.improving_plan_ids.add(identifier)
            record.error = None
            record.just_improved_plan_id = None
            self._transition(record, "improving")
            source_text = record.source_text or ""

        # Cases deleted in an earlier round are no longer part of the plan.
        baseline = current.model_copy(update={"test_cases": active_cases(current)})
        try:
            candidate = await gateway.improve(baseline, source_text)
            merged = reconcile(baseline, candidate)
            async with self._lock:
                self._swap_in(record, identifier, merged)
        except PlanStudioError as exc:
            async with self._lock:
                self._record_failure(record, exc.message)
            logger.warning("Improvement of %s in session %s failed: %s", identifier, session_id, exc.to_dict())
            raise
        except Exception:
            async with self._lock:
                self._record_failure(record, "Could not improve the test plan.")
            logger.exception("Improvement of %s in session %s failed unexpectedly", identifier, session_id)
            raise
        finally:
            async with self._lock:
                record.improving_plan_ids.discard(identifier)
                self._settle(record)
        return record

    def _swap_in(self, record: SessionRecord, identifier: str, merged: TestPlan) -> None:
        slot = next((i for i, p in enumerate(record.plans) if p.identifier == identifier), None)
        if slot is None:
            logger.warning("Plan %s left session %s while improving; result dropped", identifier, record.id)
            return
        if merged.identifier != identifier:
            taken = any(p.identifier == merged.identifier for i, p in enumerate(record.plans) if i != slot)
            if taken:
                logger.warning(
                    "Model renamed plan %s to %s, which is taken; keeping %s", identifier, merged.identifier, identifier
                )
                merged = merged.model_copy(update={"identifier": identifier})
            else:
                logger.warning("Model renamed plan %s to %s; replacing the requested slot", identifier, merged.identifier)
        record.plans[slot] = merged
        record.just_improved_plan_id = merged.identifier
        record.events.append(SessionEvent(type="improved", message=merged.identifier))

    def _record_failure(self, record: SessionRecord, message: str) -> None:
        record.error = message
        record.events.append(SessionEvent(type="error", message=message))

    def _settle(self, record: SessionRecord) -> None:
        if record.status == "improving" and not record.improving_plan_ids:
            self._transition(record, "success")
        else:
            record.updated_at = now_iso()


session_manager = SessionManager()
