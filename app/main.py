import logging
import uuid
from pathlib import Path
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.responses import FileResponse, JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from app.config import Settings
from app.errors import NotFoundError, PlanStudioError
from app.models import ReconcileRequest, ReconcileResponse
from app.services.document_loader import read_upload
from app.services.exporter import MEDIA_TYPES, PlanExporter, plans_to_xlsx
from app.services.llm_client import TestPlanGateway
from app.services.reconciler import reconcile, summarize
from app.session_manager import SessionManager, session_manager

logger = logging.getLogger("app")
if not logger.handlers:
    logging.basicConfig(level=logging.INFO)


def get_settings() -> Settings:
    return Settings()


def get_gateway(settings: Settings = Depends(get_settings)) -> TestPlanGateway:
    return TestPlanGateway(settings)


def get_session_manager() -> SessionManager:
    return session_manager


app = FastAPI(title="Test Plan Studio", version="0.1.0")

STATIC_DIR = (Path(__file__).resolve().parent.parent / "static").resolve()
STATIC_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/ui", StaticFiles(directory=str(STATIC_DIR), html=True), name="static")


@app.exception_handler(PlanStudioError)
async def plan_studio_error_handler(request: Request, exc: PlanStudioError):
    logger.info("Request %s %s failed: %s", request.method, request.url.path, exc.to_dict())
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error_code": exc.error_code, "context": exc.context},
    )


@app.get("/health")
def health():
    return {"ok": True}


@app.post("/sessions")
async def create_session(
        files: List[UploadFile] = File(...),
        project_name: str = Form(""),
        qa_analyst_name: str = Form(""),
        manager: SessionManager = Depends(get_session_manager),
        gateway: TestPlanGateway = Depends(get_gateway),
):
    """
    Upload one or more user-story documents and generate a test plan per story.
    """
    record = await manager.create_session(project_name, qa_analyst_name)
    documents = [await read_upload(f) for f in files]
    logger.info("Received generation request: session=%s files=%s", record.id, [n for n, _ in documents])
    try:
        await manager.generate(record.id, documents, gateway)
    except PlanStudioError as exc:
        # The session keeps the error state; hand its id back so the UI can poll or reset it.
        exc.context["session_id"] = record.id
        raise
    return record.to_view().to_wire()


@app.post("/sessions/{session_id}/documents")
async def upload_documents(
        session_id: str,
        files: List[UploadFile] = File(...),
        project_name: Optional[str] = Form(None),
        qa_analyst_name: Optional[str] = Form(None),
        manager: SessionManager = Depends(get_session_manager),
        gateway: TestPlanGateway = Depends(get_gateway),
):
    """Start over in an existing session with a new upload."""
    documents = [await read_upload(f) for f in files]
    record = await manager.generate(session_id, documents, gateway, project_name, qa_analyst_name)
    return record.to_view().to_wire()


@app.get("/sessions")
async def list_sessions(manager: SessionManager = Depends(get_session_manager)):
    return {"sessions": await manager.list_sessions()}


@app.get("/sessions/{session_id}")
async def get_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    record = await manager.get_session(session_id)
    return record.to_view().to_wire()


@app.delete("/sessions/{session_id}")
async def reset_session(session_id: str, manager: SessionManager = Depends(get_session_manager)):
    record = await manager.reset(session_id)
    return record.to_view().to_wire()


@app.post("/sessions/{session_id}/plans/{identifier}/improve")
async def improve_plan(
        session_id: str,
        identifier: str,
        manager: SessionManager = Depends(get_session_manager),
        gateway: TestPlanGateway = Depends(get_gateway),
):
    """
    Ask the model for a better version of one plan and merge it against the current one.
    A failure leaves every plan in the session as it was.
    """
    record = await manager.improve(session_id, identifier, gateway)
    return record.to_view().to_wire()


@app.get("/sessions/{session_id}/plans/{identifier}/export/{fmt}")
async def export_plan(
        session_id: str,
        identifier: str,
        fmt: str,
        manager: SessionManager = Depends(get_session_manager),
):
    record = await manager.get_session(session_id)
    plan = record.find_plan(identifier)
    if plan is None:
        raise NotFoundError("plan not found", session_id=session_id, plan=identifier)
    if fmt not in MEDIA_TYPES or fmt == "xlsx":
        raise NotFoundError(f"unsupported export format: {fmt}", format=fmt)

    exporter = PlanExporter(plan)
    return Response(
        content=exporter.render(fmt),
        media_type=MEDIA_TYPES[fmt],
        headers={"Content-Disposition": f'attachment; filename="{exporter.filename(fmt)}"'},
    )


@app.get("/sessions/{session_id}/export.xlsx")
async def export_workbook(
        session_id: str,
        manager: SessionManager = Depends(get_session_manager),
        settings: Settings = Depends(get_settings),
):
    record = await manager.get_session(session_id)
    out_dir = Path(settings.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    report_filename = f"test_plans_{uuid.uuid4().hex[:8]}.xlsx"
    report_path = out_dir / report_filename
    plans_to_xlsx(record.plans, str(report_path))

    return FileResponse(path=str(report_path), filename=report_filename, media_type=MEDIA_TYPES["xlsx"])


@app.post("/reconcile")
def reconcile_plans(body: ReconcileRequest):
    """Stateless diff of two plans sharing an identifier."""
    merged = reconcile(body.original, body.candidate)
    return ReconcileResponse(plan=merged, summary=summarize(merged)).to_wire()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
