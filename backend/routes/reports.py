"""
Report routes — create, list, review-workflow actions, preview and PDF download.
"""

import logging
import os
import uuid
from datetime import date
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core import workflow
from core.report_builder import render, render_pdf, report_filename
from core.store import ReportStatus, ReportStore
from core.workflow import Actor
from routes.identity import get_actor

logger = logging.getLogger(__name__)

router = APIRouter()

STRICT_ENVELOPES = os.getenv("STRICT_ENVELOPES", "true").strip().lower() in {"1", "true", "yes", "on"}
# Keep scratch path stable regardless of process working directory.
REPORTS_DIR = Path(os.getenv("REPORTS_DIR", str(Path(__file__).resolve().parent.parent / "generated")))
REPORTS_DIR.mkdir(parents=True, exist_ok=True)

store = ReportStore(strict_envelopes=STRICT_ENVELOPES)


def _safe_unlink(path: str):
    """Delete a served file once the response has been sent."""
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as e:
        logger.warning("Could not remove %s: %s", path, e)


def _parse_status(status: Optional[str]) -> Optional[ReportStatus]:
    if status is None:
        return None
    try:
        return ReportStatus(status)
    except ValueError:
        valid = ", ".join(s.value for s in ReportStatus)
        raise HTTPException(400, f"Unknown status '{status}'. Use one of: {valid}.")


def _with_actions(report, actor: Actor) -> dict:
    data = report.to_dict()
    data["status_label"] = report.status.label
    data["allowed_actions"] = workflow.allowed_actions(actor, report)
    return data


@router.post("", status_code=201)
async def create_report(payload: dict, actor: Actor = Depends(get_actor)):
    """Create a draft report owned by the caller."""
    if "chart_data" not in payload:
        raise HTTPException(400, "Provide 'title' and 'chart_data'.")
    report = store.create(
        reporter_id=actor.actor_id,
        reporter_role=actor.role,
        title=payload.get("title"),
        chart_data=payload["chart_data"],
        department_id=actor.department_id,
        content=payload.get("content"),
    )
    return _with_actions(report, actor)


@router.get("")
async def list_reports(status: Optional[str] = None, actor: Actor = Depends(get_actor)):
    reports = workflow.visible_reports(store, actor, status=_parse_status(status))
    return {"reports": [_with_actions(r, actor) for r in reports], "count": len(reports)}


@router.get("/summary")
async def report_summary(actor: Actor = Depends(get_actor)):
    """Status counts over the reports the caller can see."""
    return workflow.status_summary(workflow.visible_reports(store, actor))


@router.get("/{report_id}")
async def get_report(report_id: str, actor: Actor = Depends(get_actor)):
    return _with_actions(workflow.get_visible(store, actor, report_id), actor)


@router.patch("/{report_id}")
async def edit_report(report_id: str, payload: dict, actor: Actor = Depends(get_actor)):
    """Edit the title or content of a draft."""
    if "title" not in payload and "content" not in payload:
        raise HTTPException(400, "Provide 'title' and/or 'content'.")
    report = workflow.update_draft(
        store, actor, report_id, title=payload.get("title"), content=payload.get("content"),
    )
    return _with_actions(report, actor)


@router.post("/{report_id}/submit")
async def submit_report(report_id: str, actor: Actor = Depends(get_actor)):
    return _with_actions(workflow.submit(store, actor, report_id), actor)


@router.post("/{report_id}/forward")
async def forward_report(report_id: str, actor: Actor = Depends(get_actor)):
    return _with_actions(workflow.forward(store, actor, report_id), actor)


@router.post("/{report_id}/approve")
async def approve_report(report_id: str, actor: Actor = Depends(get_actor)):
    return _with_actions(workflow.approve(store, actor, report_id), actor)


@router.delete("/{report_id}")
async def delete_report(report_id: str, actor: Actor = Depends(get_actor)):
    workflow.delete_report(store, actor, report_id)
    return {"deleted": report_id}


@router.get("/{report_id}/actions")
async def report_actions(report_id: str, actor: Actor = Depends(get_actor)):
    report = workflow.get_visible(store, actor, report_id)
    return {"report_id": report_id, "actions": workflow.allowed_actions(actor, report)}


@router.get("/{report_id}/preview")
async def preview_report(report_id: str, actor: Actor = Depends(get_actor)):
    """Layout outline of the rendered document, without the PDF bytes."""
    report = workflow.get_visible(store, actor, report_id)
    today = date.today()
    document = render(report, generated_by=actor.label, department_name=report.department_id, generated_on=today)
    outline = document.outline()
    outline["filename"] = report_filename(report.title, today)
    outline["report"] = _with_actions(report, actor)
    return outline


@router.get("/{report_id}/pdf")
async def download_report_pdf(report_id: str, actor: Actor = Depends(get_actor)):
    """Render the report and stream it as a PDF attachment."""
    report = workflow.get_visible(store, actor, report_id)
    today = date.today()
    try:
        pdf_bytes = render_pdf(report, generated_by=actor.label, department_name=report.department_id,
                               generated_on=today)
    except Exception:
        logger.exception("Rendering report %s failed", report_id)
        raise HTTPException(500, "Download Failed")

    output_path = REPORTS_DIR / f"report_{uuid.uuid4().hex[:8]}.pdf"
    output_path.write_bytes(pdf_bytes)
    return FileResponse(
        path=str(output_path),
        filename=report_filename(report.title, today),
        media_type="application/pdf",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
