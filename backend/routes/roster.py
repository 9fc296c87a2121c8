"""
Roster routes — import students from CSV/Excel and hand out the import template.
"""

import logging
import uuid
from pathlib import Path

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from core.parser import SUPPORTED_EXTENSIONS, generate_roster_template, parse_roster
from core.workflow import Actor
from routes.identity import get_actor
from routes.reports import REPORTS_DIR, _safe_unlink

logger = logging.getLogger(__name__)

router = APIRouter()

# Keep upload path stable regardless of process working directory.
UPLOAD_DIR = Path(__file__).resolve().parent.parent / "uploads"
UPLOAD_DIR.mkdir(exist_ok=True)

TEMPLATE_FILENAME = "student_import_template.xlsx"


@router.post("/upload")
async def upload_roster(file: UploadFile = File(...), actor: Actor = Depends(get_actor)):
    """
    Parse an uploaded roster. The file is read once and discarded; the
    parsed records are returned for the caller to author reports from.
    """
    ext = Path(file.filename or "").suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise HTTPException(400, f"Unsupported file type: {ext or 'none'}. Use CSV or Excel (.xlsx).")

    save_path = UPLOAD_DIR / f"{uuid.uuid4()}{ext}"
    try:
        with open(save_path, "wb") as f:
            while True:
                chunk = await file.read(1024 * 1024)
                if not chunk:
                    break
                f.write(chunk)
        result = parse_roster(str(save_path))
    finally:
        save_path.unlink(missing_ok=True)

    logger.info("Roster upload by %s: %d valid of %d rows", actor.actor_id, result["valid_rows"], result["total_rows"])
    result["filename"] = file.filename
    return result


@router.get("/template")
async def roster_template():
    output_path = REPORTS_DIR / f"template_{uuid.uuid4().hex[:8]}.xlsx"
    generate_roster_template(str(output_path))
    return FileResponse(
        path=str(output_path),
        filename=TEMPLATE_FILENAME,
        media_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        background=BackgroundTask(_safe_unlink, str(output_path)),
    )
