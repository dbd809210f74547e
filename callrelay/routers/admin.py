# callrelay/routers/admin.py
from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from callrelay.storage.base import StoreError
from callrelay.util.logger import get_logger

log = get_logger("admin")
router = APIRouter()

# Absolute path to callrelay/templates
TEMPLATES_DIR = Path(__file__).resolve().parents[1] / "templates"
templates = Jinja2Templates(directory=str(TEMPLATES_DIR))


@router.get("/", response_class=HTMLResponse)
def inspector(request: Request):
    st = request.app.state
    db_status = f"connected ({st.store.backend})"
    stats = {"total": 0, "calls": 0}
    try:
        stats["total"] = st.store.count_requests()
        stats["calls"] = st.store.count_requests(call_only=True)
    except StoreError as e:
        log.warning("inspector stats failed: %s", e)
        db_status = f"error: {e}"

    return templates.TemplateResponse(
        request,
        "inspector.html",
        {
            "requests": st.buffer.snapshot(),
            "db_status": db_status,
            "stats": stats,
            "env": st.env,
            "dry_run": st.dispatcher.dry_run,
        },
    )
