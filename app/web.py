from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

from services.history import HistoryService, build_default_history
from settings import get_settings


templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent / "templates"))


def get_history() -> HistoryService:
    return build_default_history()


router = APIRouter(include_in_schema=False)


@router.get("/", name="dashboard", response_class=HTMLResponse)
async def dashboard(
    request: Request,
    history: HistoryService = Depends(get_history),
) -> HTMLResponse:
    settings = get_settings()
    return templates.TemplateResponse(
        request,
        "dashboard.html",
        {
            "window_size": history.default_limit,
            "retention_minutes": settings.retention_seconds // 60,
        },
    )
