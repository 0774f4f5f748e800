from pathlib import Path

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from fastapi.templating import Jinja2Templates

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"

templates = Jinja2Templates(directory=str(TEMPLATES_DIR))

router = APIRouter()


@router.get("/", response_class=HTMLResponse)
async def welcome(request: Request):
    settings = request.app.state.settings
    return templates.TemplateResponse(
        request,
        "welcome.html",
        {"app_name": settings.app_name, "environment": settings.app_env, "version": settings.app_version},
    )


@router.get("/deploy", response_class=HTMLResponse, name="deploy.index")
async def deploy_dashboard(request: Request):
    settings = request.app.state.settings
    return templates.TemplateResponse(
        request,
        "deploy.html",
        {"app_name": settings.app_name, "environment": settings.app_env},
    )
