from datetime import datetime, timezone

from fastapi import APIRouter, Request

from deploy_api.schemas import HealthResponse
from deploy_api.settings import Settings

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request):
    """
    Health check endpoint for the load balancer.

    Always answers 200 while the process is serving requests.
    """
    settings: Settings = request.app.state.settings

    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z"),
        "environment": settings.app_env,
        "version": settings.app_version,
    }
