import logging
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from deploy_api.deploy_runner import DeployRunner, DeploymentInProgressError
from deploy_api.history import DeploymentHistory
from deploy_api.schemas import DeployRequest, DeployResponse, StatusResponse
from deploy_api.settings import Settings
from deploy_api.status_checks import check_cache, check_database, check_queue

logger = logging.getLogger(__name__)

router = APIRouter()


def _now() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


@router.post("/deploy", response_model=DeployResponse, name="deploy.execute")
def deploy(request: Request, payload: Optional[DeployRequest] = None):
    """
    Run the command table for the requested deploy type.

    Commands run sequentially; the response carries each command with its
    captured output. Only one deployment runs at a time.
    """
    deploy_type = payload.type if payload else "staging"
    runner: DeployRunner = request.app.state.runner
    client_ip = request.client.host if request.client else "unknown"

    try:
        logger.info(f"Deployment started - type={deploy_type} user={client_ip}")

        outcome = runner.run(deploy_type)

        logger.info(f"Deployment completed - type={deploy_type} success={outcome.success}")
        return outcome.to_response()

    except DeploymentInProgressError as e:
        logger.warning(f"Deployment rejected - type={deploy_type}: {e}")
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"success": False, "message": str(e), "timestamp": _now()},
        )
    except Exception as e:
        logger.error(f"Deployment failed - error={e}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "message": f"Deployment failed: {e}", "timestamp": _now()},
        )


@router.get("/deploy/status", response_model=StatusResponse, name="deploy.status")
def deploy_status(request: Request):
    settings: Settings = request.app.state.settings
    history: DeploymentHistory = request.app.state.history

    return {
        "app_status": "running",
        "database": check_database(settings),
        "cache": check_cache(settings),
        "queue": check_queue(settings),
        "last_deployment": history.last(),
    }
