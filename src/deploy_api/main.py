import logging
from textwrap import dedent
from typing import Optional

import pydantic
from fastapi import FastAPI
from fastapi.routing import APIRoute

from deploy_api.deploy_runner import DeployRunner
from deploy_api.errors import (
    handle_broad_exceptions,
    handle_pydantic_validation_errors,
)
from deploy_api.history import DeploymentHistory
from deploy_api.routers.deploy import router as deploy_router
from deploy_api.routers.health import router as health_router
from deploy_api.routers.pages import router as pages_router
from deploy_api.settings import Settings

# Set up logging
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Create a FastAPI application."""
    settings = settings or Settings()

    app = FastAPI(
        title=f"{settings.app_name} Deploy",
        summary="Health checks and one-click deployments",
        version=settings.app_version,
        description=dedent(
            """\
        | Endpoint | Notes |
        | --- | --- |
        | `GET /health` | load balancer health check |
        | `GET /deploy` | deploy dashboard |
        | `POST /deploy` | run the staging, production or rollback command table |
        | `GET /deploy/status` | database, cache, queue and last deployment |
        """
        ),
        docs_url="/docs",
        generate_unique_id_function=custom_generate_unique_id,
    )

    history = DeploymentHistory(settings.history_path())

    app.state.settings = settings
    app.state.history = history
    app.state.runner = DeployRunner(settings, history=history)

    app.include_router(pages_router, tags=["pages"])
    app.include_router(health_router, tags=["health"])
    app.include_router(deploy_router, tags=["deploy"])

    app.add_exception_handler(
        exc_class_or_status_code=pydantic.ValidationError,
        handler=handle_pydantic_validation_errors,
    )
    app.middleware("http")(handle_broad_exceptions)

    logger.info(f"Deploy API ready (environment={settings.app_env}, app_root={settings.app_root})")
    return app


def custom_generate_unique_id(route: APIRoute):
    """
    Generate prettier `operationId`s in the OpenAPI schema.

    These become the function names in generated client SDKs.
    """
    return f"{route.tags[0]}-{route.name}"


if __name__ == "__main__":
    import uvicorn

    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=8000)
