# src/deploy_api/settings.py
import os
from typing import Optional, List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


ENVIRONMENTS = ("staging", "production")


class Settings(BaseSettings):
    """
    Single source of truth for all application and tooling settings.

    Configuration precedence:
    1. Environment variables (highest priority)
    2. .env file (if exists)
    3. Default values in this class (lowest priority)

    Usage:
        from deploy_api.settings import get_settings
        settings = get_settings()
        repository = settings.ecr_repository
    """

    # Application Settings
    app_name: str = Field(
        default="Laravel",
        description="Application name shown on the dashboard"
    )

    app_env: str = Field(
        default="local",
        description="Application environment reported by /health"
    )

    app_version: str = Field(
        default="1.0.0",
        description="Application version reported by /health"
    )

    app_key: Optional[str] = Field(
        default=None,
        description="Laravel application key (base64:...)"
    )

    app_root: str = Field(
        default=".",
        description="Path of the wrapped Laravel checkout"
    )

    artisan: str = Field(
        default="php artisan",
        description="Command prefix used to invoke artisan"
    )

    # AWS Core Settings
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region for all tooling"
    )

    aws_endpoint_url: Optional[str] = Field(
        default=None,
        description="Override endpoint (moto server, localstack)"
    )

    aws_profile: Optional[str] = Field(
        default=None,
        description="Named AWS profile (SSO)"
    )

    project_name: str = Field(
        default="laravel",
        description="Project slug used in stack, cluster and service names"
    )

    ecr_repository: str = Field(
        default="laravel-app",
        description="ECR repository name"
    )

    container_name: str = Field(
        default="laravel-app",
        description="Container name inside the ECS task definition"
    )

    cloudformation_dir: str = Field(
        default="aws/cloudformation",
        description="Directory holding ecs-infrastructure.yml and ecs-services.yml"
    )

    db_username: str = Field(
        default="laravel",
        description="Master username passed to the infrastructure stack"
    )

    db_password: Optional[str] = Field(
        default=None,
        description="Database password (required by deploy)"
    )

    # Status probes
    db_connection: str = Field(
        default="sqlite",
        description="Database driver: sqlite, mysql, pgsql"
    )

    db_host: str = Field(default="127.0.0.1")

    db_port: Optional[int] = Field(default=None)

    db_database: str = Field(
        default="database/database.sqlite",
        description="Database name, or file path for sqlite"
    )

    cache_driver: str = Field(
        default="file",
        description="Cache store: file, array or redis"
    )

    cache_path: str = Field(
        default="storage/cache",
        description="Directory for the file cache store"
    )

    redis_url: str = Field(default="redis://localhost:6379/0")

    queue_connection: str = Field(
        default="sync",
        description="Queue connection name reported by /deploy/status"
    )

    # Deploy runner
    deploy_commands_file: Optional[str] = Field(
        default=None,
        description="YAML file overriding the deploy command table"
    )

    deploy_command_timeout: int = Field(
        default=600,
        description="Per-command timeout in seconds"
    )

    deploy_history_file: str = Field(
        default="storage/deployments.json",
        description="JSON file recording past deployments"
    )

    # Jenkins / GitHub
    jenkins_url: str = Field(default="http://localhost:8080")

    jenkins_job: str = Field(default="laravel-production-deploy")

    jenkins_user: str = Field(default="admin")

    jenkins_token: Optional[str] = Field(default=None)

    webhook_token: Optional[str] = Field(default=None)

    github_repo: Optional[str] = Field(
        default=None,
        description="GitHub repository (owner/name)"
    )

    # Container
    container_role: str = Field(
        default="app",
        description="Container role: app, queue or scheduler"
    )

    http_host: str = Field(default="0.0.0.0")

    http_port: int = Field(default=8000)

    schedule_interval: int = Field(
        default=60,
        description="Seconds between schedule:run invocations"
    )

    # Local Docker workflow
    compose_command: str = Field(
        default="docker compose",
        description="Command prefix used to invoke docker compose"
    )

    compose_prod_file: str = Field(
        default="docker-compose.prod.yml",
        description="Compose file for the production-like stack"
    )

    app_container: str = Field(
        default="laravel-app",
        description="Local container running the Laravel app"
    )

    mysql_container: str = Field(
        default="laravel-mysql",
        description="Local MySQL container"
    )

    mysql_database: str = Field(default="laravel")

    local_url: str = Field(
        default="http://localhost:8000",
        description="URL of the local app, checked by `deploy-kit dev health`"
    )

    setup_wait: float = Field(
        default=10,
        description="Seconds to let containers start during `deploy-kit dev setup`"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level"
    )

    @field_validator("cache_driver")
    @classmethod
    def validate_cache_driver(cls, v):
        """Validate cache driver is one of the supported stores."""
        valid_drivers = ["file", "array", "redis"]
        if v not in valid_drivers:
            raise ValueError(f"Invalid cache_driver: {v}. Must be one of {valid_drivers}")
        return v

    @field_validator("log_level")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    def resource_name(self, environment: str, suffix: str) -> str:
        """Name of a per-environment AWS resource, e.g. production-laravel-cluster."""
        return f"{environment}-{self.project_name}-{suffix}"

    def infrastructure_stack(self, environment: str) -> str:
        return self.resource_name(environment, "infrastructure")

    def services_stack(self, environment: str) -> str:
        return self.resource_name(environment, "services")

    def log_group_prefix(self, environment: str) -> str:
        return f"/ecs/{environment}-{self.project_name}"

    def secret_prefix(self, environment: str) -> str:
        return f"{environment}/{self.project_name}"

    def template_path(self, template_name: str) -> str:
        """Absolute path of a CloudFormation template under the app root."""
        return os.path.join(self.app_root, self.cloudformation_dir, template_name)

    def history_path(self) -> str:
        """Deployment history file, resolved against the app root."""
        if os.path.isabs(self.deploy_history_file):
            return self.deploy_history_file
        return os.path.join(self.app_root, self.deploy_history_file)

    def artisan_command(self, *args: str) -> str:
        return " ".join([self.artisan, *args])

    def artisan_argv(self, *args: str) -> List[str]:
        return [*self.artisan.split(), *args]

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    This ensures we only create one Settings instance per process.
    """
    return Settings()
