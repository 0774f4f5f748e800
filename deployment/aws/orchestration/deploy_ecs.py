"""AWS ECS deployment of the Laravel stack through CloudFormation."""
import logging
import time
from typing import Any, Callable, Dict, Optional

from botocore.exceptions import ClientError, WaiterError

from deploy_api.settings import ENVIRONMENTS, Settings, get_settings
from deploy_api.utils.decorators import log_operation
from deployment.aws.exceptions import (
    DeploymentError,
    MigrationFailedError,
    PrerequisiteError,
    WaitTimeoutError,
)
from deployment.aws.setup.ecr import create_repository
from deployment.aws.utils.aws_clients import get_account_id, get_ecr_registry, get_ecs_client
from deployment.aws.utils.health import wait_for_healthy
from deployment.aws.utils.stacks import deploy_stack, get_stack_output, get_stack_outputs

logger = logging.getLogger(__name__)

INFRASTRUCTURE_TEMPLATE = "ecs-infrastructure.yml"
SERVICES_TEMPLATE = "ecs-services.yml"

TASK_WAITER_CONFIG = {"Delay": 6, "MaxAttempts": 100}


def validate_environment(environment: str) -> str:
    if environment not in ENVIRONMENTS:
        raise DeploymentError("Environment must be 'staging' or 'production'")
    return environment


class ECSDeploymentStrategy:
    """Base class for ECS deployment strategies.

    Holds what every strategy shares: the target environment, resource
    naming, the one-off migration task and the post-deploy health check.
    """

    def __init__(self, environment: str, settings: Optional[Settings] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.environment = validate_environment(environment)
        self.settings = settings or get_settings()
        self.sleep = sleep
        self._ecs_client = None

    @property
    def ecs_client(self):
        if self._ecs_client is None:
            self._ecs_client = get_ecs_client()
        return self._ecs_client

    @ecs_client.setter
    def ecs_client(self, client):
        self._ecs_client = client

    def resource(self, suffix: str) -> str:
        return self.settings.resource_name(self.environment, suffix)

    def image_uri(self, image_tag: str, registry: Optional[str] = None) -> str:
        registry = registry or get_ecr_registry()
        return f"{registry}/{self.settings.ecr_repository}:{image_tag}"

    def network_for_tasks(self) -> Dict[str, str]:
        """First private subnet and the ECS security group from the infrastructure stack."""
        infrastructure = self.settings.infrastructure_stack(self.environment)
        private_subnets = get_stack_output(infrastructure, "PrivateSubnets")
        security_group = get_stack_output(infrastructure, "ECSSecurityGroup")
        return {
            "subnet": private_subnets.split(",")[0].strip(),
            "security_group": security_group,
        }

    @log_operation("Run database migrations")
    def run_migrations(self, cluster: str, task_definition: str) -> str:
        """
        Run ``migrate --force`` as a one-off task and wait for it to stop.

        Returns:
            The migration task ARN

        Raises:
            MigrationFailedError: when the container exit code is not 0
        """
        network = self.network_for_tasks()
        command = self.settings.artisan_argv("migrate", "--force")

        try:
            response = self.ecs_client.run_task(
                cluster=cluster,
                taskDefinition=task_definition,
                networkConfiguration={
                    "awsvpcConfiguration": {
                        "subnets": [network["subnet"]],
                        "securityGroups": [network["security_group"]],
                        "assignPublicIp": "DISABLED",
                    }
                },
                overrides={
                    "containerOverrides": [
                        {"name": self.settings.container_name, "command": command}
                    ]
                },
            )
        except ClientError as e:
            raise DeploymentError(f"Failed to start migration task: {e}") from e

        tasks = response.get("tasks", [])
        if not tasks:
            raise DeploymentError(f"Migration task was not started: {response.get('failures', [])}")
        task_arn = tasks[0]["taskArn"]
        logger.info(f"Migration task started: {task_arn}")

        try:
            self.ecs_client.get_waiter("tasks_stopped").wait(
                cluster=cluster, tasks=[task_arn], WaiterConfig=TASK_WAITER_CONFIG
            )
        except WaiterError as e:
            raise WaitTimeoutError(f"Migration task {task_arn} did not stop: {e}") from e

        exit_code = self._container_exit_code(cluster, task_arn)
        if exit_code != 0:
            logger.error(f"❌ Database migrations failed with exit code: {exit_code}")
            raise MigrationFailedError(exit_code, task_arn)

        logger.info("✅ Database migrations completed successfully")
        return task_arn

    def _container_exit_code(self, cluster: str, task_arn: str) -> Optional[int]:
        described = self.ecs_client.describe_tasks(cluster=cluster, tasks=[task_arn])
        tasks = described.get("tasks", [])
        if not tasks:
            return None
        containers = tasks[0].get("containers", [])
        for container in containers:
            if container.get("name") == self.settings.container_name:
                return container.get("exitCode")
        return containers[0].get("exitCode") if containers else None

    @log_operation("Health check")
    def health_check(self, base_url: str, initial_wait: float = 60,
                     max_attempts: int = 10, delay: float = 30) -> int:
        attempts = wait_for_healthy(
            base_url,
            max_attempts=max_attempts,
            delay=delay,
            initial_wait=initial_wait,
            sleep=self.sleep,
        )
        logger.info(f"✅ Application is available at: {base_url}")
        return attempts


class StackDeploymentStrategy(ECSDeploymentStrategy):
    """Deploy both CloudFormation stacks, migrate, then health check."""

    def check_prerequisites(self) -> str:
        logger.info("Checking prerequisites...")
        account_id = get_account_id()
        if not self.settings.db_password:
            raise PrerequisiteError("DB_PASSWORD environment variable is required")
        if not self.settings.app_key:
            raise PrerequisiteError("APP_KEY environment variable is required")
        logger.info("✅ Prerequisites check passed")
        return account_id

    def stack_tags(self) -> Dict[str, str]:
        return {
            "Environment": self.environment,
            "Project": self.settings.project_name,
            "ManagedBy": "CloudFormation",
        }

    @log_operation("Deploy infrastructure stack")
    def deploy_infrastructure(self) -> str:
        logger.info(f"Deploying infrastructure for environment: {self.environment}")
        return deploy_stack(
            self.settings.infrastructure_stack(self.environment),
            self.settings.template_path(INFRASTRUCTURE_TEMPLATE),
            parameters={
                "Environment": self.environment,
                "DBUsername": self.settings.db_username,
                "DBPassword": self.settings.db_password,
            },
            tags=self.stack_tags(),
        )

    @log_operation("Deploy services stack")
    def deploy_services(self, image_uri: str) -> str:
        logger.info(f"Deploying services for environment: {self.environment}")
        logger.info(f"Using image: {image_uri}")
        return deploy_stack(
            self.settings.services_stack(self.environment),
            self.settings.template_path(SERVICES_TEMPLATE),
            parameters={
                "Environment": self.environment,
                "ImageURI": image_uri,
                "DBPassword": self.settings.db_password,
                "AppKey": self.settings.app_key,
            },
            tags=self.stack_tags(),
        )

    def deploy(self, image_tag: str = "latest") -> Dict[str, Any]:
        """Run every deployment step in order. Any failure raises and stops the run."""
        logger.info(f"Starting deployment to {self.environment} environment")
        logger.info(f"Image tag: {image_tag}")

        account_id = self.check_prerequisites()
        create_repository(self.settings.ecr_repository)

        infrastructure = self.deploy_infrastructure()
        image_uri = self.image_uri(image_tag, registry=get_ecr_registry(account_id))
        services = self.deploy_services(image_uri)

        outputs = get_stack_outputs(self.settings.services_stack(self.environment))
        for key in ("ECSCluster", "TaskDefinition", "LoadBalancerURL"):
            if not outputs.get(key):
                raise DeploymentError(
                    f"Stack {self.settings.services_stack(self.environment)} has no output '{key}'"
                )

        migration_task = self.run_migrations(outputs["ECSCluster"], outputs["TaskDefinition"])
        attempts = self.health_check(outputs["LoadBalancerURL"])

        logger.info("✅ Deployment completed successfully!")
        return {
            "status": "success",
            "environment": self.environment,
            "image_uri": image_uri,
            "infrastructure_stack": infrastructure,
            "services_stack": services,
            "migration_task": migration_task,
            "application_url": outputs["LoadBalancerURL"],
            "health_check_attempts": attempts,
        }


def deploy_environment(environment: str, image_tag: str = "latest",
                       settings: Optional[Settings] = None) -> Dict[str, Any]:
    return StackDeploymentStrategy(environment, settings=settings).deploy(image_tag)
