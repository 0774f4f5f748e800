"""
Image release to an existing ECS service.

Builds and pushes a new image, registers a task definition revision that
points at it, rolls the service, migrates and health checks. Used once the
CloudFormation stacks are in place.
"""
import base64
import copy
import logging
import subprocess
import time
from typing import Any, Dict, List, Optional

from botocore.exceptions import ClientError, WaiterError

from deploy_api.utils.decorators import log_operation
from deployment.aws.exceptions import DeploymentError, WaitTimeoutError
from deployment.aws.orchestration.deploy_ecs import ECSDeploymentStrategy
from deployment.aws.utils.aws_clients import (
    get_account_id,
    get_ecr_client,
    get_ecr_registry,
    get_elbv2_client,
)

logger = logging.getLogger(__name__)

# Fields describe_task_definition returns that register_task_definition rejects
READ_ONLY_TASK_FIELDS = (
    "taskDefinitionArn",
    "revision",
    "status",
    "requiresAttributes",
    "placementConstraints",
    "compatibilities",
    "registeredAt",
    "registeredBy",
    "deregisteredAt",
)

RELEASE_TAGS = ("latest", "production")

SERVICE_WAITER_CONFIG = {"Delay": 15, "MaxAttempts": 40}


def run_command(argv: List[str], cwd: Optional[str] = None, input: Optional[bytes] = None) -> None:
    """Run an external tool, raising DeploymentError on a nonzero exit."""
    logger.debug(f"Running: {' '.join(argv)}")
    try:
        subprocess.run(argv, cwd=cwd, input=input, check=True)
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise DeploymentError(f"Command failed: {' '.join(argv)}: {e}") from e


def git_short_sha(cwd: Optional[str] = None) -> str:
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=cwd, check=True, capture_output=True, text=True,
        )
    except (subprocess.CalledProcessError, FileNotFoundError) as e:
        raise DeploymentError(f"Cannot determine git revision: {e}") from e
    return result.stdout.strip()


def prepare_task_definition(task_definition: Dict[str, Any], image: str, container_name: str) -> Dict[str, Any]:
    """Copy of ``task_definition`` with the app container's image replaced, ready to register."""
    prepared = copy.deepcopy(task_definition)
    for field in READ_ONLY_TASK_FIELDS:
        prepared.pop(field, None)

    containers = prepared.get("containerDefinitions", [])
    if not containers:
        raise DeploymentError("Task definition has no container definitions")

    target = next((c for c in containers if c.get("name") == container_name), containers[0])
    target["image"] = image
    return prepared


class ReleaseStrategy(ECSDeploymentStrategy):
    """Build, push and roll out a new image to the running service."""

    @property
    def cluster(self) -> str:
        return self.resource("cluster")

    @property
    def service(self) -> str:
        return self.resource("service")

    @property
    def task_family(self) -> str:
        return self.resource("task")

    @log_operation("ECR login")
    def ecr_login(self, registry: str) -> None:
        token_data = get_ecr_client().get_authorization_token()["authorizationData"][0]
        token = base64.b64decode(token_data["authorizationToken"]).decode("utf-8")
        username, password = token.split(":", 1)
        run_command(
            ["docker", "login", "--username", username, "--password-stdin", registry],
            input=password.encode(),
        )

    @log_operation("Build and push image")
    def build_and_push(self, registry: str, image_tag: str) -> List[str]:
        """Build the production target with every release tag and push them all."""
        repository = f"{registry}/{self.settings.ecr_repository}"
        images = [f"{repository}:{image_tag}"] + [f"{repository}:{tag}" for tag in RELEASE_TAGS]

        build = ["docker", "build", "--target", "production", "--build-arg", "BUILDKIT_INLINE_CACHE=1"]
        for image in images:
            build.extend(["-t", image])
        build.append(".")
        run_command(build, cwd=self.settings.app_root)

        for image in images:
            run_command(["docker", "push", image])
        logger.info(f"Pushed image to ECR: {images[0]}")
        return images

    @log_operation("Register task definition")
    def register_task_definition(self, image: str) -> str:
        try:
            current = self.ecs_client.describe_task_definition(taskDefinition=self.task_family)["taskDefinition"]
            prepared = prepare_task_definition(current, image, self.settings.container_name)
            registered = self.ecs_client.register_task_definition(**prepared)
        except ClientError as e:
            raise DeploymentError(f"Failed to register task definition: {e}") from e

        arn = registered["taskDefinition"]["taskDefinitionArn"]
        logger.info(f"New task definition: {arn}")
        return arn

    @log_operation("Update ECS service")
    def update_service(self, task_definition_arn: str) -> None:
        try:
            self.ecs_client.update_service(
                cluster=self.cluster, service=self.service, taskDefinition=task_definition_arn
            )
        except ClientError as e:
            raise DeploymentError(f"Failed to update service {self.service}: {e}") from e

        logger.info("⏳ Waiting for deployment to complete...")
        try:
            self.ecs_client.get_waiter("services_stable").wait(
                cluster=self.cluster, services=[self.service], WaiterConfig=SERVICE_WAITER_CONFIG
            )
        except WaiterError as e:
            raise WaitTimeoutError(f"Service {self.service} did not stabilize: {e}") from e

    def load_balancer_dns(self) -> str:
        try:
            response = get_elbv2_client().describe_load_balancers(Names=[self.resource("alb")])
        except ClientError as e:
            raise DeploymentError(f"Load balancer {self.resource('alb')} not found: {e}") from e
        return response["LoadBalancers"][0]["DNSName"]

    def remove_local_images(self, images: List[str]) -> None:
        for image in images:
            try:
                run_command(["docker", "rmi", image])
            except DeploymentError as e:
                logger.warning(f"⚠️ Could not remove local image {image}: {e}")

    def release(self, image_tag: Optional[str] = None) -> Dict[str, Any]:
        logger.info(f"🚀 Starting Laravel {self.environment} release")

        account_id = get_account_id()
        registry = get_ecr_registry(account_id)
        logger.info(f"AWS Account ID: {account_id}")

        image_tag = image_tag or f"{git_short_sha(self.settings.app_root)}-{int(time.time())}"

        self.ecr_login(registry)
        images = self.build_and_push(registry, image_tag)
        task_definition_arn = self.register_task_definition(images[0])
        self.update_service(task_definition_arn)

        migration_task = self.run_migrations(self.cluster, task_definition_arn)

        alb_dns = self.load_balancer_dns()
        attempts = self.health_check(alb_dns, initial_wait=0)

        self.remove_local_images(images)

        logger.info("🎉 Release completed successfully!")
        return {
            "status": "success",
            "environment": self.environment,
            "image_tag": image_tag,
            "image_uri": images[0],
            "task_definition": task_definition_arn,
            "migration_task": migration_task,
            "application_url": f"http://{alb_dns}",
            "health_check_attempts": attempts,
        }
