"""
Per-environment teardown of the Laravel ECS stack.

Removes, in dependency order: the running service, the services stack, the
infrastructure stack, environment-tagged ECR images, Secrets Manager
secrets and CloudWatch log groups. Individual deletions that fail are
recorded and the run continues.
"""

import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError, WaiterError

from deploy_api.settings import ENVIRONMENTS, Settings, get_settings
from deployment.aws.exceptions import DeploymentError
from deployment.aws.utils.aws_clients import (
    ecr_repository_exists,
    get_ecr_client,
    get_ecs_client,
    get_logs_client,
    get_secretsmanager_client,
)
from deployment.aws.utils.stacks import delete_stack, get_stack_outputs, stack_exists

logger = logging.getLogger(__name__)

CLEANUP_TARGETS = ENVIRONMENTS + ("all",)

SCALE_DOWN_WAITER_CONFIG = {"Delay": 15, "MaxAttempts": 40}


def cleanup_warning(environment: str) -> List[str]:
    """What a cleanup of ``environment`` will destroy, shown before confirmation."""
    return [
        f"⚠️  DANGER: This will delete AWS resources for environment: {environment}",
        "",
        "This action will:",
        "  - Delete ECS services and tasks",
        "  - Delete Application Load Balancer",
        "  - Delete RDS database (if not protected)",
        "  - Delete ElastiCache cluster",
        "  - Delete CloudFormation stacks",
        "  - Delete VPC and networking resources",
        "",
        "THIS ACTION CANNOT BE UNDONE!",
    ]


class CleanupManager:
    """
    Cleanup orchestrator for one or all environments.

    Handles resource cleanup in dependency order and produces a report.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.cleanup_results: Dict[str, Any] = {}
        self.errors: List[str] = []

    def cleanup(self, target: str) -> Dict[str, Any]:
        """
        Cleanup ``target`` (staging, production or all).

        ``all`` cleans every environment and then deletes the ECR repository.

        Returns:
            Dict with cleanup results and statistics
        """
        if target not in CLEANUP_TARGETS:
            raise DeploymentError("Environment must be 'staging', 'production', or 'all'")

        logger.info("Starting AWS resources cleanup")
        logger.info(f"Environment: {target}")
        logger.info(f"Region: {self.settings.aws_region}")

        environments = ENVIRONMENTS if target == "all" else (target,)
        for environment in environments:
            self.cleanup_environment(environment)

        if target == "all":
            self._run_step("all", "ECR Repository", self._cleanup_ecr_repository)

        return self._generate_cleanup_report(target)

    def cleanup_environment(self, environment: str) -> None:
        logger.info(f"Starting cleanup for environment: {environment}")

        # Services first, then infrastructure
        cleanup_order: List[Tuple[str, Callable[[str], Dict[str, Any]]]] = [
            ("ECS Services", self._cleanup_ecs_services),
            ("Infrastructure", self._cleanup_infrastructure),
            ("ECR Images", self._cleanup_ecr_images),
            ("Secrets", self._cleanup_secrets),
            ("CloudWatch Logs", self._cleanup_log_groups),
        ]

        for resource_type, cleanup_func in cleanup_order:
            self._run_step(environment, resource_type, lambda f=cleanup_func: f(environment))

        logger.info(f"✅ Cleanup completed for environment: {environment}")

    def _run_step(self, scope: str, resource_type: str, cleanup_func: Callable[[], Dict[str, Any]]) -> None:
        try:
            logger.info(f"Cleaning up {resource_type} ({scope})...")
            result = cleanup_func()
            self.cleanup_results.setdefault(scope, {})[resource_type] = result
            logger.info(f"✅ {resource_type} cleanup completed")
        except (ClientError, DeploymentError) as e:
            error_msg = f"❌ {resource_type} cleanup failed for {scope}: {e}"
            logger.error(error_msg)
            self.errors.append(error_msg)
            self.cleanup_results.setdefault(scope, {})[resource_type] = {"status": "error", "error": str(e)}

    def _scale_down_service(self, stack_name: str) -> bool:
        """Scale the stack's service to zero and wait. Failures are logged and ignored."""
        outputs = get_stack_outputs(stack_name)
        cluster_name = outputs.get("ECSCluster")
        service_name = outputs.get("ECSService")
        if not (cluster_name and service_name):
            return False

        ecs_client = get_ecs_client()
        logger.info("Scaling down ECS service to 0 tasks...")
        try:
            ecs_client.update_service(cluster=cluster_name, service=service_name, desiredCount=0)
            logger.info("⏳ Waiting for tasks to stop...")
            ecs_client.get_waiter("services_stable").wait(
                cluster=cluster_name, services=[service_name], WaiterConfig=SCALE_DOWN_WAITER_CONFIG
            )
        except (ClientError, WaiterError) as e:
            logger.warning(f"⚠️ Scale down of {service_name} did not complete: {e}")
            return False
        return True

    def _cleanup_ecs_services(self, environment: str) -> Dict[str, Any]:
        stack_name = self.settings.services_stack(environment)
        if not stack_exists(stack_name):
            logger.warning(f"⚠️ Services stack {stack_name} not found")
            return {"status": "skipped", "count": 0}

        scaled_down = self._scale_down_service(stack_name)
        logger.info("Deleting services CloudFormation stack...")
        delete_stack(stack_name)
        return {"status": "success", "deleted_stack": stack_name, "scaled_down": scaled_down, "count": 1}

    def _cleanup_infrastructure(self, environment: str) -> Dict[str, Any]:
        stack_name = self.settings.infrastructure_stack(environment)
        logger.info("Deleting infrastructure CloudFormation stack...")
        if not delete_stack(stack_name):
            return {"status": "skipped", "count": 0}
        return {"status": "success", "deleted_stack": stack_name, "count": 1}

    def _cleanup_ecr_images(self, environment: str) -> Dict[str, Any]:
        repository = self.settings.ecr_repository
        if not ecr_repository_exists(repository):
            logger.warning(f"⚠️ ECR repository {repository} not found")
            return {"status": "skipped", "count": 0}

        ecr_client = get_ecr_client()
        tags = []
        paginator = ecr_client.get_paginator("list_images")
        for page in paginator.paginate(repositoryName=repository):
            for image_id in page.get("imageIds", []):
                tag = image_id.get("imageTag")
                if tag and environment in tag:
                    tags.append(tag)

        if not tags:
            logger.info(f"No ECR images found for environment: {environment}")
            return {"status": "success", "deleted_images": [], "count": 0}

        logger.info(f"Deleting ECR images: {' '.join(tags)}")
        deleted_images = []
        for tag in tags:
            try:
                ecr_client.batch_delete_image(repositoryName=repository, imageIds=[{"imageTag": tag}])
                deleted_images.append(tag)
            except ClientError as e:
                logger.warning(f"Failed to delete image {tag}: {e}")

        return {"status": "success", "deleted_images": deleted_images, "count": len(deleted_images)}

    def _cleanup_secrets(self, environment: str) -> Dict[str, Any]:
        secrets_client = get_secretsmanager_client()
        marker = self.settings.secret_prefix(environment)

        names = []
        paginator = secrets_client.get_paginator("list_secrets")
        for page in paginator.paginate():
            names.extend(s["Name"] for s in page.get("SecretList", []) if marker in s["Name"])

        if not names:
            logger.info(f"No secrets found for environment: {environment}")

        deleted_secrets = []
        for name in names:
            logger.info(f"Deleting secret: {name}")
            try:
                secrets_client.delete_secret(SecretId=name, ForceDeleteWithoutRecovery=True)
                deleted_secrets.append(name)
            except ClientError as e:
                logger.warning(f"Failed to delete secret {name}: {e}")

        return {"status": "success", "deleted_secrets": deleted_secrets, "count": len(deleted_secrets)}

    def _cleanup_log_groups(self, environment: str) -> Dict[str, Any]:
        logs_client = get_logs_client()
        prefix = self.settings.log_group_prefix(environment)

        names = []
        paginator = logs_client.get_paginator("describe_log_groups")
        for page in paginator.paginate(logGroupNamePrefix=prefix):
            names.extend(group["logGroupName"] for group in page.get("logGroups", []))

        if not names:
            logger.info(f"No log groups found for environment: {environment}")

        deleted_log_groups = []
        for name in names:
            logger.info(f"Deleting log group: {name}")
            try:
                logs_client.delete_log_group(logGroupName=name)
                deleted_log_groups.append(name)
            except ClientError as e:
                logger.warning(f"Failed to delete log group {name}: {e}")

        return {"status": "success", "deleted_log_groups": deleted_log_groups, "count": len(deleted_log_groups)}

    def _cleanup_ecr_repository(self) -> Dict[str, Any]:
        repository = self.settings.ecr_repository
        if not ecr_repository_exists(repository):
            return {"status": "skipped", "count": 0}

        logger.info(f"Deleting ECR repository: {repository}")
        get_ecr_client().delete_repository(repositoryName=repository, force=True)
        return {"status": "success", "deleted_repository": repository, "count": 1}

    def _generate_cleanup_report(self, target: str) -> Dict[str, Any]:
        """Generate a cleanup report."""
        total_resources = sum(
            result.get("count", 0)
            for scope in self.cleanup_results.values()
            for result in scope.values()
            if isinstance(result, dict)
        )

        report = {
            "target": target,
            "timestamp": time.strftime("%Y-%m-%d %H:%M:%S UTC", time.gmtime()),
            "total_resources_cleaned": total_resources,
            "results": self.cleanup_results,
            "errors": self.errors,
            "status": "completed_with_errors" if self.errors else "success",
        }

        logger.info(f"Cleanup report generated: {total_resources} resources cleaned")
        if self.errors:
            logger.warning(f"Cleanup completed with {len(self.errors)} errors")

        return report
