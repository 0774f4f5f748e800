"""
Environment readiness checks.

Walks every resource a deployed environment depends on (credentials, ECR,
both stacks, cluster, service, task definition, load balancer, database,
cache) and reports what is ready and what is missing.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from deploy_api.settings import Settings, get_settings
from deployment.aws.exceptions import PrerequisiteError
from deployment.aws.utils.aws_clients import (
    get_account_id,
    get_ecr_client,
    get_ecs_client,
    get_elasticache_client,
    get_elbv2_client,
    get_rds_client,
)
from deployment.aws.utils.health import is_healthy
from deployment.aws.utils.stacks import describe_stack

logger = logging.getLogger(__name__)

READY_STACK_STATUSES = ("CREATE_COMPLETE", "UPDATE_COMPLETE")

OK, WARN, FAIL = "ok", "warning", "failed"

AWS_ERRORS = (ClientError, BotoCoreError)


@dataclass
class CheckResult:
    name: str
    status: str
    detail: str = ""

    @property
    def marker(self) -> str:
        return {OK: "✅", WARN: "⚠️", FAIL: "❌"}[self.status]


class EnvironmentChecker:
    """Readiness checks for one environment."""

    def __init__(self, environment: str = "production",
                 settings: Optional[Settings] = None,
                 session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.environment = environment
        self.session = session
        self.alb_dns: Optional[str] = None

    def name(self, suffix: str) -> str:
        return self.settings.resource_name(self.environment, suffix)

    def check_credentials(self) -> CheckResult:
        try:
            return CheckResult("AWS connectivity", OK, f"Account ID: {get_account_id()}")
        except PrerequisiteError as e:
            return CheckResult("AWS connectivity", FAIL, str(e))

    def check_ecr_repository(self) -> CheckResult:
        repository = self.settings.ecr_repository
        try:
            response = get_ecr_client().describe_repositories(repositoryNames=[repository])
        except AWS_ERRORS:
            return CheckResult("ECR repository", FAIL, "Run: deploy-kit setup-ecr")
        return CheckResult("ECR repository", OK, f"Repository URI: {response['repositories'][0]['repositoryUri']}")

    def check_stack(self, label: str, stack_name: str) -> CheckResult:
        stack = describe_stack(stack_name)
        if stack is None:
            return CheckResult(label, FAIL, f"{stack_name} not found")
        status = stack.get("StackStatus")
        if status in READY_STACK_STATUSES:
            return CheckResult(label, OK, f"{stack_name} is ready")
        return CheckResult(label, WARN, f"{stack_name} status: {status}")

    def check_cluster(self) -> CheckResult:
        response = get_ecs_client().describe_clusters(clusters=[self.name("cluster")])
        clusters = response.get("clusters", [])
        if not clusters:
            return CheckResult("ECS cluster", FAIL, f"{self.name('cluster')} not found")
        cluster = clusters[0]
        if cluster.get("status") == "ACTIVE":
            return CheckResult("ECS cluster", OK, f"Running tasks: {cluster.get('runningTasksCount', 0)}")
        return CheckResult("ECS cluster", WARN, f"Cluster status: {cluster.get('status')}")

    def check_service(self) -> CheckResult:
        try:
            response = get_ecs_client().describe_services(
                cluster=self.name("cluster"), services=[self.name("service")]
            )
        except AWS_ERRORS:
            return CheckResult("ECS service", FAIL, f"{self.name('service')} not found")
        services = response.get("services", [])
        if not services:
            return CheckResult("ECS service", FAIL, f"{self.name('service')} not found")
        service = services[0]
        counts = f"Desired: {service.get('desiredCount', 0)}, Running: {service.get('runningCount', 0)}"
        if service.get("status") == "ACTIVE":
            return CheckResult("ECS service", OK, counts)
        return CheckResult("ECS service", WARN, f"Service status: {service.get('status')}")

    def check_task_definition(self) -> CheckResult:
        try:
            definition = get_ecs_client().describe_task_definition(
                taskDefinition=self.name("task")
            )["taskDefinition"]
        except AWS_ERRORS:
            return CheckResult("Task definition", FAIL, f"{self.name('task')} not found")
        containers = definition.get("containerDefinitions", [])
        image = containers[0].get("image") if containers else "n/a"
        return CheckResult(
            "Task definition", OK,
            f"{definition.get('family')}:{definition.get('revision')} image {image}",
        )

    def check_load_balancer(self) -> CheckResult:
        try:
            response = get_elbv2_client().describe_load_balancers(Names=[self.name("alb")])
        except AWS_ERRORS:
            return CheckResult("Load balancer", FAIL, f"{self.name('alb')} not found")
        balancer = response["LoadBalancers"][0]
        state = balancer.get("State", {}).get("Code")
        if state != "active":
            return CheckResult("Load balancer", WARN, f"Load balancer state: {state}")
        self.alb_dns = balancer.get("DNSName")
        return CheckResult("Load balancer", OK, f"DNS Name: {self.alb_dns}")

    def check_health(self) -> CheckResult:
        if not self.alb_dns:
            return CheckResult("Application health", WARN, "Skipped: no active load balancer")
        url = f"http://{self.alb_dns}/health"
        if is_healthy(self.alb_dns, session=self.session):
            return CheckResult("Application health", OK, url)
        return CheckResult("Application health", FAIL, url)

    def check_database(self) -> CheckResult:
        try:
            response = get_rds_client().describe_db_clusters(DBClusterIdentifier=self.name("rds"))
        except AWS_ERRORS:
            return CheckResult("RDS database", FAIL, f"{self.name('rds')} not found")
        cluster = response["DBClusters"][0]
        if cluster.get("Status") == "available":
            return CheckResult("RDS database", OK, f"Endpoint: {cluster.get('Endpoint')}")
        return CheckResult("RDS database", WARN, f"RDS database status: {cluster.get('Status')}")

    def check_cache(self) -> CheckResult:
        try:
            response = get_elasticache_client().describe_cache_clusters(
                CacheClusterId=self.name("redis"), ShowCacheNodeInfo=True
            )
        except AWS_ERRORS:
            return CheckResult("ElastiCache Redis", FAIL, f"{self.name('redis')} not found")
        cluster = response["CacheClusters"][0]
        status = cluster.get("CacheClusterStatus")
        if status != "available":
            return CheckResult("ElastiCache Redis", WARN, f"ElastiCache Redis status: {status}")
        nodes = cluster.get("CacheNodes", [])
        endpoint = nodes[0].get("Endpoint", {}).get("Address", "N/A") if nodes else "N/A"
        return CheckResult("ElastiCache Redis", OK, f"Endpoint: {endpoint}")

    def check_images(self) -> CheckResult:
        try:
            paginator = get_ecr_client().get_paginator("list_images")
            image_ids = []
            for page in paginator.paginate(repositoryName=self.settings.ecr_repository):
                image_ids.extend(page.get("imageIds", []))
        except AWS_ERRORS:
            image_ids = []
        if any(image.get("imageTag") for image in image_ids):
            return CheckResult("Docker images in ECR", OK, f"Total images: {len(image_ids)}")
        return CheckResult("Docker images in ECR", WARN, "No images yet; run a deployment to push one")

    def run(self) -> Dict[str, Any]:
        """Run every check; without working credentials only the connectivity check is reported."""
        credentials = self.check_credentials()
        logger.info(f"{credentials.marker} {credentials.name}: {credentials.detail}")
        if credentials.status == FAIL:
            return self._report([credentials])

        checks: List[Callable[[], CheckResult]] = [
            self.check_ecr_repository,
            lambda: self.check_stack("Infrastructure stack", self.settings.infrastructure_stack(self.environment)),
            lambda: self.check_stack("Services stack", self.settings.services_stack(self.environment)),
            self.check_cluster,
            self.check_service,
            self.check_task_definition,
            self.check_load_balancer,
            self.check_health,
            self.check_database,
            self.check_cache,
            self.check_images,
        ]

        results = [credentials]
        for check in checks:
            try:
                result = check()
            except AWS_ERRORS as e:
                result = CheckResult(getattr(check, "__name__", "check"), FAIL, str(e))
            logger.info(f"{result.marker} {result.name}: {result.detail}")
            results.append(result)

        return self._report(results)

    def _report(self, results: List[CheckResult]) -> Dict[str, Any]:
        failed = [r for r in results if r.status == FAIL]
        return {
            "environment": self.environment,
            "results": results,
            "application_url": f"http://{self.alb_dns}" if self.alb_dns else None,
            "status": "failed" if failed else "ready",
        }
