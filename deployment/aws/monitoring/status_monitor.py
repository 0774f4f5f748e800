"""
Real-time deployment monitoring.

Follows a Jenkins build while it runs and shows, on every refresh, the
pipeline stage, the newest ECR images, the ECS service counts and events,
and the load balancer health.
"""

import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import requests
from botocore.exceptions import BotoCoreError, ClientError

from deploy_api.settings import Settings, get_settings
from deployment.aws.utils.aws_clients import get_ecr_client, get_ecs_client, get_elbv2_client
from deployment.aws.utils.health import is_healthy
from deployment.pipeline.jenkins import JenkinsClient

logger = logging.getLogger(__name__)

HEALTH_LABELS = {
    "healthy": "✅ Healthy",
    "unhealthy": "❌ Unhealthy",
    "alb_not_found": "⚠️ ALB not found",
}

JENKINS_LABELS = {
    "SUCCESS": "✅ SUCCESS",
    "FAILURE": "❌ FAILED",
    "BUILDING": "🔄 BUILDING",
}


class StatusMonitor:
    """Monitor a Jenkins-driven deployment of one environment."""

    def __init__(self, jenkins: JenkinsClient, build_number: int,
                 environment: str = "production",
                 settings: Optional[Settings] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.jenkins = jenkins
        self.build_number = build_number
        self.environment = environment
        self.sleep = sleep
        self.session = session

        self.cluster = self.settings.resource_name(environment, "cluster")
        self.service = self.settings.resource_name(environment, "service")
        self.alb_name = self.settings.resource_name(environment, "alb")

    def jenkins_status(self) -> str:
        return self.jenkins.build_result(self.build_number)

    def latest_images(self, count: int = 3) -> List[Dict[str, Any]]:
        """The ``count`` most recently pushed images, oldest first."""
        try:
            paginator = get_ecr_client().get_paginator("describe_images")
            details = []
            for page in paginator.paginate(repositoryName=self.settings.ecr_repository):
                details.extend(page.get("imageDetails", []))
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"describe_images failed: {e}")
            return []

        details.sort(key=lambda d: d["imagePushedAt"].timestamp() if d.get("imagePushedAt") else 0)
        return [
            {
                "tag": (d.get("imageTags") or ["<untagged>"])[0],
                "pushed": d.get("imagePushedAt"),
                "size": d.get("imageSizeInBytes"),
            }
            for d in details[-count:]
        ]

    def _describe_service(self) -> Optional[Dict[str, Any]]:
        try:
            response = get_ecs_client().describe_services(cluster=self.cluster, services=[self.service])
        except (ClientError, BotoCoreError) as e:
            logger.debug(f"describe_services failed: {e}")
            return None
        services = response.get("services", [])
        return services[0] if services else None

    def ecs_status(self) -> Dict[str, Any]:
        service = self._describe_service()
        if service is None:
            return {"status": "Unknown", "running": 0, "desired": 0, "pending": 0}
        return {
            "status": service.get("status", "Unknown"),
            "running": service.get("runningCount", 0),
            "desired": service.get("desiredCount", 0),
            "pending": service.get("pendingCount", 0),
        }

    def ecs_events(self, count: int = 3) -> List[str]:
        service = self._describe_service()
        if service is None:
            return []
        return [f"{event.get('createdAt')} {event.get('message')}" for event in service.get("events", [])[:count]]

    def alb_dns(self) -> Optional[str]:
        try:
            response = get_elbv2_client().describe_load_balancers(Names=[self.alb_name])
        except (ClientError, BotoCoreError):
            return None
        balancers = response.get("LoadBalancers", [])
        return balancers[0].get("DNSName") if balancers else None

    def alb_health(self, dns: Optional[str] = None) -> str:
        dns = dns or self.alb_dns()
        if not dns:
            return "alb_not_found"
        return "healthy" if is_healthy(dns, session=self.session) else "unhealthy"

    def snapshot(self) -> Dict[str, Any]:
        """Everything one refresh of the monitor shows."""
        dns = self.alb_dns()
        return {
            "time": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "jenkins": {
                "status": self.jenkins_status(),
                "stage": self.jenkins.current_stage(self.build_number),
                "build_url": self.jenkins.job_url(self.build_number),
            },
            "images": self.latest_images(),
            "ecs": self.ecs_status(),
            "events": self.ecs_events(),
            "health": self.alb_health(dns),
            "alb_dns": dns,
        }

    def render(self, snapshot: Dict[str, Any]) -> List[str]:
        jenkins = snapshot["jenkins"]
        ecs = snapshot["ecs"]
        status_label = JENKINS_LABELS.get(jenkins["status"], f"⚠️ {jenkins['status']}")

        lines = [
            "📊 Real-time Deployment Monitor",
            "=" * 50,
            f"Time: {snapshot['time']}",
            "",
            "🔧 Jenkins Pipeline",
            f"Status: {status_label}",
            f"Current Stage: {jenkins['stage']}",
            f"Build URL: {jenkins['build_url']}",
            "",
            "📦 ECR Repository",
        ]
        if snapshot["images"]:
            for image in snapshot["images"]:
                lines.append(f"  {image['tag']:<30} {image['pushed']}  {image['size']} bytes")
        else:
            lines.append("  No images found")

        lines += [
            "",
            "🚀 ECS Service",
            f"Status: {ecs['status']}",
            f"Tasks: {ecs['running']}/{ecs['desired']} running, {ecs['pending']} pending",
            "",
            "📋 Recent Events:",
        ]
        lines += [f"  {event}" for event in snapshot["events"]]
        lines += [
            "",
            "🏥 Application Health",
            f"Health Check: {HEALTH_LABELS[snapshot['health']]}",
        ]
        if snapshot["alb_dns"]:
            lines.append(f"URL: http://{snapshot['alb_dns']}")
        lines += ["", "=" * 50, "Press Ctrl+C to exit monitoring"]
        return lines

    def monitor(self, echo: Callable[[str], None],
                max_iterations: int = 120, interval: float = 5) -> str:
        """
        Refresh until the build finishes or the iteration budget runs out.

        Returns:
            The terminal Jenkins result, or "TIMEOUT"
        """
        for _ in range(max_iterations):
            snapshot = self.snapshot()
            for line in self.render(snapshot):
                echo(line)

            status = snapshot["jenkins"]["status"]
            if status == "SUCCESS":
                echo("")
                echo("🎉 Deployment completed successfully!")
                return status
            if status == "FAILURE":
                echo("")
                echo("❌ Deployment failed!")
                echo(f"Check Jenkins logs: {self.jenkins.job_url(self.build_number)}console")
                return status

            self.sleep(interval)

        echo("")
        echo("⏰ Monitoring timeout reached")
        return "TIMEOUT"

    def summary(self) -> List[str]:
        ecs = self.ecs_status()
        dns = self.alb_dns()
        lines = [
            "📊 Deployment Summary",
            "=" * 50,
            f"Jenkins Build: {self.jenkins_status()}",
            f"ECS Service: {ecs['status']}",
            f"Running Tasks: {ecs['running']}/{ecs['desired']}",
            f"Health Check: {HEALTH_LABELS[self.alb_health(dns)]}",
        ]
        if dns:
            lines.append(f"Application URL: http://{dns}")
        lines.append("=" * 50)
        return lines
