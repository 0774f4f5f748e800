"""
CI/CD pipeline self-test.

Each component check inspects the project checkout for the files and tools
its stage of the pipeline needs and returns a ``ComponentResult``. Missing
required pieces count as errors; recommended ones only warn.
"""
import logging
import os
import re
import shutil
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import yaml
from botocore.exceptions import ClientError

from deploy_api.settings import Settings, get_settings
from deployment.aws.exceptions import PrerequisiteError
from deployment.aws.utils.aws_clients import get_account_id, get_cloudformation_client
from deployment.pipeline.jenkins import JenkinsClient

logger = logging.getLogger(__name__)

COMPONENTS = ("docker", "laravel", "aws", "github", "jenkins")

COMPOSE_FILES = ("docker-compose.yml", "docker-compose.prod.yml")

DOCKER_CONFIGS = (
    "docker/nginx/nginx.conf",
    "docker/nginx/default.conf",
    "docker/php/php.ini",
    "docker/php/php-fpm.conf",
    "docker/mysql/my.cnf",
    "docker/redis/redis.conf",
    "docker/supervisor/supervisord.conf",
)

LARAVEL_FILES = (
    "artisan",
    "composer.json",
    "composer.lock",
    "package.json",
    "app/Http/Kernel.php",
    "config/app.php",
    "routes/web.php",
    "database/migrations",
    "tests",
)

REQUIRED_ENV_VARS = ("APP_KEY", "DB_CONNECTION", "DB_HOST", "DB_DATABASE")

CLOUDFORMATION_TEMPLATES = ("ecs-infrastructure.yml", "ecs-services.yml")

DEPLOY_TOOLS = ("deploy-kit",)

WORKFLOWS = (
    ".github/workflows/ci.yml",
    ".github/workflows/cd.yml",
    ".github/workflows/docker.yml",
)

JENKINSFILES = ("Jenkinsfile", "Jenkinsfile.rollback")

CommandRunner = Callable[[Sequence[str], Optional[str]], bool]


def command_succeeds(argv: Sequence[str], cwd: Optional[str] = None) -> bool:
    """True when ``argv`` runs and exits 0. Output is discarded."""
    try:
        result = subprocess.run(list(argv), cwd=cwd, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
    except (FileNotFoundError, PermissionError):
        return False
    return result.returncode == 0


@dataclass
class ComponentResult:
    name: str
    messages: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def errors(self) -> int:
        return sum(1 for level, _ in self.messages if level == "error")

    @property
    def passed(self) -> bool:
        return self.errors == 0

    def success(self, message: str) -> None:
        self.messages.append(("success", message))

    def error(self, message: str) -> None:
        logger.debug(f"[{self.name}] {message}")
        self.messages.append(("error", message))

    def warning(self, message: str) -> None:
        self.messages.append(("warning", message))

    def info(self, message: str) -> None:
        self.messages.append(("info", message))


class PipelineChecker:
    """Runs the component checks against a project checkout."""

    def __init__(self, settings: Optional[Settings] = None,
                 project_root: Optional[str] = None,
                 run: CommandRunner = command_succeeds,
                 jenkins: Optional[JenkinsClient] = None,
                 build_image: bool = True):
        self.settings = settings or get_settings()
        self.root = Path(project_root or self.settings.app_root)
        self.run = run
        self.jenkins = jenkins
        self.build_image = build_image

    def _exists(self, relative: str) -> bool:
        return (self.root / relative).exists()

    def _require(self, result: ComponentResult, relative: str, label: str) -> bool:
        if self._exists(relative):
            result.success(f"{label} found: {relative}")
            return True
        result.error(f"{label} not found: {relative}")
        return False

    def check_docker(self) -> ComponentResult:
        result = ComponentResult("docker")
        cwd = str(self.root)

        if self.run(["docker", "info"], cwd):
            result.success("Docker daemon is running")
        else:
            result.error("Docker daemon is not running")

        if self._require(result, "Dockerfile", "Dockerfile") and self.build_image:
            if self.run(["docker", "build", "-t", "test-build", "--target", "development", "."], cwd):
                result.success("Dockerfile builds successfully")
                self.run(["docker", "rmi", "test-build"], cwd)
            else:
                result.error("Dockerfile build failed")

        for compose_file in COMPOSE_FILES:
            if self._require(result, compose_file, "Compose file"):
                if self.run(["docker", "compose", "-f", compose_file, "config"], cwd):
                    result.success(f"{compose_file} syntax is valid")
                else:
                    result.error(f"{compose_file} syntax is invalid")

        for config in DOCKER_CONFIGS:
            self._require(result, config, "Docker config")

        if self._exists(".dockerignore"):
            result.success(".dockerignore found")
        else:
            result.warning(".dockerignore not found (recommended)")

        return result

    def check_laravel(self) -> ComponentResult:
        result = ComponentResult("laravel")

        for relative in LARAVEL_FILES:
            self._require(result, relative, "Laravel file/directory")

        self._require(result, ".env.example", "Environment template")

        env_path = self.root / ".env"
        if not env_path.exists():
            result.warning(".env not found (copy from .env.example)")
        else:
            result.success(".env found")
            contents = env_path.read_text()
            for var in REQUIRED_ENV_VARS:
                if re.search(rf"^{var}=", contents, re.MULTILINE):
                    result.success(f"Environment variable {var} is set")
                else:
                    result.error(f"Environment variable {var} is not set")

        if self._exists("vendor"):
            result.success("Composer dependencies installed")
            if self.run(self.settings.artisan_argv("--version"), str(self.root)):
                result.success("Laravel artisan command works")
            else:
                result.error("Laravel artisan command failed")
        else:
            result.warning("Composer dependencies not installed (run: composer install)")

        if self._exists("node_modules"):
            result.success("NPM dependencies installed")
        else:
            result.warning("NPM dependencies not installed (run: npm install)")

        return result

    def check_aws(self) -> ComponentResult:
        result = ComponentResult("aws")

        try:
            account_id = get_account_id()
            result.success(f"AWS credentials configured (account {account_id})")
        except PrerequisiteError as e:
            result.error(str(e))

        cloudformation_dir = self.root / self.settings.cloudformation_dir
        for template in CLOUDFORMATION_TEMPLATES:
            path = cloudformation_dir / template
            relative = os.path.join(self.settings.cloudformation_dir, template)
            if not path.exists():
                result.error(f"CloudFormation template not found: {relative}")
                continue
            result.success(f"CloudFormation template found: {relative}")
            try:
                get_cloudformation_client().validate_template(TemplateBody=path.read_text())
                result.success(f"CloudFormation template is valid: {relative}")
            except ClientError as e:
                result.error(f"CloudFormation template is invalid: {relative} ({e})")

        for tool in DEPLOY_TOOLS:
            if shutil.which(tool):
                result.success(f"Deploy tool available: {tool}")
            else:
                result.error(f"Deploy tool not on PATH: {tool}")

        return result

    def check_github(self) -> ComponentResult:
        result = ComponentResult("github")

        if not self._exists(".github/workflows"):
            result.error(".github/workflows directory not found")
        else:
            result.success(".github/workflows directory found")
            for workflow in WORKFLOWS:
                if not self._require(result, workflow, "GitHub workflow"):
                    continue
                try:
                    yaml.safe_load((self.root / workflow).read_text())
                    result.success(f"GitHub workflow YAML is valid: {workflow}")
                except yaml.YAMLError:
                    result.error(f"GitHub workflow YAML is invalid: {workflow}")

        if not self._exists(".git"):
            result.warning("Not in a git repository")
            return result

        result.success("Git repository detected")
        remote = self._origin_url()
        if remote is None:
            result.warning("No git remote configured")
        elif "github.com" in remote:
            result.success("GitHub remote configured")
        else:
            result.warning(f"Remote is not GitHub: {remote}")
        return result

    def _origin_url(self) -> Optional[str]:
        try:
            completed = subprocess.run(
                ["git", "remote", "get-url", "origin"],
                cwd=str(self.root), capture_output=True, text=True,
            )
        except FileNotFoundError:
            return None
        if completed.returncode != 0:
            return None
        return completed.stdout.strip()

    def check_jenkins(self) -> ComponentResult:
        result = ComponentResult("jenkins")

        for jenkinsfile in JENKINSFILES:
            self._require(result, jenkinsfile, "Jenkins pipeline")

        if self.jenkins is None:
            result.info("JENKINS_URL not set, skipping connectivity test")
        elif self.jenkins.is_reachable():
            result.success("Jenkins server is accessible")
        else:
            result.warning("Jenkins server is not accessible (check URL and network)")

        return result

    def run_checks(self, component: str = "all") -> List[ComponentResult]:
        checks: Dict[str, Callable[[], ComponentResult]] = {
            "docker": self.check_docker,
            "laravel": self.check_laravel,
            "aws": self.check_aws,
            "github": self.check_github,
            "jenkins": self.check_jenkins,
        }
        if component == "all":
            names = COMPONENTS
        elif component in checks:
            names = (component,)
        else:
            raise ValueError(f"Unknown component: {component}")

        results = []
        for name in names:
            logger.info(f"Testing {name} configuration...")
            results.append(checks[name]())
        return results
