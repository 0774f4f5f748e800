"""
Deploy command runner.

Each deploy type maps to an ordered list of shell commands. Commands run one
after another in the app root with stderr folded into stdout, and every
command's captured output is returned to the dashboard.
"""
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Dict, List, Optional

import yaml

from deploy_api.history import DeploymentHistory
from deploy_api.settings import Settings
from deploy_api.utils.decorators import log_operation

logger = logging.getLogger(__name__)

DEPLOY_TYPES = ("staging", "production", "rollback")


class DeploymentInProgressError(Exception):
    """Raised when a deployment is requested while another one is running."""


def default_command_table(settings: Settings) -> Dict[str, List[str]]:
    """Built-in command table for the wrapped Laravel app."""
    artisan = settings.artisan_command
    return {
        "staging": [
            'echo "🚀 Starting Staging Deployment..."',
            artisan("config:clear"),
            artisan("cache:clear"),
            artisan("route:clear"),
            artisan("view:clear"),
            'echo "✅ Staging deployment completed!"',
        ],
        "production": [
            'echo "🚀 Starting Production Deployment..."',
            artisan('down --message="Deploying updates..." --retry=60'),
            artisan("config:cache"),
            artisan("route:cache"),
            artisan("view:cache"),
            artisan("migrate --force"),
            artisan("up"),
            'echo "✅ Production deployment completed!"',
        ],
        "rollback": [
            'echo "🔄 Starting Rollback..."',
            artisan("migrate:rollback"),
            artisan("config:clear"),
            artisan("cache:clear"),
            'echo "✅ Rollback completed!"',
        ],
    }


def load_command_table(settings: Settings) -> Dict[str, List[str]]:
    """Default table, with any types listed in ``deploy_commands_file`` replaced."""
    table = default_command_table(settings)
    if not settings.deploy_commands_file:
        return table

    with open(settings.deploy_commands_file, "r") as f:
        overrides = yaml.safe_load(f) or {}

    if not isinstance(overrides, dict):
        raise ValueError(f"{settings.deploy_commands_file} must map deploy types to command lists")

    for deploy_type, commands in overrides.items():
        if deploy_type not in DEPLOY_TYPES:
            raise ValueError(f"Unknown deploy type in {settings.deploy_commands_file}: {deploy_type}")
        if not isinstance(commands, list) or not all(isinstance(c, str) for c in commands):
            raise ValueError(f"Commands for '{deploy_type}' must be a list of strings")
        table[deploy_type] = commands

    logger.info(f"Loaded deploy command overrides from {settings.deploy_commands_file}")
    return table


@dataclass
class CommandResult:
    command: str
    output: str
    exit_code: Optional[int]

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


@dataclass
class DeployOutcome:
    deploy_type: str
    results: List[CommandResult] = field(default_factory=list)
    timestamp: str = ""

    @property
    def success(self) -> bool:
        return all(result.succeeded for result in self.results)

    @property
    def message(self) -> str:
        label = self.deploy_type.capitalize()
        if self.success:
            return f"{label} deployment completed successfully!"
        return f"{label} deployment finished with errors"

    def to_response(self) -> Dict:
        return {
            "success": self.success,
            "message": self.message,
            "output": [asdict(result) for result in self.results],
            "timestamp": self.timestamp,
        }


class DeployRunner:
    """Runs the command table for a deploy type, one deployment at a time."""

    def __init__(self, settings: Settings, history: Optional[DeploymentHistory] = None):
        self.settings = settings
        self.history = history
        self._lock = threading.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def run_command(self, command: str) -> CommandResult:
        """Run one shell command, capturing stdout and stderr together."""
        cwd = self.settings.app_root if os.path.isdir(self.settings.app_root) else None
        try:
            completed = subprocess.run(
                command,
                shell=True,
                cwd=cwd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self.settings.deploy_command_timeout,
            )
            return CommandResult(command=command, output=completed.stdout, exit_code=completed.returncode)
        except subprocess.TimeoutExpired as e:
            partial = e.output or ""
            if isinstance(partial, bytes):
                partial = partial.decode("utf-8", errors="replace")
            logger.error(f"Command timed out after {self.settings.deploy_command_timeout}s: {command}")
            return CommandResult(
                command=command,
                output=f"{partial}Command timed out after {self.settings.deploy_command_timeout}s",
                exit_code=None,
            )

    @log_operation("Run deploy command table")
    def run(self, deploy_type: str) -> DeployOutcome:
        """Run every command for ``deploy_type`` and record the outcome."""
        if deploy_type not in DEPLOY_TYPES:
            raise ValueError(f"Unknown deploy type: {deploy_type}")

        if not self._lock.acquire(blocking=False):
            raise DeploymentInProgressError("Another deployment is already running")

        try:
            commands = load_command_table(self.settings)[deploy_type]
            outcome = DeployOutcome(deploy_type=deploy_type)

            for command in commands:
                result = self.run_command(command)
                if not result.succeeded:
                    logger.warning(f"Command exited with {result.exit_code}: {command}")
                outcome.results.append(result)

            outcome.timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

            if self.history is not None:
                self.history.record(
                    deploy_type,
                    "success" if outcome.success else "failed",
                    timestamp=outcome.timestamp,
                )
            return outcome
        finally:
            self._lock.release()
