"""Errors raised by the AWS deployment tooling."""
from typing import Optional


class DeploymentError(Exception):
    """Base class for every failure that should abort a deployment step."""


class PrerequisiteError(DeploymentError):
    """Missing credentials, tools or required environment variables."""


class StackOutputError(DeploymentError):
    """A CloudFormation stack is missing or lacks an expected output."""

    def __init__(self, stack_name: str, output_key: Optional[str] = None):
        self.stack_name = stack_name
        self.output_key = output_key
        if output_key:
            message = f"Stack {stack_name} has no output '{output_key}'"
        else:
            message = f"Stack {stack_name} not found"
        super().__init__(message)


class MigrationFailedError(DeploymentError):
    """The one-off migration task stopped with a nonzero exit code."""

    def __init__(self, exit_code, task_arn: Optional[str] = None):
        self.exit_code = exit_code
        self.task_arn = task_arn
        super().__init__(f"Database migrations failed with exit code: {exit_code}")


class HealthCheckFailedError(DeploymentError):
    """The application never answered its health endpoint."""

    def __init__(self, url: str, attempts: int):
        self.url = url
        self.attempts = attempts
        super().__init__(f"Health check failed after {attempts} attempts: {url}")


class WaitTimeoutError(DeploymentError):
    """An AWS waiter gave up before the resource reached the expected state."""
