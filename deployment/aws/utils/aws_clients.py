"""AWS utility functions and client management."""
import logging
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from deploy_api.settings import get_settings
from deployment.aws.exceptions import PrerequisiteError

logger = logging.getLogger(__name__)


class AWSClientManager:
    """Singleton manager for AWS service clients."""
    _instance = None
    _clients: Dict[str, Any] = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(AWSClientManager, cls).__new__(cls)
            cls._instance._initialize()
        return cls._instance

    def _initialize(self):
        """Initialize the client manager with settings."""
        self.settings = get_settings()

        self.region = self.settings.aws_region
        self.endpoint_url = self.settings.aws_endpoint_url
        self.profile = self.settings.aws_profile

        logger.info("Initializing AWSClientManager")
        logger.info(f"  Region: {self.region}")
        logger.info(f"  Endpoint: {self.endpoint_url}")
        if self.profile:
            logger.info(f"  Profile: {self.profile}")

    def _session(self) -> boto3.Session:
        if self.profile:
            return boto3.Session(profile_name=self.profile, region_name=self.region)
        return boto3.Session(region_name=self.region)

    def get_client(self, service_name: str) -> Any:
        """Get or create an AWS service client."""
        if service_name in self._clients:
            return self._clients[service_name]

        client_kwargs = {'region_name': self.region}
        if self.endpoint_url:
            client_kwargs['endpoint_url'] = self.endpoint_url

        try:
            client = self._session().client(service_name, **client_kwargs)
        except Exception as e:
            logger.error(f"Error creating {service_name} client: {str(e)}")
            raise

        self._clients[service_name] = client
        logger.debug(f"Created {service_name} client")
        return client

    @classmethod
    def reset(cls):
        """Drop cached clients and the singleton so the next use re-reads settings."""
        cls._clients.clear()
        cls._instance = None
        logger.debug("Cleared all AWS clients")


# Convenience functions for common operations

def get_sts_client():
    return AWSClientManager().get_client('sts')


def get_ecr_client():
    """Get the ECR client."""
    return AWSClientManager().get_client('ecr')


def get_ecs_client():
    """Get the ECS client."""
    return AWSClientManager().get_client('ecs')


def get_cloudformation_client():
    """Get the CloudFormation client."""
    return AWSClientManager().get_client('cloudformation')


def get_elbv2_client():
    """Get the Elastic Load Balancing v2 client."""
    return AWSClientManager().get_client('elbv2')


def get_secretsmanager_client():
    return AWSClientManager().get_client('secretsmanager')


def get_logs_client():
    """Get the CloudWatch Logs client."""
    return AWSClientManager().get_client('logs')


def get_rds_client():
    return AWSClientManager().get_client('rds')


def get_elasticache_client():
    return AWSClientManager().get_client('elasticache')


def get_account_id() -> str:
    """Account ID of the active credentials.

    Raises:
        PrerequisiteError: when no usable credentials are configured
    """
    try:
        return get_sts_client().get_caller_identity()['Account']
    except (ClientError, BotoCoreError) as e:
        raise PrerequisiteError(f"AWS credentials not configured: {e}") from e


def get_ecr_registry(account_id: Optional[str] = None) -> str:
    """Registry host, e.g. ``123456789012.dkr.ecr.us-east-1.amazonaws.com``."""
    account_id = account_id or get_account_id()
    return f"{account_id}.dkr.ecr.{get_settings().aws_region}.amazonaws.com"


def ecr_repository_exists(repository_name: str) -> bool:
    try:
        get_ecr_client().describe_repositories(repositoryNames=[repository_name])
        return True
    except ClientError as e:
        if e.response['Error']['Code'] == 'RepositoryNotFoundException':
            return False
        raise
