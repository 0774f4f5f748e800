"""
ECR repository setup.

Creates the image repository with scan-on-push and AES256 encryption, applies
the image retention rules and grants the account root push/pull access.
"""
import json
import logging
import shutil
from typing import Dict, List, Optional

from botocore.exceptions import ClientError

from deploy_api.settings import Settings, get_settings
from deploy_api.utils.decorators import log_operation
from deployment.aws.exceptions import DeploymentError, PrerequisiteError
from deployment.aws.utils.aws_clients import (
    ecr_repository_exists,
    get_account_id,
    get_ecr_client,
    get_ecr_registry,
)

logger = logging.getLogger(__name__)

REPOSITORY_TAGS = [
    {"Key": "Project", "Value": "Laravel"},
    {"Key": "ManagedBy", "Value": "Script"},
]

PUSH_PULL_ACTIONS = [
    "ecr:GetDownloadUrlForLayer",
    "ecr:BatchGetImage",
    "ecr:BatchCheckLayerAvailability",
    "ecr:PutImage",
    "ecr:InitiateLayerUpload",
    "ecr:UploadLayerPart",
    "ecr:CompleteLayerUpload",
]


def lifecycle_policy() -> Dict:
    """Keep 10 release images, 5 staging images, 3 ``latest`` images; expire untagged after a day."""
    def keep_tagged(priority: int, description: str, prefixes: List[str], count: int) -> Dict:
        return {
            "rulePriority": priority,
            "description": description,
            "selection": {
                "tagStatus": "tagged",
                "tagPrefixList": prefixes,
                "countType": "imageCountMoreThan",
                "countNumber": count,
            },
            "action": {"type": "expire"},
        }

    return {
        "rules": [
            keep_tagged(1, "Keep last 10 production images", ["v", "prod"], 10),
            keep_tagged(2, "Keep last 5 staging images", ["staging", "develop"], 5),
            keep_tagged(3, "Keep last 3 latest images", ["latest"], 3),
            {
                "rulePriority": 4,
                "description": "Delete untagged images older than 1 day",
                "selection": {
                    "tagStatus": "untagged",
                    "countType": "sinceImagePushed",
                    "countUnit": "days",
                    "countNumber": 1,
                },
                "action": {"type": "expire"},
            },
        ]
    }


def repository_policy(account_id: str) -> Dict:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Sid": "AllowPushPull",
                "Effect": "Allow",
                "Principal": {"AWS": [f"arn:aws:iam::{account_id}:root"]},
                "Action": PUSH_PULL_ACTIONS,
            }
        ],
    }


def check_prerequisites(required_tools: Optional[List[str]] = None) -> str:
    """Verify credentials (and optionally CLI tools). Returns the account ID."""
    logger.info("Checking prerequisites...")
    for tool in required_tools or []:
        if shutil.which(tool) is None:
            raise PrerequisiteError(f"{tool} is not installed")
    account_id = get_account_id()
    logger.info("✅ Prerequisites check passed")
    return account_id


@log_operation("Create ECR repository")
def create_repository(repository_name: str, tags: Optional[List[Dict[str, str]]] = None) -> bool:
    """Create the repository. Returns False when it already existed."""
    if ecr_repository_exists(repository_name):
        logger.warning(f"⚠️ ECR repository {repository_name} already exists")
        return False

    kwargs = dict(
        repositoryName=repository_name,
        imageScanningConfiguration={"scanOnPush": True},
        encryptionConfiguration={"encryptionType": "AES256"},
    )
    if tags:
        kwargs["tags"] = tags

    try:
        get_ecr_client().create_repository(**kwargs)
    except ClientError as e:
        raise DeploymentError(f"Failed to create ECR repository {repository_name}: {e}") from e

    logger.info(f"✅ ECR repository {repository_name} created successfully")
    return True


@log_operation("Apply ECR lifecycle policy")
def apply_lifecycle_policy(repository_name: str) -> None:
    get_ecr_client().put_lifecycle_policy(
        repositoryName=repository_name,
        lifecyclePolicyText=json.dumps(lifecycle_policy()),
    )
    logger.info("✅ Lifecycle policy applied successfully")


@log_operation("Apply ECR repository policy")
def apply_repository_policy(repository_name: str, account_id: str) -> None:
    get_ecr_client().set_repository_policy(
        repositoryName=repository_name,
        policyText=json.dumps(repository_policy(account_id)),
    )
    logger.info("✅ Repository policy applied successfully")


def login_instructions(repository_name: str, registry: str, region: str) -> List[str]:
    """Human-readable registry details and the docker commands to push an image."""
    return [
        "Repository Details:",
        f"  Name: {repository_name}",
        f"  Region: {region}",
        f"  Registry URL: {registry}",
        f"  Repository URI: {registry}/{repository_name}",
        "",
        "To login to ECR, run:",
        f"  aws ecr get-login-password --region {region} | docker login --username AWS --password-stdin {registry}",
        "",
        "To build and push your image:",
        f"  docker build -t {repository_name} .",
        f"  docker tag {repository_name}:latest {registry}/{repository_name}:latest",
        f"  docker push {registry}/{repository_name}:latest",
    ]


def setup_ecr(repository_name: Optional[str] = None, settings: Optional[Settings] = None) -> Dict:
    """
    Full ECR setup for ``repository_name`` (defaults to the configured repository).

    Returns:
        Dict with the repository name, registry, whether it was created, and
        the instruction lines to print
    """
    settings = settings or get_settings()
    repository_name = repository_name or settings.ecr_repository
    if not repository_name:
        raise DeploymentError("Repository name is required")

    logger.info(f"Setting up ECR repository: {repository_name} in region: {settings.aws_region}")

    account_id = check_prerequisites()
    created = create_repository(repository_name, tags=REPOSITORY_TAGS)
    apply_lifecycle_policy(repository_name)
    apply_repository_policy(repository_name, account_id)

    registry = get_ecr_registry(account_id)
    logger.info("✅ ECR setup completed successfully!")
    return {
        "repository": repository_name,
        "registry": registry,
        "repository_uri": f"{registry}/{repository_name}",
        "created": created,
        "instructions": login_instructions(repository_name, registry, settings.aws_region),
    }
