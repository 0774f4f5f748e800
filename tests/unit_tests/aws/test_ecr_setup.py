import json

import pytest

from deployment.aws.exceptions import PrerequisiteError
from deployment.aws.setup.ecr import (
    check_prerequisites,
    create_repository,
    lifecycle_policy,
    repository_policy,
    setup_ecr,
)
from tests.consts import TEST_ACCOUNT_ID, TEST_REPOSITORY


def test_setup_ecr_creates_configured_repository(mocked_aws):
    result = setup_ecr(TEST_REPOSITORY)

    assert result["created"] is True
    assert result["repository_uri"] == f"{TEST_ACCOUNT_ID}.dkr.ecr.us-east-1.amazonaws.com/{TEST_REPOSITORY}"

    ecr = mocked_aws.client("ecr")
    repository = ecr.describe_repositories(repositoryNames=[TEST_REPOSITORY])["repositories"][0]
    assert repository["imageScanningConfiguration"]["scanOnPush"] is True

    policy = json.loads(ecr.get_lifecycle_policy(repositoryName=TEST_REPOSITORY)["lifecyclePolicyText"])
    assert [rule["rulePriority"] for rule in policy["rules"]] == [1, 2, 3, 4]

    access = json.loads(ecr.get_repository_policy(repositoryName=TEST_REPOSITORY)["policyText"])
    assert access["Statement"][0]["Principal"]["AWS"] == [f"arn:aws:iam::{TEST_ACCOUNT_ID}:root"]


def test_setup_ecr_is_idempotent(mocked_aws):
    setup_ecr(TEST_REPOSITORY)
    result = setup_ecr(TEST_REPOSITORY)

    assert result["created"] is False


def test_setup_ecr_defaults_to_configured_name(mocked_aws, monkeypatch):
    from deploy_api.settings import get_settings

    monkeypatch.setenv("ECR_REPOSITORY", "shop-app")
    get_settings.cache_clear()

    assert setup_ecr()["repository"] == "shop-app"


def test_login_instructions_include_push_commands(mocked_aws):
    instructions = setup_ecr(TEST_REPOSITORY)["instructions"]
    registry = f"{TEST_ACCOUNT_ID}.dkr.ecr.us-east-1.amazonaws.com"

    assert f"  docker push {registry}/{TEST_REPOSITORY}:latest" in instructions


def test_create_repository_reports_existing(mocked_aws):
    assert create_repository(TEST_REPOSITORY) is True
    assert create_repository(TEST_REPOSITORY) is False


def test_lifecycle_rules():
    rules = lifecycle_policy()["rules"]

    assert rules[0]["selection"]["tagPrefixList"] == ["v", "prod"]
    assert rules[0]["selection"]["countNumber"] == 10
    assert rules[3]["selection"]["tagStatus"] == "untagged"


def test_repository_policy_actions():
    statement = repository_policy("111122223333")["Statement"][0]

    assert statement["Sid"] == "AllowPushPull"
    assert "ecr:PutImage" in statement["Action"]


def test_missing_tool_fails_prerequisites(mocked_aws):
    with pytest.raises(PrerequisiteError, match="is not installed"):
        check_prerequisites(["definitely-not-a-real-tool-xyz"])
