import json

import pytest

from deployment.aws.cleanup.cleanup_manager import CleanupManager, cleanup_warning
from deployment.aws.exceptions import DeploymentError
from deployment.aws.utils.stacks import stack_exists
from tests.consts import TEST_REPOSITORY


def push_images(ecr, tags):
    ecr.create_repository(repositoryName=TEST_REPOSITORY)
    for tag in tags:
        manifest = {
            "schemaVersion": 2,
            "mediaType": "application/vnd.docker.distribution.manifest.v2+json",
            "config": {"digest": f"sha256:{tag}"},
        }
        ecr.put_image(repositoryName=TEST_REPOSITORY, imageManifest=json.dumps(manifest), imageTag=tag)


def remaining_tags(ecr):
    image_ids = ecr.list_images(repositoryName=TEST_REPOSITORY)["imageIds"]
    return sorted(i["imageTag"] for i in image_ids if "imageTag" in i)


def test_invalid_target():
    with pytest.raises(DeploymentError):
        CleanupManager().cleanup("qa")


def test_cleanup_warning_names_environment():
    lines = cleanup_warning("staging")

    assert "staging" in lines[0]
    assert lines[-1] == "THIS ACTION CANNOT BE UNDONE!"


def test_cleanup_staging(staging_stacks, mocked_aws):
    ecr = mocked_aws.client("ecr")
    push_images(ecr, ["staging-abc", "staging-def", "production-abc", "latest"])

    secrets = mocked_aws.client("secretsmanager")
    secrets.create_secret(Name="staging/laravel/db", SecretString="pw")
    secrets.create_secret(Name="production/laravel/db", SecretString="pw")

    logs = mocked_aws.client("logs")
    logs.create_log_group(logGroupName="/ecs/staging-laravel")
    logs.create_log_group(logGroupName="/ecs/staging-laravel-queue")
    logs.create_log_group(logGroupName="/ecs/production-laravel")

    report = CleanupManager().cleanup("staging")

    assert report["status"] == "success", report["errors"]
    assert report["target"] == "staging"

    results = report["results"]["staging"]
    assert results["ECS Services"]["deleted_stack"] == "staging-laravel-services"
    # no such cluster in the account, so the scale down is skipped
    assert results["ECS Services"]["scaled_down"] is False
    assert results["Infrastructure"]["deleted_stack"] == "staging-laravel-infrastructure"
    assert sorted(results["ECR Images"]["deleted_images"]) == ["staging-abc", "staging-def"]
    assert results["Secrets"]["deleted_secrets"] == ["staging/laravel/db"]
    assert sorted(results["CloudWatch Logs"]["deleted_log_groups"]) == [
        "/ecs/staging-laravel",
        "/ecs/staging-laravel-queue",
    ]
    assert report["total_resources_cleaned"] == 1 + 1 + 2 + 1 + 2

    assert not stack_exists("staging-laravel-services")
    assert not stack_exists("staging-laravel-infrastructure")
    assert remaining_tags(ecr) == ["latest", "production-abc"]
    remaining_secrets = [s["Name"] for s in secrets.list_secrets()["SecretList"]]
    assert remaining_secrets == ["production/laravel/db"]
    remaining_groups = [g["logGroupName"] for g in logs.describe_log_groups()["logGroups"]]
    assert remaining_groups == ["/ecs/production-laravel"]


def test_cleanup_of_empty_environment_skips(mocked_aws):
    report = CleanupManager().cleanup("production")

    results = report["results"]["production"]
    assert report["status"] == "success"
    assert results["ECS Services"]["status"] == "skipped"
    assert results["Infrastructure"]["status"] == "skipped"
    assert results["ECR Images"]["status"] == "skipped"
    assert report["total_resources_cleaned"] == 0


def test_cleanup_all_removes_repository(mocked_aws):
    ecr = mocked_aws.client("ecr")
    push_images(ecr, ["staging-1", "latest"])

    report = CleanupManager().cleanup("all")

    assert set(report["results"]) == {"staging", "production", "all"}
    assert report["results"]["all"]["ECR Repository"]["deleted_repository"] == TEST_REPOSITORY
    assert ecr.describe_repositories()["repositories"] == []


def test_failed_step_is_recorded_and_run_continues(mocked_aws):
    manager = CleanupManager()

    def broken(environment):
        raise DeploymentError("stack stuck in DELETE_FAILED")

    manager._cleanup_infrastructure = broken
    report = manager.cleanup("staging")

    assert report["status"] == "completed_with_errors"
    assert len(report["errors"]) == 1
    assert "Infrastructure cleanup failed for staging" in report["errors"][0]
    assert report["results"]["staging"]["Infrastructure"]["status"] == "error"
    assert report["results"]["staging"]["CloudWatch Logs"]["status"] == "success"
