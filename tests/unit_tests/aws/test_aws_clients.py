import pytest

from deployment.aws.exceptions import PrerequisiteError
from deployment.aws.utils import aws_clients
from deployment.aws.utils.aws_clients import (
    AWSClientManager,
    ecr_repository_exists,
    get_account_id,
    get_ecr_registry,
)
from tests.consts import TEST_ACCOUNT_ID, TEST_REGION, TEST_REPOSITORY


def test_client_manager_is_singleton_and_caches_clients(mocked_aws):
    manager = AWSClientManager()

    assert AWSClientManager() is manager
    assert manager.get_client("ecr") is manager.get_client("ecr")
    assert manager.region == TEST_REGION


def test_reset_rereads_settings(mocked_aws, monkeypatch):
    from deploy_api.settings import get_settings

    first = AWSClientManager()
    monkeypatch.setenv("AWS_REGION", "eu-west-1")
    get_settings.cache_clear()
    AWSClientManager.reset()

    second = AWSClientManager()
    assert second is not first
    assert second.region == "eu-west-1"


def test_account_id_and_registry(mocked_aws):
    assert get_account_id() == TEST_ACCOUNT_ID
    assert get_ecr_registry() == f"{TEST_ACCOUNT_ID}.dkr.ecr.{TEST_REGION}.amazonaws.com"


def test_missing_credentials_raise_prerequisite_error(monkeypatch):
    from botocore.exceptions import NoCredentialsError

    class NoCredentialsSts:
        def get_caller_identity(self):
            raise NoCredentialsError()

    monkeypatch.setattr(aws_clients, "get_sts_client", lambda: NoCredentialsSts())

    with pytest.raises(PrerequisiteError):
        get_account_id()


def test_ecr_repository_exists(mocked_aws):
    assert not ecr_repository_exists(TEST_REPOSITORY)

    mocked_aws.client("ecr").create_repository(repositoryName=TEST_REPOSITORY)
    assert ecr_repository_exists(TEST_REPOSITORY)
