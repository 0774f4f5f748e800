import boto3
import pytest
from fastapi.testclient import TestClient
from moto import mock_aws

from deploy_api.main import create_app
from deploy_api.settings import Settings, get_settings
from deployment.aws.utils.aws_clients import AWSClientManager
from tests.consts import TEST_APP_KEY, TEST_DB_PASSWORD, TEST_REGION
from tests.fixtures.cloudformation import cfn_templates, staging_stacks  # noqa: F401

# Keys a developer's shell might export that would leak into Settings
SETTINGS_ENV_VARS = (
    "APP_ROOT", "APP_ENV", "APP_KEY", "DB_PASSWORD", "DB_CONNECTION", "CACHE_DRIVER",
    "DEPLOY_COMMANDS_FILE", "AWS_ENDPOINT_URL", "AWS_PROFILE", "ECR_REPOSITORY",
    "JENKINS_URL", "JENKINS_TOKEN", "WEBHOOK_TOKEN", "GITHUB_REPO", "CONTAINER_ROLE",
    "DB_USERNAME", "COMPOSE_COMMAND", "APP_CONTAINER", "MYSQL_CONTAINER", "LOCAL_URL",
    "CONTAINER_NAME",
)


def point_away_from_aws(monkeypatch):
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", TEST_REGION)
    monkeypatch.setenv("AWS_REGION", TEST_REGION)


@pytest.fixture(autouse=True)
def clean_settings(monkeypatch, tmp_path):
    """Each test starts from default settings rooted in its own tmp directory."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("APP_ROOT", str(tmp_path))
    get_settings.cache_clear()
    AWSClientManager.reset()
    yield
    get_settings.cache_clear()
    AWSClientManager.reset()


@pytest.fixture
def mocked_aws(monkeypatch):
    """
    Set up a mocked AWS environment for testing.

    Clients created through AWSClientManager inside the test talk to moto.
    """
    point_away_from_aws(monkeypatch)
    monkeypatch.setenv("DB_PASSWORD", TEST_DB_PASSWORD)
    monkeypatch.setenv("APP_KEY", TEST_APP_KEY)
    get_settings.cache_clear()
    AWSClientManager.reset()

    with mock_aws():
        yield boto3.Session(region_name=TEST_REGION)

    AWSClientManager.reset()


@pytest.fixture
def settings(tmp_path) -> Settings:
    (tmp_path / "database").mkdir()
    return Settings(
        app_root=str(tmp_path),
        app_env="testing",
        app_version="9.9.9",
        cache_driver="array",
        db_connection="sqlite",
        db_database="database/database.sqlite",
        deploy_history_file="storage/deployments.json",
    )


@pytest.fixture
def client(settings) -> TestClient:
    app = create_app(settings=settings)
    with TestClient(app) as client:
        yield client
