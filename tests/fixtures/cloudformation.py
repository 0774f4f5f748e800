"""CloudFormation templates and stack fixtures for deploy and cleanup tests."""
from pathlib import Path

import pytest

from deploy_api.settings import get_settings

INFRASTRUCTURE_TEMPLATE = """\
AWSTemplateFormatVersion: '2010-09-09'
Parameters:
  Environment:
    Type: String
  DBUsername:
    Type: String
  DBPassword:
    Type: String
    NoEcho: true
Resources:
  ArtifactsBucket:
    Type: AWS::S3::Bucket
Outputs:
  PrivateSubnets:
    Value: subnet-aaaa1111,subnet-bbbb2222
  ECSSecurityGroup:
    Value: sg-0123456789
"""

SERVICES_TEMPLATE = """\
AWSTemplateFormatVersion: '2010-09-09'
Parameters:
  Environment:
    Type: String
  ImageURI:
    Type: String
  DBPassword:
    Type: String
    NoEcho: true
  AppKey:
    Type: String
    NoEcho: true
Resources:
  AssetsBucket:
    Type: AWS::S3::Bucket
Outputs:
  ECSCluster:
    Value: staging-laravel-cluster
  ECSService:
    Value: staging-laravel-service
  TaskDefinition:
    Value: staging-laravel-task
  LoadBalancerURL:
    Value: http://staging-laravel-alb-123.us-east-1.elb.amazonaws.com
"""


@pytest.fixture
def cfn_templates(tmp_path) -> Path:
    """Write minimal stack templates under APP_ROOT/aws/cloudformation."""
    directory = tmp_path / "aws" / "cloudformation"
    directory.mkdir(parents=True, exist_ok=True)
    (directory / "ecs-infrastructure.yml").write_text(INFRASTRUCTURE_TEMPLATE)
    (directory / "ecs-services.yml").write_text(SERVICES_TEMPLATE)
    return directory


@pytest.fixture
def staging_stacks(mocked_aws, cfn_templates):
    """Both staging stacks, created directly through CloudFormation."""
    settings = get_settings()
    cfn = mocked_aws.client("cloudformation")
    cfn.create_stack(
        StackName=settings.infrastructure_stack("staging"),
        TemplateBody=INFRASTRUCTURE_TEMPLATE,
        Parameters=[
            {"ParameterKey": "Environment", "ParameterValue": "staging"},
            {"ParameterKey": "DBUsername", "ParameterValue": "laravel"},
            {"ParameterKey": "DBPassword", "ParameterValue": "pw"},
        ],
    )
    cfn.create_stack(
        StackName=settings.services_stack("staging"),
        TemplateBody=SERVICES_TEMPLATE,
        Parameters=[
            {"ParameterKey": "Environment", "ParameterValue": "staging"},
            {"ParameterKey": "ImageURI", "ParameterValue": "repo:latest"},
            {"ParameterKey": "DBPassword", "ParameterValue": "pw"},
            {"ParameterKey": "AppKey", "ParameterValue": "key"},
        ],
    )
    return cfn
