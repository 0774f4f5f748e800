"""CloudFormation helpers: outputs lookup and create-or-update deploys."""
import logging
from typing import Dict, List, Optional

from botocore.exceptions import ClientError, WaiterError

from deployment.aws.exceptions import DeploymentError, StackOutputError, WaitTimeoutError
from deployment.aws.utils.aws_clients import get_cloudformation_client

logger = logging.getLogger(__name__)

NO_UPDATES_MESSAGE = "No updates are to be performed"

STACK_WAITER_CONFIG = {"Delay": 15, "MaxAttempts": 240}


def describe_stack(stack_name: str) -> Optional[Dict]:
    """Stack description, or None when the stack does not exist."""
    try:
        response = get_cloudformation_client().describe_stacks(StackName=stack_name)
    except ClientError as e:
        if e.response['Error']['Code'] == 'ValidationError' and 'does not exist' in str(e):
            return None
        raise
    stacks = response.get('Stacks', [])
    return stacks[0] if stacks else None


def stack_exists(stack_name: str) -> bool:
    stack = describe_stack(stack_name)
    return stack is not None and stack.get('StackStatus') != 'DELETE_COMPLETE'


def get_stack_outputs(stack_name: str) -> Dict[str, str]:
    """All ``OutputKey -> OutputValue`` pairs of a stack."""
    stack = describe_stack(stack_name)
    if stack is None:
        raise StackOutputError(stack_name)
    return {output['OutputKey']: output['OutputValue'] for output in stack.get('Outputs', [])}


def get_stack_output(stack_name: str, output_key: str) -> str:
    outputs = get_stack_outputs(stack_name)
    value = outputs.get(output_key)
    if not value:
        raise StackOutputError(stack_name, output_key)
    return value


def _to_parameters(parameters: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"ParameterKey": key, "ParameterValue": value} for key, value in parameters.items()]


def _to_tags(tags: Dict[str, str]) -> List[Dict[str, str]]:
    return [{"Key": key, "Value": value} for key, value in tags.items()]


def deploy_stack(stack_name: str,
                 template_path: str,
                 parameters: Dict[str, str],
                 tags: Dict[str, str],
                 capabilities: Optional[List[str]] = None,
                 waiter_config: Optional[Dict[str, int]] = None) -> str:
    """
    Create the stack, or update it if it already exists, and wait for it to settle.

    An update with nothing to change is treated as success.

    Returns:
        "created", "updated" or "unchanged"
    """
    cfn = get_cloudformation_client()
    capabilities = capabilities or ["CAPABILITY_NAMED_IAM"]
    waiter_config = waiter_config or STACK_WAITER_CONFIG

    try:
        with open(template_path, "r") as f:
            template_body = f.read()
    except IOError as e:
        raise DeploymentError(f"Cannot read template {template_path}: {e}") from e

    request = dict(
        StackName=stack_name,
        TemplateBody=template_body,
        Parameters=_to_parameters(parameters),
        Capabilities=capabilities,
        Tags=_to_tags(tags),
    )

    try:
        if stack_exists(stack_name):
            logger.info(f"Updating stack {stack_name}...")
            try:
                cfn.update_stack(**request)
            except ClientError as e:
                if NO_UPDATES_MESSAGE in str(e):
                    logger.info(f"No changes to deploy for stack {stack_name}")
                    return "unchanged"
                raise
            waiter_name, result = "stack_update_complete", "updated"
        else:
            logger.info(f"Creating stack {stack_name}...")
            cfn.create_stack(**request)
            waiter_name, result = "stack_create_complete", "created"
    except ClientError as e:
        raise DeploymentError(f"Stack {stack_name} deployment failed: {e}") from e

    try:
        cfn.get_waiter(waiter_name).wait(StackName=stack_name, WaiterConfig=waiter_config)
    except WaiterError as e:
        raise WaitTimeoutError(f"Stack {stack_name} did not reach a complete state: {e}") from e

    logger.info(f"✅ Stack {stack_name} {result}")
    return result


def delete_stack(stack_name: str, waiter_config: Optional[Dict[str, int]] = None) -> bool:
    """
    Delete a stack and wait for it to disappear.

    Returns False when the stack did not exist. Waiter failures are logged
    and not raised.
    """
    if not stack_exists(stack_name):
        logger.warning(f"Stack {stack_name} not found")
        return False

    cfn = get_cloudformation_client()
    cfn.delete_stack(StackName=stack_name)
    logger.info(f"⏳ Waiting for stack {stack_name} deletion to complete...")
    try:
        cfn.get_waiter("stack_delete_complete").wait(
            StackName=stack_name, WaiterConfig=waiter_config or STACK_WAITER_CONFIG
        )
    except WaiterError as e:
        logger.warning(f"⚠️ Stack {stack_name} deletion did not complete cleanly: {e}")
    return True
