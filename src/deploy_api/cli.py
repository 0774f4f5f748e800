# cli.py
import json
import logging

import click

from deploy_api import entrypoint
from deploy_api.deploy_runner import DEPLOY_TYPES, DeployRunner, DeploymentInProgressError
from deploy_api.history import DeploymentHistory
from deploy_api.settings import get_settings

# Configure logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def configure_logging(level: str) -> None:
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


@click.group()
def cli():
    """CLI commands for the deploy dashboard and container entrypoint"""
    configure_logging(get_settings().log_level)


@cli.command()
def show_config():
    """Show current configuration"""
    settings = get_settings()

    print("Current Configuration:")
    print(f"  App Environment: {settings.app_env}")
    print(f"  App Root: {settings.app_root}")
    print(f"  AWS Region: {settings.aws_region}")
    print(f"  AWS Endpoint: {settings.aws_endpoint_url}")
    print(f"  Project Name: {settings.project_name}")
    print(f"  ECR Repository: {settings.ecr_repository}")
    print(f"  Database Driver: {settings.db_connection}")
    print(f"  Cache Driver: {settings.cache_driver}")
    print(f"  Queue Connection: {settings.queue_connection}")
    print(f"  Container Role: {settings.container_role}")


@cli.command()
@click.option("--host", default=None, help="Bind address (defaults to HTTP_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (defaults to HTTP_PORT)")
def serve(host, port):
    """Run the dashboard with uvicorn"""
    import uvicorn
    from deploy_api.main import create_app

    settings = get_settings()
    uvicorn.run(create_app(settings), host=host or settings.http_host, port=port or settings.http_port)


@cli.command("entrypoint")
@click.option("--role",
              type=click.Choice(list(entrypoint.CONTAINER_ROLES)),
              default=None,
              help="Override CONTAINER_ROLE")
def run_entrypoint(role):
    """Prepare the app root and start the container role"""
    settings = get_settings()
    try:
        code = entrypoint.main(settings, role=role)
    except entrypoint.UnknownRoleError as e:
        raise click.ClickException(str(e))
    raise SystemExit(code)


@cli.command()
@click.argument("deploy_type", type=click.Choice(list(DEPLOY_TYPES)), default="staging")
def deploy(deploy_type):
    """Run a deploy command table from the shell"""
    settings = get_settings()
    history = DeploymentHistory(settings.history_path())
    runner = DeployRunner(settings, history=history)

    try:
        outcome = runner.run(deploy_type)
    except DeploymentInProgressError as e:
        raise click.ClickException(str(e))

    for result in outcome.results:
        click.echo(f"$ {result.command}")
        if result.output:
            click.echo(result.output.rstrip())

    if outcome.success:
        click.echo(f"✅ {outcome.message}")
    else:
        click.echo(f"❌ {outcome.message}")
        raise SystemExit(1)


@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Print raw JSON")
def history(as_json):
    """Show recorded deployments"""
    settings = get_settings()
    entries = DeploymentHistory(settings.history_path()).entries()

    if as_json:
        click.echo(json.dumps(entries, indent=2))
        return

    if not entries:
        click.echo("No deployments recorded")
        return

    for entry in entries:
        marker = "✅" if entry.get("status") == "success" else "❌"
        click.echo(f"{marker} {entry.get('timestamp')}  {entry.get('type')}")


if __name__ == "__main__":
    cli()
