# cli.py
import json
import logging
from functools import wraps

import click

from deploy_api.settings import ENVIRONMENTS, get_settings
from deployment.aws.exceptions import DeploymentError

# Configure logging
logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

LEVEL_STYLES = {
    "success": ("✅", "green"),
    "error": ("❌", "red"),
    "warning": ("⚠️ ", "yellow"),
    "info": ("ℹ️ ", "blue"),
}


class DeployKitError(click.ClickException):
    """Deployment failure shown as a red error line; exits 1."""

    def show(self, file=None):
        click.secho(f"❌ {self.format_message()}", fg="red", err=True)


def handle_deployment_errors(func):
    """Turn DeploymentError into a clean CLI failure instead of a traceback."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DeploymentError as e:
            logger.debug("Deployment command failed", exc_info=True)
            raise DeployKitError(str(e))
    return wrapper


def echo_lines(lines):
    for line in lines:
        click.echo(line)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def cli(verbose):
    """Deployment tooling for the Laravel ECS stack"""
    level = "DEBUG" if verbose else get_settings().log_level
    logging.basicConfig(level=getattr(logging, level, logging.INFO), format=LOG_FORMAT)


@cli.command("setup-ecr")
@click.argument("repository", required=False)
@handle_deployment_errors
def setup_ecr(repository):
    """Create and configure the ECR repository"""
    from deployment.aws.setup.ecr import setup_ecr as run_setup

    result = run_setup(repository)
    click.echo("")
    echo_lines(result["instructions"])
    click.secho("✅ ECR setup completed successfully!", fg="green")


@cli.command()
@click.argument("environment", type=click.Choice(list(ENVIRONMENTS)))
@click.argument("image_tag", default="latest")
@handle_deployment_errors
def deploy(environment, image_tag):
    """Deploy both CloudFormation stacks, migrate and health check"""
    from deployment.aws.orchestration.deploy_ecs import deploy_environment

    result = deploy_environment(environment, image_tag)
    click.secho("✅ Deployment completed successfully!", fg="green")
    click.echo(f"Application URL: {result['application_url']}")


@cli.command()
@click.option("--environment", type=click.Choice(list(ENVIRONMENTS)), default="production",
              help="Target environment")
@click.option("--tag", "image_tag", default=None, help="Image tag (defaults to <git sha>-<epoch>)")
@handle_deployment_errors
def release(environment, image_tag):
    """Build, push and roll out a new image to the running service"""
    from deployment.aws.orchestration.release import ReleaseStrategy

    result = ReleaseStrategy(environment).release(image_tag)
    click.echo("=" * 50)
    click.secho("🎉 Deployment completed successfully!", fg="green")
    click.secho(f"🌐 Application URL: {result['application_url']}", fg="green")
    click.secho(f"📊 Image deployed: {result['image_tag']}", fg="green")
    click.echo("=" * 50)


@cli.command()
@click.argument("environment", type=click.Choice(list(ENVIRONMENTS) + ["all"]))
@click.option("--yes", is_flag=True, help="Skip the confirmation prompt")
@click.option("--json", "as_json", is_flag=True, help="Print the cleanup report as JSON")
@handle_deployment_errors
def cleanup(environment, yes, as_json):
    """Delete the AWS resources of an environment"""
    from deployment.aws.cleanup.cleanup_manager import CleanupManager, cleanup_warning
    from deployment.aws.setup.ecr import check_prerequisites

    check_prerequisites()

    if not yes:
        click.echo("")
        for line in cleanup_warning(environment):
            click.secho(line, fg="yellow" if not line.startswith("THIS") else "red")
        click.echo("")
        confirmation = click.prompt("Are you sure you want to proceed? Type 'yes' to confirm",
                                    default="", show_default=False)
        if confirmation != "yes":
            click.echo("Cleanup cancelled")
            return

    report = CleanupManager().cleanup(environment)

    if as_json:
        click.echo(json.dumps(report, indent=2, default=str))
    elif report["errors"]:
        echo_lines(report["errors"])

    if report["status"] == "success":
        click.secho("✅ All cleanup operations completed successfully!", fg="green")
    else:
        raise DeployKitError(f"Cleanup completed with {len(report['errors'])} errors")


@cli.command()
@click.option("--build-number", type=int, default=None, help="Jenkins build to follow")
@click.option("--jenkins-url", default=None, help="Jenkins base URL")
@click.option("--environment", type=click.Choice(list(ENVIRONMENTS)), default="production")
@click.option("--iterations", type=int, default=120, show_default=True)
@click.option("--interval", type=float, default=5, show_default=True)
@handle_deployment_errors
def monitor(build_number, jenkins_url, environment, iterations, interval):
    """Follow a Jenkins build through ECR and ECS"""
    from deployment.aws.monitoring.status_monitor import StatusMonitor
    from deployment.pipeline.jenkins import JenkinsClient

    settings = get_settings()
    jenkins = JenkinsClient(jenkins_url or settings.jenkins_url, settings.jenkins_job,
                            settings.jenkins_user, settings.jenkins_token)

    if build_number is None:
        click.secho("⚠️ No build number specified", fg="yellow")
        click.echo("Getting latest build number...")
        build_number = jenkins.last_build_number()
        if build_number is None:
            raise DeployKitError("Could not get build number")
        click.echo(f"Using latest build: #{build_number}")

    status_monitor = StatusMonitor(jenkins, build_number, environment=environment)
    click.secho("🔍 Starting deployment monitoring...", fg="cyan")
    click.echo(f"Monitoring build #{build_number}")
    click.echo("")

    try:
        status_monitor.monitor(click.echo, max_iterations=iterations, interval=interval)
    except KeyboardInterrupt:
        click.secho("\nMonitoring stopped by user", fg="yellow")

    click.echo("")
    echo_lines(status_monitor.summary())


@cli.command("check-env")
@click.option("--environment", type=click.Choice(list(ENVIRONMENTS)), default="production")
@handle_deployment_errors
def check_env(environment):
    """Check every resource a deployed environment depends on"""
    from deployment.aws.monitoring.environment_check import EnvironmentChecker

    report = EnvironmentChecker(environment).run()

    click.secho(f"🧪 Testing {environment} deployment", fg="blue")
    click.echo("=" * 50)
    for result in report["results"]:
        click.echo(f"{result.marker} {result.name}")
        if result.detail:
            click.echo(f"   {result.detail}")
    click.echo("=" * 50)

    if report["application_url"]:
        click.secho(f"🌐 Application URL: {report['application_url']}", fg="green")
        click.secho(f"🏥 Health Check: {report['application_url']}/health", fg="green")

    if report["status"] != "ready":
        raise DeployKitError("Some checks failed; fix them before deploying")


@cli.command("test-pipeline")
@click.argument("component", default="all",
                type=click.Choice(["all", "docker", "laravel", "aws", "github", "jenkins"]))
@click.option("--project-root", type=click.Path(file_okay=False), default=None,
              help="Project checkout (defaults to APP_ROOT)")
@click.option("--skip-build", is_flag=True, help="Do not try a docker build of the development target")
def test_pipeline(component, project_root, skip_build):
    """Check the CI/CD configuration of the project"""
    from deployment.pipeline.config_check import PipelineChecker
    from deployment.pipeline.jenkins import JenkinsClient

    settings = get_settings()
    jenkins = None
    if settings.jenkins_url:
        jenkins = JenkinsClient(settings.jenkins_url, settings.jenkins_job,
                                settings.jenkins_user, settings.jenkins_token)

    checker = PipelineChecker(settings, project_root=project_root, jenkins=jenkins,
                              build_image=not skip_build)

    click.echo("CI/CD Pipeline Testing")
    click.echo("=====================")
    failed_components = 0
    for result in checker.run_checks(component):
        click.echo("")
        click.secho(f"Testing {result.name} configuration...", fg="blue")
        for level, message in result.messages:
            marker, color = LEVEL_STYLES[level]
            click.secho(f"{marker} {message}", fg=color)
        if result.passed:
            click.secho(f"✅ {result.name} configuration test passed", fg="green")
        else:
            failed_components += 1
            click.secho(f"❌ {result.name} configuration test failed with {result.errors} errors", fg="red")

    click.echo("")
    if failed_components:
        raise DeployKitError(f"CI/CD pipeline tests failed with {failed_components} component(s) having errors")
    click.secho("✅ All CI/CD pipeline tests passed!", fg="green")


@cli.command("test-webhook")
@click.option("--jenkins-url", default=None, help="Jenkins base URL")
@click.option("--token", default=None, help="Generic Webhook Trigger token")
@click.option("--repo", "repository", default="laravel-app", show_default=True)
@click.option("--branch", default="main", show_default=True)
def test_webhook(jenkins_url, token, repository, branch):
    """Send a simulated GitHub push to Jenkins"""
    import requests

    from deployment.pipeline.webhook import build_push_payload, read_git_commit, send_push_webhook

    settings = get_settings()
    jenkins_url = jenkins_url or settings.jenkins_url
    token = token or settings.webhook_token
    if not token:
        raise click.UsageError("A webhook token is required (--token or WEBHOOK_TOKEN)")

    click.secho("🔗 Testing Generic Webhook Trigger", fg="blue")
    click.echo("=" * 50)
    click.echo(f"Jenkins URL: {jenkins_url}")
    click.echo(f"Repository: {repository}")
    click.echo(f"Branch: {branch}")
    click.echo(f"Token: {token[:10]}...")
    click.echo("=" * 50)

    commit = read_git_commit(settings.app_root)
    payload = build_push_payload(repository, branch, commit)

    try:
        result = send_push_webhook(jenkins_url, token, payload)
    except requests.RequestException as e:
        raise DeployKitError(f"Webhook request failed: {e}")

    click.echo(f"HTTP Status: {result.status_code}")
    for line in result.diagnosis():
        click.echo(line)
    if result.body:
        click.echo("")
        click.echo(result.body)

    click.echo("")
    click.echo(f"Commit: {commit.sha[:8]}")
    if not result.success:
        raise DeployKitError("Webhook test failed")
    click.echo(f"Check Jenkins job: {jenkins_url.rstrip('/')}/job/{settings.jenkins_job}/")


@cli.command("jenkins-job")
@click.option("--name", default=None, help="Job name (defaults to JENKINS_JOB)")
@click.option("--github-repo", default=None, help="owner/name of the GitHub repository")
@click.option("--script-path", default="Jenkinsfile", show_default=True)
@click.option("--create", is_flag=True, help="Create the job through the Jenkins API")
def jenkins_job(name, github_repo, script_path, create):
    """Print, or create, the parameterized pipeline job"""
    from deployment.pipeline.jenkins import JenkinsClient, job_config_xml

    settings = get_settings()
    name = name or settings.jenkins_job
    github_repo = github_repo or settings.github_repo
    if not github_repo:
        raise click.UsageError("A GitHub repository is required (--github-repo or GITHUB_REPO)")

    config_xml = job_config_xml(github_repo, script_path)
    if not create:
        click.echo(config_xml)
        return

    if not settings.jenkins_token:
        raise DeployKitError("JENKINS_TOKEN not set, manual job creation required")

    jenkins = JenkinsClient(settings.jenkins_url, name, settings.jenkins_user, settings.jenkins_token)
    if not jenkins.create_job(name, config_xml):
        raise DeployKitError(f"Failed to create Jenkins job {name}")
    click.secho(f"✅ Jenkins job {name} created", fg="green")


PASSTHROUGH = {"ignore_unknown_options": True, "allow_interspersed_args": False}


def workspace():
    from deployment.local.compose import DockerWorkspace

    return DockerWorkspace()


@cli.group()
def dev():
    """Local Docker development commands"""


@dev.command()
@click.option("--cache/--no-cache", default=False, help="Reuse the layer cache")
@click.option("--prod", "production", is_flag=True, help="Use the production compose file")
@handle_deployment_errors
def build(cache, production):
    """Build the Docker images"""
    click.secho("Building Docker images...", fg="green")
    workspace().build(cache=cache, production=production)


@dev.command()
@click.option("--nginx", is_flag=True, help="Also start the Nginx proxy")
@click.option("--prod", "production", is_flag=True, help="Use the production compose file")
@handle_deployment_errors
def up(nginx, production):
    """Start the containers in the background"""
    workspace().up(nginx=nginx, production=production)
    settings = get_settings()
    click.secho(f"Application is running at {settings.local_url}", fg="green")


@dev.command()
@click.option("--prod", "production", is_flag=True, help="Use the production compose file")
@handle_deployment_errors
def down(production):
    """Stop and remove the containers"""
    workspace().down(production=production)


@dev.command()
@handle_deployment_errors
def restart():
    """Restart the containers"""
    workspace().restart()


@dev.command()
@click.argument("service", required=False)
@click.option("--no-follow", is_flag=True)
@handle_deployment_errors
def logs(service, no_follow):
    """Show container logs (app, nginx, mysql or all)"""
    workspace().logs(service, follow=not no_follow)


@dev.command()
@handle_deployment_errors
def status():
    """Show container status"""
    workspace().status()


@dev.command()
@handle_deployment_errors
def shell():
    """Open a shell in the app container"""
    workspace().shell()


@dev.command()
@handle_deployment_errors
def mysql():
    """Open a MySQL client in the database container"""
    workspace().mysql()


@dev.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@handle_deployment_errors
def artisan(args):
    """Run an artisan command in the app container"""
    workspace().artisan(*args)


@dev.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@handle_deployment_errors
def composer(args):
    """Run a composer command in the app container"""
    workspace().composer(*args)


@dev.command(context_settings=PASSTHROUGH)
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@handle_deployment_errors
def npm(args):
    """Run an npm command in the app container"""
    workspace().npm(*args)


@dev.command()
@handle_deployment_errors
def tinker():
    """Open Laravel Tinker"""
    workspace().artisan("tinker", interactive=True)


@dev.command()
@click.option("--fresh", is_flag=True, help="Drop all tables first")
@click.option("--seed", is_flag=True, help="Run the seeders afterwards")
@handle_deployment_errors
def migrate(fresh, seed):
    """Run the database migrations"""
    workspace().migrate(fresh=fresh, seed=seed)


@dev.command("test")
@click.option("--coverage", is_flag=True)
@handle_deployment_errors
def run_tests(coverage):
    """Run the PHPUnit suite"""
    workspace().test(coverage=coverage)


@dev.command("clear-cache")
@handle_deployment_errors
def clear_cache():
    """Clear the cache, config, route and view caches"""
    workspace().clear_cache()
    click.secho("✅ Caches cleared", fg="green")


@dev.command()
@click.option("--prod", "production", is_flag=True, help="Also cache events and optimize the autoloader")
@handle_deployment_errors
def optimize(production):
    """Cache config, routes and views"""
    workspace().optimize(production=production)
    click.secho("✅ Optimization completed", fg="green")


@dev.command()
@click.option("--images", is_flag=True, help="Also remove unused images")
@handle_deployment_errors
def clean(images):
    """Prune stopped containers, networks and volumes"""
    click.secho("Cleaning up Docker resources...", fg="red" if images else "yellow")
    workspace().clean(images=images)


@dev.command("backup-db")
@click.option("--dir", "directory", type=click.Path(file_okay=False), default=None,
              help="Output directory (defaults to APP_ROOT)")
@handle_deployment_errors
def backup_db(directory):
    """Dump the local MySQL database"""
    path = workspace().backup_db(directory)
    click.secho(f"✅ Backup written to {path}", fg="green")


@dev.command()
@click.option("--all", "all_services", is_flag=True, help="Show every container's status instead")
@handle_deployment_errors
def health(all_services):
    """Check the local application health endpoint"""
    local = workspace()
    if all_services:
        local.services_health()
        return
    if not local.health():
        raise DeployKitError("Application health check failed")
    click.secho("✅ Application is healthy", fg="green")


@dev.command()
@handle_deployment_errors
def setup():
    """Build, start, install dependencies and migrate"""
    click.secho("🚀 Setting up Laravel development environment...", fg="green")
    workspace().setup()
    click.secho(f"✅ Setup completed! Visit {get_settings().local_url}", fg="green")


if __name__ == "__main__":
    cli()
