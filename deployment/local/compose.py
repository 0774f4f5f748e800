"""
Local Docker workflow.

Drives docker compose and docker exec for the development containers:
lifecycle, logs, shells, artisan/composer/npm passthroughs, cache
maintenance, database backups and the local health check.
"""

import logging
import os
import subprocess
import time
from datetime import datetime
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import requests

from deploy_api.settings import Settings, get_settings
from deployment.aws.exceptions import DeploymentError
from deployment.aws.utils.health import is_healthy

logger = logging.getLogger(__name__)

CLEAR_CACHE_COMMANDS = ("cache:clear", "config:clear", "route:clear", "view:clear")
OPTIMIZE_COMMANDS = ("config:cache", "route:cache", "view:cache")

PS_TABLE_FORMAT = "table {{.Name}}\t{{.Status}}\t{{.Ports}}"


class LocalCommandError(DeploymentError):
    """A docker command could not be started or exited nonzero."""

    def __init__(self, argv: Sequence[str], returncode: int):
        self.argv = list(argv)
        self.returncode = returncode
        super().__init__(f"Command failed with exit code {returncode}: {' '.join(self.argv)}")


class DockerWorkspace:
    """The local compose stack of one Laravel checkout."""

    def __init__(self, settings: Optional[Settings] = None,
                 runner: Callable[..., subprocess.CompletedProcess] = subprocess.run,
                 sleep: Callable[[float], None] = time.sleep,
                 session: Optional[requests.Session] = None):
        self.settings = settings or get_settings()
        self.runner = runner
        self.sleep = sleep
        self.session = session

    # Command lines

    def compose_argv(self, *args: str, production: bool = False) -> List[str]:
        argv = self.settings.compose_command.split()
        if production:
            argv += ["-f", self.settings.compose_prod_file]
        return argv + list(args)

    def exec_argv(self, container: str, *args: str, interactive: bool = False,
                  env_names: Iterable[str] = ()) -> List[str]:
        argv = ["docker", "exec"]
        if interactive:
            argv.append("-it")
        for name in env_names:
            # value is read from the environment the command runs in
            argv += ["-e", name]
        return argv + [container, *args]

    def app_argv(self, *args: str, interactive: bool = False) -> List[str]:
        return self.exec_argv(self.settings.app_container, *args, interactive=interactive)

    def artisan_argv(self, *args: str, interactive: bool = False) -> List[str]:
        return self.app_argv(*self.settings.artisan_argv(*args), interactive=interactive)

    def mysql_env(self) -> Dict[str, str]:
        if not self.settings.db_password:
            return {}
        return {"MYSQL_PWD": self.settings.db_password}

    # Execution

    def run(self, argv: Sequence[str], stdout=None, extra_env: Optional[Dict[str, str]] = None) -> None:
        """Run ``argv`` in the app root, raising LocalCommandError on failure."""
        logger.info(f"Running: {' '.join(argv)}")
        env = {**os.environ, **extra_env} if extra_env else None
        try:
            completed = self.runner(list(argv), cwd=self.settings.app_root, stdout=stdout, env=env)
        except (FileNotFoundError, PermissionError) as e:
            logger.error(f"Cannot start {argv[0]}: {e}")
            raise LocalCommandError(argv, 127) from e
        if completed.returncode != 0:
            raise LocalCommandError(argv, completed.returncode)

    def artisan_each(self, commands: Iterable[str]) -> None:
        for command in commands:
            self.run(self.artisan_argv(command))

    # Lifecycle

    def build(self, cache: bool = False, production: bool = False) -> None:
        args = ["build"] if cache else ["build", "--no-cache"]
        self.run(self.compose_argv(*args, production=production))

    def up(self, nginx: bool = False, production: bool = False) -> None:
        args = ["--profile", "nginx"] if nginx else []
        self.run(self.compose_argv(*args, "up", "-d", production=production))
        if not production:
            self.status()

    def down(self, production: bool = False) -> None:
        self.run(self.compose_argv("down", production=production))

    def restart(self) -> None:
        self.run(self.compose_argv("restart"))

    def logs(self, service: Optional[str] = None, follow: bool = True) -> None:
        args = ["logs", "-f"] if follow else ["logs"]
        if service:
            args.append(service)
        self.run(self.compose_argv(*args))

    def status(self) -> None:
        self.run(self.compose_argv("ps"))

    def services_health(self) -> None:
        self.run(self.compose_argv("ps", "--format", PS_TABLE_FORMAT))

    # Container access and passthroughs

    def shell(self) -> None:
        self.run(self.app_argv("/bin/sh", interactive=True))

    def mysql(self) -> None:
        env = self.mysql_env()
        self.run(self.exec_argv(self.settings.mysql_container,
                                "mysql", "-u", self.settings.db_username, self.settings.mysql_database,
                                interactive=True, env_names=env), extra_env=env)

    def artisan(self, *args: str, interactive: bool = False) -> None:
        self.run(self.artisan_argv(*args, interactive=interactive))

    def composer(self, *args: str) -> None:
        self.run(self.app_argv("composer", *args))

    def npm(self, *args: str) -> None:
        self.run(self.app_argv("npm", *args))

    def migrate(self, fresh: bool = False, seed: bool = False) -> None:
        args = ["migrate:fresh"] if fresh else ["migrate"]
        if seed:
            args.append("--seed")
        self.artisan(*args)

    def test(self, coverage: bool = False) -> None:
        self.artisan(*(["test", "--coverage"] if coverage else ["test"]))

    # Maintenance

    def clear_cache(self) -> None:
        self.artisan_each(CLEAR_CACHE_COMMANDS)

    def optimize(self, production: bool = False) -> None:
        """Cache config, routes and views; production also caches events and the autoloader."""
        self.artisan_each(OPTIMIZE_COMMANDS)
        if production:
            self.artisan("event:cache")
            self.composer("dump-autoload", "--optimize", "--classmap-authoritative")

    def clean(self, images: bool = False) -> None:
        self.run(["docker", "system", "prune", "-a", "-f"] if images else ["docker", "system", "prune", "-f"])
        self.run(["docker", "volume", "prune", "-f"])

    def backup_db(self, directory: Optional[str] = None) -> str:
        """
        Dump the local MySQL database to ``backup_<YYYYmmdd_HHMMSS>.sql``.

        Returns:
            Path of the written dump. A failed dump leaves no file behind.
        """
        directory = directory or self.settings.app_root
        path = os.path.join(directory, f"backup_{datetime.now().strftime('%Y%m%d_%H%M%S')}.sql")
        env = self.mysql_env()
        argv = self.exec_argv(self.settings.mysql_container,
                              "mysqldump", "-u", self.settings.db_username, self.settings.mysql_database,
                              env_names=env)
        try:
            with open(path, "wb") as dump:
                self.run(argv, stdout=dump, extra_env=env)
        except LocalCommandError:
            os.remove(path)
            raise
        logger.info(f"Database backup written to {path}")
        return path

    def health(self) -> bool:
        return is_healthy(self.settings.local_url, session=self.session)

    def setup(self) -> None:
        """First-run setup: cached build, start, install dependencies, migrate."""
        self.build(cache=True)
        self.up()
        logger.info(f"Waiting {self.settings.setup_wait}s for services to start")
        self.sleep(self.settings.setup_wait)
        self.composer("install")
        self.migrate()
