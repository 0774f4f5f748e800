"""
Container entrypoint.

Prepares the Laravel checkout (``.env`` and ``APP_KEY``) and then starts the
process selected by ``CONTAINER_ROLE``: the web app, a queue worker, or the
scheduler loop.
"""
import base64
import logging
import os
import re
import shutil
import subprocess
import time
from pathlib import Path
from typing import Callable, Optional

from deploy_api.settings import Settings

logger = logging.getLogger(__name__)

CONTAINER_ROLES = ("app", "queue", "scheduler")

APP_KEY_PATTERN = re.compile(r"^APP_KEY=base64:", re.MULTILINE)


class UnknownRoleError(ValueError):
    """Raised for a CONTAINER_ROLE outside app/queue/scheduler."""


def generate_app_key() -> str:
    """Laravel-compatible application key: 32 random bytes, base64 encoded."""
    return "base64:" + base64.b64encode(os.urandom(32)).decode("ascii")


def ensure_env_file(app_root: Path) -> Path:
    """Create ``.env`` from ``.env.example`` when it does not exist yet."""
    env_path = app_root / ".env"
    example_path = app_root / ".env.example"

    if not env_path.exists():
        if example_path.exists():
            logger.info("Creating .env file from .env.example...")
            shutil.copyfile(example_path, env_path)
        else:
            logger.warning(".env.example not found, creating empty .env")
            env_path.touch()
    return env_path


def ensure_app_key(env_path: Path) -> bool:
    """Write an APP_KEY into ``env_path`` if it lacks one. Returns True when a key was generated."""
    contents = env_path.read_text() if env_path.exists() else ""
    if APP_KEY_PATTERN.search(contents):
        return False

    logger.info("Generating application key...")
    key_line = f"APP_KEY={generate_app_key()}"
    if re.search(r"^APP_KEY=.*$", contents, re.MULTILINE):
        contents = re.sub(r"^APP_KEY=.*$", key_line, contents, count=1, flags=re.MULTILINE)
    else:
        if contents and not contents.endswith("\n"):
            contents += "\n"
        contents += key_line + "\n"
    env_path.write_text(contents)
    return True


def fix_permissions(app_root: Path) -> None:
    """Best-effort 755 on the writable Laravel directories."""
    for relative in ("storage", "bootstrap/cache"):
        directory = app_root / relative
        if not directory.is_dir():
            continue
        for path in [directory, *directory.rglob("*")]:
            try:
                os.chmod(path, 0o755)
            except OSError as e:
                logger.debug(f"chmod failed for {path}: {e}")


def prepare_app_root(settings: Settings) -> None:
    app_root = Path(settings.app_root)
    env_path = ensure_env_file(app_root)
    ensure_app_key(env_path)
    fix_permissions(app_root)


def run_scheduler(settings: Settings,
                  sleep: Callable[[float], None] = time.sleep,
                  max_cycles: Optional[int] = None) -> int:
    """Invoke ``schedule:run`` every ``schedule_interval`` seconds."""
    argv = settings.artisan_argv("schedule:run", "--verbose", "--no-interaction")
    cycles = 0
    while max_cycles is None or cycles < max_cycles:
        result = subprocess.run(argv, cwd=settings.app_root)
        if result.returncode != 0:
            logger.warning(f"schedule:run exited with {result.returncode}")
        cycles += 1
        sleep(settings.schedule_interval)
    return 0


def run_role(role: str, settings: Settings) -> int:
    """Start the process for ``role``. Only returns for the scheduler role or on error."""
    if role not in CONTAINER_ROLES:
        raise UnknownRoleError(f"Unknown container role: {role}")

    if role == "app":
        import uvicorn
        from deploy_api.main import create_app

        logger.info("Starting web server...")
        uvicorn.run(create_app(settings), host=settings.http_host, port=settings.http_port)
        return 0

    if role == "queue":
        logger.info("Starting queue worker...")
        argv = settings.artisan_argv("queue:work", "--verbose", "--tries=3", "--timeout=90")
        os.chdir(settings.app_root)
        os.execvp(argv[0], argv)

    logger.info("Starting scheduler...")
    return run_scheduler(settings)


def main(settings: Settings, role: Optional[str] = None) -> int:
    role = role or settings.container_role
    logger.info(f"Starting container (role={role})...")
    prepare_app_root(settings)
    return run_role(role, settings)
