from unittest.mock import MagicMock, patch

import pytest

from deploy_api import entrypoint
from deploy_api.settings import Settings


def test_env_file_copied_from_example(tmp_path):
    (tmp_path / ".env.example").write_text("APP_NAME=Laravel\nAPP_KEY=\n")

    env_path = entrypoint.ensure_env_file(tmp_path)

    assert env_path.read_text() == "APP_NAME=Laravel\nAPP_KEY=\n"


def test_existing_env_file_is_kept(tmp_path):
    (tmp_path / ".env").write_text("APP_NAME=Mine\n")
    (tmp_path / ".env.example").write_text("APP_NAME=Laravel\n")

    entrypoint.ensure_env_file(tmp_path)

    assert (tmp_path / ".env").read_text() == "APP_NAME=Mine\n"


def test_empty_env_file_without_example(tmp_path):
    env_path = entrypoint.ensure_env_file(tmp_path)

    assert env_path.exists()
    assert env_path.read_text() == ""


def test_app_key_fills_blank_entry(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("APP_NAME=Laravel\nAPP_KEY=\nAPP_DEBUG=true\n")

    assert entrypoint.ensure_app_key(env_path) is True

    lines = env_path.read_text().splitlines()
    assert lines[0] == "APP_NAME=Laravel"
    assert lines[1].startswith("APP_KEY=base64:")
    assert lines[2] == "APP_DEBUG=true"


def test_app_key_appended_when_missing(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("APP_NAME=Laravel")

    assert entrypoint.ensure_app_key(env_path) is True
    assert env_path.read_text().splitlines()[1].startswith("APP_KEY=base64:")


def test_existing_app_key_is_kept(tmp_path):
    env_path = tmp_path / ".env"
    env_path.write_text("APP_KEY=base64:abc\n")

    assert entrypoint.ensure_app_key(env_path) is False
    assert env_path.read_text() == "APP_KEY=base64:abc\n"


def test_generated_key_is_32_bytes():
    import base64

    key = entrypoint.generate_app_key()
    assert key.startswith("base64:")
    assert len(base64.b64decode(key[len("base64:"):])) == 32


def test_prepare_app_root_fixes_permissions(tmp_path):
    storage = tmp_path / "storage" / "logs"
    storage.mkdir(parents=True)
    storage.chmod(0o700)

    entrypoint.prepare_app_root(Settings(app_root=str(tmp_path)))

    assert (storage.stat().st_mode & 0o777) == 0o755
    assert "APP_KEY=base64:" in (tmp_path / ".env").read_text()


def test_unknown_role(tmp_path):
    with pytest.raises(entrypoint.UnknownRoleError):
        entrypoint.run_role("worker", Settings(app_root=str(tmp_path)))


def test_scheduler_runs_schedule_every_interval(tmp_path):
    settings = Settings(app_root=str(tmp_path), schedule_interval=60)
    sleep = MagicMock()

    with patch("deploy_api.entrypoint.subprocess.run") as run:
        run.return_value.returncode = 0
        assert entrypoint.run_scheduler(settings, sleep=sleep, max_cycles=2) == 0

    assert run.call_count == 2
    run.assert_called_with(
        ["php", "artisan", "schedule:run", "--verbose", "--no-interaction"], cwd=str(tmp_path)
    )
    assert sleep.call_count == 2
    sleep.assert_called_with(60)


def test_queue_role_execs_worker(tmp_path):
    settings = Settings(app_root=str(tmp_path))

    with patch("deploy_api.entrypoint.os.execvp") as execvp, patch("deploy_api.entrypoint.os.chdir") as chdir, \
            patch("deploy_api.entrypoint.run_scheduler"):
        entrypoint.run_role("queue", settings)

    chdir.assert_called_once_with(str(tmp_path))
    execvp.assert_called_once_with(
        "php", ["php", "artisan", "queue:work", "--verbose", "--tries=3", "--timeout=90"]
    )


def test_app_role_serves_dashboard(tmp_path):
    settings = Settings(app_root=str(tmp_path), http_port=9000)

    with patch("uvicorn.run") as run:
        assert entrypoint.run_role("app", settings) == 0

    _, kwargs = run.call_args
    assert kwargs == {"host": "0.0.0.0", "port": 9000}


def test_main_uses_configured_role(tmp_path):
    settings = Settings(app_root=str(tmp_path), container_role="scheduler")

    with patch("deploy_api.entrypoint.run_role", return_value=0) as run_role:
        assert entrypoint.main(settings) == 0

    run_role.assert_called_once_with("scheduler", settings)
    assert (tmp_path / ".env").exists()
