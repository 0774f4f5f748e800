import threading

import pytest
import yaml

from deploy_api.deploy_runner import (
    DeployRunner,
    DeploymentInProgressError,
    default_command_table,
    load_command_table,
)
from deploy_api.history import DeploymentHistory
from deploy_api.settings import Settings


def write_overrides(tmp_path, table) -> str:
    path = tmp_path / "deploy-commands.yml"
    path.write_text(yaml.safe_dump(table))
    return str(path)


def test_default_table_orders_production_commands():
    table = default_command_table(Settings(artisan="php artisan"))

    production = table["production"]
    assert production[1] == 'php artisan down --message="Deploying updates..." --retry=60'
    assert production.index("php artisan migrate --force") < production.index("php artisan up")
    assert table["rollback"][1] == "php artisan migrate:rollback"
    assert set(table) == {"staging", "production", "rollback"}


def test_overrides_replace_only_listed_types(tmp_path):
    settings = Settings(deploy_commands_file=write_overrides(tmp_path, {"staging": ["echo one"]}))
    table = load_command_table(settings)

    assert table["staging"] == ["echo one"]
    assert table["production"] == default_command_table(settings)["production"]


@pytest.mark.parametrize(
    "overrides",
    [
        {"canary": ["echo hi"]},
        {"staging": "echo hi"},
        {"staging": [1, 2]},
        ["echo hi"],
    ],
)
def test_invalid_overrides_are_rejected(tmp_path, overrides):
    settings = Settings(deploy_commands_file=write_overrides(tmp_path, overrides))

    with pytest.raises(ValueError):
        load_command_table(settings)


def test_run_captures_output_and_records_history(tmp_path):
    history = DeploymentHistory(str(tmp_path / "deployments.json"))
    settings = Settings(
        app_root=str(tmp_path),
        deploy_commands_file=write_overrides(tmp_path, {"staging": ["echo first", "echo second >&2"]}),
    )
    outcome = DeployRunner(settings, history=history).run("staging")

    assert outcome.success
    assert [r.command for r in outcome.results] == ["echo first", "echo second >&2"]
    assert outcome.results[0].output == "first\n"
    assert outcome.results[1].output == "second\n"
    assert outcome.message == "Staging deployment completed successfully!"
    assert history.last() == {"timestamp": outcome.timestamp, "type": "staging", "status": "success"}


def test_failing_command_does_not_stop_the_table(tmp_path):
    history = DeploymentHistory(str(tmp_path / "deployments.json"))
    settings = Settings(
        app_root=str(tmp_path),
        deploy_commands_file=write_overrides(tmp_path, {"rollback": ["exit 3", "echo after"]}),
    )
    outcome = DeployRunner(settings, history=history).run("rollback")

    assert not outcome.success
    assert [r.exit_code for r in outcome.results] == [3, 0]
    assert outcome.message == "Rollback deployment finished with errors"
    assert history.last()["status"] == "failed"

    response = outcome.to_response()
    assert response["success"] is False
    assert response["output"][1] == {"command": "echo after", "output": "after\n", "exit_code": 0}


def test_command_timeout_is_reported(tmp_path):
    settings = Settings(
        app_root=str(tmp_path),
        deploy_command_timeout=1,
        deploy_commands_file=write_overrides(tmp_path, {"staging": ["sleep 5"]}),
    )
    outcome = DeployRunner(settings).run("staging")

    assert not outcome.success
    assert outcome.results[0].exit_code is None
    assert "timed out after 1s" in outcome.results[0].output


def test_unknown_deploy_type(tmp_path):
    with pytest.raises(ValueError):
        DeployRunner(Settings(app_root=str(tmp_path))).run("canary")


def test_concurrent_deploy_is_rejected(tmp_path):
    settings = Settings(
        app_root=str(tmp_path),
        deploy_commands_file=write_overrides(tmp_path, {"staging": ["echo hi"]}),
    )
    runner = DeployRunner(settings)
    started = threading.Event()
    release = threading.Event()

    def blocking_command(command):
        started.set()
        release.wait(5)
        return DeployRunner.run_command(runner, command)

    runner.run_command = blocking_command
    worker = threading.Thread(target=runner.run, args=("staging",))
    worker.start()
    try:
        assert started.wait(5)
        assert runner.is_running
        with pytest.raises(DeploymentInProgressError):
            runner.run("staging")
    finally:
        release.set()
        worker.join(5)

    assert not runner.is_running
