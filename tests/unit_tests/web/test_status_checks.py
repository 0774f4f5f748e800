import sqlite3
from unittest.mock import patch

from deploy_api.settings import Settings
from deploy_api.status_checks import check_cache, check_database, check_queue


def test_sqlite_database_connected(settings):
    sqlite3.connect(str(settings.app_root) + "/database/database.sqlite").close()

    assert check_database(settings) == "connected"


def test_missing_sqlite_file_is_disconnected(settings):
    assert check_database(settings) == "disconnected"


def test_unknown_driver_is_disconnected():
    assert check_database(Settings(db_connection="oracle")) == "disconnected"


def test_network_database_uses_default_port():
    settings = Settings(db_connection="mysql", db_host="db.internal")
    with patch("deploy_api.status_checks.socket.create_connection") as create_connection:
        assert check_database(settings) == "connected"

    create_connection.assert_called_once_with(("db.internal", 3306), timeout=2)


def test_unreachable_database_is_disconnected():
    settings = Settings(db_connection="pgsql", db_host="db.internal")
    with patch("deploy_api.status_checks.socket.create_connection", side_effect=OSError("refused")):
        assert check_database(settings) == "disconnected"


def test_cache_working(settings):
    assert check_cache(settings) == "working"


def test_cache_failure_is_reported():
    settings = Settings(cache_driver="array")
    with patch("deploy_api.status_checks.get_cache_store", side_effect=ConnectionError("down")):
        assert check_cache(settings) == "failed"


def test_queue_reports_connection_name():
    assert check_queue(Settings(queue_connection="redis")) == "redis"
