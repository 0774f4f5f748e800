"""Probes behind GET /deploy/status."""
import logging
import os
import socket
import sqlite3

from deploy_api.cache import get_cache_store
from deploy_api.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {
    "mysql": 3306,
    "mariadb": 3306,
    "pgsql": 5432,
    "sqlsrv": 1433,
}


def check_database(settings: Settings) -> str:
    """Return ``connected`` when the configured database accepts connections."""
    try:
        if settings.db_connection == "sqlite":
            path = settings.db_database
            if not os.path.isabs(path):
                path = os.path.join(settings.app_root, path)
            # mode=rw fails on a missing file instead of creating one
            conn = sqlite3.connect(f"file:{path}?mode=rw", uri=True, timeout=2)
            try:
                conn.execute("SELECT 1")
            finally:
                conn.close()
        else:
            port = settings.db_port or DEFAULT_PORTS.get(settings.db_connection)
            if port is None:
                raise ValueError(f"Unknown database connection: {settings.db_connection}")
            with socket.create_connection((settings.db_host, port), timeout=2):
                pass
        return "connected"
    except Exception as e:
        logger.warning(f"Database check failed: {e}")
        return "disconnected"


def check_cache(settings: Settings) -> str:
    """Round-trip a value through the cache store."""
    try:
        store = get_cache_store(settings)
        store.put("health_check", "ok", 10)
        return "working" if store.get("health_check") == "ok" else "failed"
    except Exception as e:
        logger.warning(f"Cache check failed: {e}")
        return "failed"


def check_queue(settings: Settings) -> str:
    return settings.queue_connection
