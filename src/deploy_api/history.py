"""
Deployment history.

Records every dashboard deployment so ``/deploy/status`` can report the
last one.
"""
import json
import logging
import os
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

MAX_ENTRIES = 50


class DeploymentHistory:
    """Append-only list of deployments persisted to a JSON file."""

    def __init__(self, history_file: str):
        self.history_file = history_file
        self._lock = threading.Lock()

    def _load(self) -> List[Dict[str, Any]]:
        if os.path.exists(self.history_file):
            try:
                with open(self.history_file, "r") as f:
                    entries = json.load(f)
                if isinstance(entries, list):
                    return entries
                logger.warning(f"Ignoring malformed history file: {self.history_file}")
            except (json.JSONDecodeError, IOError) as e:
                logger.warning(f"Could not read history file {self.history_file}: {e}")
        return []

    def _save(self, entries: List[Dict[str, Any]]) -> None:
        directory = os.path.dirname(self.history_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.history_file, "w") as f:
            json.dump(entries, f, indent=2)

    def record(self, deploy_type: str, status: str, timestamp: Optional[str] = None) -> Dict[str, Any]:
        """Append a deployment and return the stored entry."""
        entry = {
            "timestamp": timestamp or datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
            "type": deploy_type,
            "status": status,
        }
        with self._lock:
            entries = self._load()
            entries.append(entry)
            try:
                self._save(entries[-MAX_ENTRIES:])
            except IOError as e:
                logger.warning(f"Could not save history file: {e}")
        return entry

    def entries(self) -> List[Dict[str, Any]]:
        with self._lock:
            return self._load()

    def last(self) -> Optional[Dict[str, Any]]:
        entries = self.entries()
        return entries[-1] if entries else None
