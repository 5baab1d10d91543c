import json
import os
import threading

from ..cli_logger import logger

STORE_VERSION = 1


class ResultStore:
    """Key -> value results of earlier builds, persisted as JSON.

    With ``path=None`` results are only kept in memory.
    """

    def __init__(self, path=None):
        self.path = path
        self._results = {}
        self._lock = threading.Lock()
        if path is not None:
            self._load()

    def _load(self):
        try:
            with open(self.path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return
        except ValueError as e:
            logger.warning(f"Discarding unreadable build results at {self.path}: {e}")
            return
        if not isinstance(data, dict) or data.get("version") != STORE_VERSION:
            logger.warning(f"Discarding build results with unknown format at {self.path}")
            return
        self._results = dict(data.get("results", {}))

    def get(self, key):
        with self._lock:
            return self._results.get(key)

    def set(self, key, value):
        with self._lock:
            self._results[key] = value
            self._save()

    def __len__(self):
        with self._lock:
            return len(self._results)

    def _save(self):
        if self.path is None:
            return
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        temp_path = self.path + ".tmp"
        with open(temp_path, "w") as f:
            json.dump({"version": STORE_VERSION, "results": self._results}, f, indent=2, sort_keys=True)
        os.replace(temp_path, self.path)
