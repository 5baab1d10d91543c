import json
import os
import threading

from .cli_logger import logger


class SourceMap:
    """Persisted map from a location's remote identity to its checkout path.

    Every ``set`` rewrites the backing file. Writers are serialised with a
    lock so fetches running on worker threads can share one instance.
    """

    def __init__(self, path, locations=None):
        self.path = path
        self._locations = dict(locations or {})
        self._lock = threading.RLock()

    @classmethod
    def in_root(cls, root):
        path = os.path.join(root, "dependencies.json")
        return cls.load(path)

    @classmethod
    def load(cls, path):
        try:
            with open(path, "r") as f:
                data = json.load(f)
            return cls(path, data.get("locations", {}))
        except FileNotFoundError:
            return cls(path)
        except (ValueError, AttributeError) as e:
            logger.warning(f"Ignoring unreadable source map at {path}: {e}")
            return cls(path)

    def get(self, remote):
        with self._lock:
            return self._locations.get(remote)

    def set(self, remote, local_path):
        with self._lock:
            if self._locations.get(remote) == local_path:
                return
            self._locations[remote] = local_path
            self._save()

    def _save(self):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        temp_path = self.path + ".tmp"
        with open(temp_path, "w") as f:
            json.dump({"locations": self._locations}, f, indent=2, sort_keys=True)
        os.replace(temp_path, self.path)
