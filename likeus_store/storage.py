"""File-backed key/value storage used for client state that must survive restarts.

Each key is kept as its own JSON document under the storage directory, the
same way a browser keeps one serialized value per local storage key.
"""

import json
import logging
import os
import tempfile
from typing import Any, Optional

logger = logging.getLogger(__name__)


class LocalStorage:
    def __init__(self, directory: str):
        self.directory = directory
        os.makedirs(self.directory, exist_ok=True)

    def _path_for(self, key: str) -> str:
        name = str(key or "").strip()
        if not name or os.sep in name or (os.altsep and os.altsep in name) or name in {".", ".."}:
            raise ValueError(f"Invalid storage key: {key!r}")
        return os.path.join(self.directory, f"{name}.json")

    def get_item(self, key: str) -> Optional[Any]:
        path = self._path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as handle:
                raw = handle.read()
        except FileNotFoundError:
            return None
        try:
            return json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ValueError(f"Stored value for {key!r} is not valid JSON: {exc}") from exc

    def set_item(self, key: str, value: Any) -> None:
        path = self._path_for(key)
        descriptor, temporary_path = tempfile.mkstemp(
            dir=self.directory, prefix=".tmp-", suffix=".json"
        )
        try:
            with os.fdopen(descriptor, "w", encoding="utf-8") as handle:
                json.dump(value, handle)
            os.replace(temporary_path, path)
        except BaseException:
            try:
                os.remove(temporary_path)
            except OSError:
                pass
            raise

    def remove_item(self, key: str) -> None:
        path = self._path_for(key)
        try:
            os.remove(path)
        except FileNotFoundError:
            return
        logger.debug("Removed stored value %s", key)
