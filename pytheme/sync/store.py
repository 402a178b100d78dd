"""Persisted JSON records with atomic replacement."""

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonStore:
    """Reads and writes named JSON records in a directory.

    A record named ``manifest`` lives in ``manifest.json``. Writes go to a
    temporary sibling file that then replaces the record, so an interrupted
    write leaves the previous version intact.
    """

    def __init__(self, directory: Path):
        self.directory = directory

    def path_for(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def exists(self, name: str) -> bool:
        return self.path_for(name).exists()

    def read(self, name: str, default: Any = None) -> Any:
        """Load a record, returning ``default`` if it is missing or unreadable."""
        path = self.path_for(name)
        if not path.exists():
            logger.debug(f"No {name} record at {path}")
            return default
        try:
            with open(path, encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load {path}: {e}")
            return default

    def write(self, name: str, data: Any) -> None:
        path = self.path_for(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
            f.write("\n")
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)

    def delete(self, name: str) -> bool:
        path = self.path_for(name)
        if path.exists():
            path.unlink()
            return True
        return False
