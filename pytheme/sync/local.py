"""Access to the local copy of the theme."""

import logging
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_THEME_DIR = "theme"


class LocalAssetStore:
    """Reads and writes theme files below a root directory.

    Keys are paths relative to the root using forward slashes on all
    platforms.
    """

    def __init__(self, root: Path):
        self.root = root

    def path_for(self, key: str) -> Path:
        return self.root / key

    def exists(self, key: str) -> bool:
        return self.path_for(key).is_file()

    def list_keys(self) -> list[str]:
        """Recursively list all files below the root, sorted."""
        if not self.root.is_dir():
            return []
        keys = []
        for path in self.root.rglob("*"):
            if path.is_file():
                # Use as_posix() to ensure forward slashes on all platforms
                keys.append(path.relative_to(self.root).as_posix())
        return sorted(keys)

    def read_bytes(self, key: str) -> bytes:
        return self.path_for(key).read_bytes()

    def write_bytes(self, key: str, data: bytes) -> Path:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path

    def delete(self, key: str) -> bool:
        """Delete a file; returns False when it did not exist."""
        path = self.path_for(key)
        if not path.is_file():
            return False
        path.unlink()
        return True

    def key_for(self, path: Union[str, Path]) -> Optional[str]:
        """Turn an absolute path into a key, None if outside the root."""
        absolute = Path(path)
        if not absolute.is_absolute():
            absolute = Path.cwd() / absolute
        try:
            return absolute.relative_to(self.root.resolve()).as_posix()
        except ValueError:
            try:
                return absolute.relative_to(self.root).as_posix()
            except ValueError:
                return None
