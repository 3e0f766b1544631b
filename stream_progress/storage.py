"""File-backed key-value storage for persisted progress data."""

import re
from pathlib import Path
from typing import Optional

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class StorageError(Exception):
    """Storage read/write error."""

    pass


class DataStore:
    """Stores one raw string value per key, one file per key."""

    def __init__(self, data_dir: Optional[Path] = None):
        """Initialize data store."""
        if data_dir is None:
            data_dir = Path.cwd() / "data"
        self.data_dir = Path(data_dir)

    def path_for(self, key: str) -> Path:
        """Map a namespaced key such as ``@vidrock_progress`` to its file."""
        name = _UNSAFE_CHARS.sub("", key)
        if not name:
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.data_dir / f"{name}.json"

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            with open(path, encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(f"Cannot read {path}: {e}")

    def set_item(self, key: str, value: str) -> None:
        """Replace the stored value."""
        path = self.path_for(key)

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                f.write(value)
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}")

    def remove_item(self, key: str) -> None:
        """Delete the stored value. Removing an absent key is a no-op."""
        path = self.path_for(key)

        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot remove {path}: {e}")
