"""Flat-file JSON storage for the app registry and installed apps."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from ..errors import StoreError

logger = logging.getLogger(__name__)

REGISTRY = "registry"
INSTALLED = "installed"

# Collection name -> file name inside the data directory
COLLECTION_FILES = {
    REGISTRY: "registry.json",
    INSTALLED: "apps.json",
}


class JSONStore:
    """Two JSON-array collections, each backed by its own file.

    Every ``save`` replaces the whole file. There is no locking here; callers
    that read-modify-write a collection must serialize themselves.
    """

    def __init__(self, data_dir: str | Path):
        """Initialize the store.

        Args:
            data_dir: Directory holding the collection files. Created on
                first access if missing.
        """
        self.data_dir = Path(data_dir).expanduser()

    def path_for(self, collection: str) -> Path:
        """Return the file backing a collection."""
        try:
            return self.data_dir / COLLECTION_FILES[collection]
        except KeyError:
            raise StoreError(f"Unknown collection '{collection}'") from None

    def get(self, collection: str) -> list[dict[str, Any]]:
        """Return every record in a collection.

        A missing file is created holding an empty list.

        Args:
            collection: "registry" or "installed".

        Returns:
            The decoded list of records.
        """
        path = self.path_for(collection)

        if not path.exists():
            self.save(collection, [])
            logger.info(f"Created {path.name} with defaults")
            return []

        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise StoreError(f"{path.name} is not valid JSON: {e}") from e
        except OSError as e:
            raise StoreError(f"Failed to read {path}: {e}") from e

        if data is None:
            return []
        if not isinstance(data, list):
            raise StoreError(f"{path.name} must hold a JSON array")
        return data

    def save(self, collection: str, records: list[dict[str, Any]]) -> None:
        """Replace a collection with the given records.

        The new content goes to a temporary file that is then renamed over
        the old one, so a reader sees either the old or the new list.
        """
        path = self.path_for(collection)

        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.data_dir, prefix=f".{path.name}.", suffix=".tmp"
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(records, f, indent=2)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise StoreError(f"Failed to write {path}: {e}") from e

        logger.debug(f"Saved {len(records)} record(s) to {path.name}")
