"""Two-tier schema cache: an in-memory dict backed by one JSON file per key.

The dict is authoritative for this process; the files are what a fresh
process sees. There is no eviction and no cross-process invalidation.
"""

import json
import logging
import re
from pathlib import Path
from typing import Optional

from azure_schema_mcp.exceptions import CacheCorruptionError
from azure_schema_mcp.models import SchemaEntry, entry_from_dict, entry_key

logger = logging.getLogger("azure-schema-mcp")

_UNSAFE_CHARS = re.compile(r"[:/]")


class SchemaCache:
    def __init__(self, cache_dir: Path) -> None:
        self._cache_dir = Path(cache_dir)
        self._entries: dict[str, SchemaEntry] = {}

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    def path_for(self, key: str) -> Path:
        """Return the file backing *key*, e.g. ``table:Foo`` -> ``table_Foo.json``."""
        return self._cache_dir / f"{_UNSAFE_CHARS.sub('_', key)}.json"

    def get(self, key: str) -> Optional[SchemaEntry]:
        entry = self._entries.get(key)
        if entry is not None:
            return entry

        entry = self._load(key)
        if entry is not None:
            self._entries[key] = entry
        return entry

    def put(self, key: str, entry: SchemaEntry) -> None:
        self._entries[key] = entry
        path = self.path_for(key)
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(entry.to_dict(), indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Failed to cache schema to disk (%s): %s", path, exc)

    def invalidate(self, key: str) -> None:
        self._entries.pop(key, None)
        path = self.path_for(key)
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("Failed to delete cached schema %s: %s", path, exc)

    def _load(self, key: str) -> Optional[SchemaEntry]:
        path = self.path_for(key)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
            entry = entry_from_dict(key, data)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, CacheCorruptionError) as exc:
            logger.warning("Ignoring corrupt schema cache file %s: %s", path, exc)
            return None
        # Distinct keys can share a file name (":" and "/" both become "_").
        if entry_key(entry) != key:
            logger.debug("Cache file %s holds %s, not %s", path, entry_key(entry), key)
            return None
        return entry
