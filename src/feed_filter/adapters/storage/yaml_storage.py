"""Key-value storage as individual YAML documents."""

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml

from feed_filter.core import KeyValueStorage, PersistenceError

logger = logging.getLogger(__name__)


class YamlFileStorage(KeyValueStorage):
    """Store each key as ``<storage_dir>/<key>.yaml``.

    File access runs in a worker thread. Writes are serialized.
    """

    def __init__(self, storage_dir: Path) -> None:
        self.storage_dir = storage_dir
        self._write_lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        return await asyncio.to_thread(self._read, key)

    async def set(self, key: str, value: Any) -> None:
        async with self._write_lock:
            await asyncio.to_thread(self._write, key, value)

    async def remove(self, key: str) -> None:
        try:
            async with self._write_lock:
                await asyncio.to_thread(self._get_path(key).unlink, missing_ok=True)
        except OSError as e:
            raise PersistenceError(f"Could not remove {key}: {e}") from e

    def _read(self, key: str) -> Optional[Any]:
        path = self._get_path(key)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                document = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not read {key}: {e}") from e

        if not isinstance(document, dict):
            logger.warning("Ignoring malformed storage file %s", path)
            return None
        return document.get("value")

    def _write(self, key: str, value: Any) -> None:
        path = self._get_path(key)
        tmp_path = path.with_suffix(".yaml.tmp")
        try:
            self.storage_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.safe_dump(
                    {"key": key, "value": value},
                    f,
                    allow_unicode=True,
                    default_flow_style=False,
                    sort_keys=False,
                )
            os.replace(tmp_path, path)
        except (OSError, yaml.YAMLError) as e:
            raise PersistenceError(f"Could not write {key}: {e}") from e

    def _get_path(self, key: str) -> Path:
        """Get path for a key's file."""
        safe_key = re.sub(r"[^\w.-]", "_", key)
        return self.storage_dir / f"{safe_key}.yaml"
