from __future__ import annotations

import asyncio
import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from ..config import settings

logger = logging.getLogger("competitor_scrape.storage")

ModelT = TypeVar("ModelT", bound=BaseModel)

_KEY_ESCAPES = (
    (":", "_colon_"),
    ("/", "_slash_"),
    ("\\", "_backslash_"),
    ("?", "_question_"),
    ("&", "_amp_"),
    ("=", "_equals_"),
    (".", "_dot_"),
)
_SCHEME_PREFIX_RE = re.compile(r"https?_colon__slash__slash_")
_INVALID_FILENAME_RE = re.compile(r"[<>:\"\\|?*]")


def sanitize_key(key: str) -> str:
    """Map a storage key to a filesystem-safe file stem."""

    safe = key
    for needle, replacement in _KEY_ESCAPES:
        safe = safe.replace(needle, replacement)
    safe = _SCHEME_PREFIX_RE.sub("", safe)
    return _INVALID_FILENAME_RE.sub("_", safe)


class KeyValueStore:
    """Async key-value persistence for JSON-serializable records."""

    async def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    async def get(self, key: str) -> Optional[Any]:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def keys(self, prefix: str = "") -> List[str]:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    async def get(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def keys(self, prefix: str = "") -> List[str]:
        return [key for key in self._data if key.startswith(prefix)]


class FileStore(KeyValueStore):
    """One ``<sanitized key>.json`` file per key.

    Each file holds ``{"key": original, "value": ...}`` so the original key can be
    listed after a restart. Writes that fail with OSError land in memory instead.
    """

    def __init__(self, directory: Path | str) -> None:
        self.directory = Path(directory)
        self._memory = MemoryStore()

    def path_for(self, key: str) -> Path:
        return self.directory / f"{sanitize_key(key)}.json"

    def _write(self, key: str, value: Any) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        self.path_for(key).write_text(json.dumps({"key": key, "value": value}), encoding="utf-8")

    def _read(self, key: str) -> Optional[Any]:
        path = self.path_for(key)
        if not path.exists():
            return None
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict) and "key" in data and "value" in data:
            return data["value"] if data["key"] == key else None
        return data

    def _list_keys(self) -> List[str]:
        if not self.directory.exists():
            return []
        keys: List[str] = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                logger.warning("storage.unreadable path=%s", path)
                continue
            if isinstance(data, dict) and isinstance(data.get("key"), str):
                keys.append(data["key"])
            else:
                keys.append(path.stem)
        return keys

    async def set(self, key: str, value: Any) -> None:
        try:
            await asyncio.to_thread(self._write, key, value)
        except OSError as exc:
            logger.error("storage.write_failed key=%s error=%s; keeping value in memory", key, exc)
            await self._memory.set(key, value)

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await asyncio.to_thread(self._read, key)
        except (OSError, ValueError) as exc:
            logger.warning("storage.read_failed key=%s error=%s", key, exc)
            value = None
        if value is None:
            return await self._memory.get(key)
        return value

    async def delete(self, key: str) -> None:
        try:
            await asyncio.to_thread(self.path_for(key).unlink, True)
        except OSError as exc:
            logger.warning("storage.delete_failed key=%s error=%s", key, exc)
        await self._memory.delete(key)

    async def keys(self, prefix: str = "") -> List[str]:
        found = [key for key in await asyncio.to_thread(self._list_keys) if key.startswith(prefix)]
        for key in await self._memory.keys(prefix):
            if key not in found:
                found.append(key)
        return found


def build_store(backend: Optional[str] = None, directory: Optional[str] = None) -> KeyValueStore:
    """FileStore unless the memory backend is configured or the directory is unusable."""

    backend = (backend or settings.storage_backend or "file").lower()
    if backend == "memory":
        return MemoryStore()
    path = Path(directory or settings.storage_dir)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        logger.warning("storage.directory_unavailable path=%s error=%s; using memory", path, exc)
        return MemoryStore()
    return FileStore(path)


async def load_records(
    store: KeyValueStore,
    prefix: str,
    model: Type[ModelT],
    *,
    limit: Optional[int] = None,
) -> List[ModelT]:
    """Validated records under ``prefix``, newest first; invalid entries are skipped."""

    records: List[ModelT] = []
    for key in await store.keys(prefix):
        value = await store.get(key)
        if value is None:
            continue
        try:
            records.append(model.model_validate(value))
        except ValidationError as exc:
            logger.warning("storage.invalid_record key=%s errors=%s", key, exc.error_count())
    records.sort(key=lambda record: getattr(record, "timestamp", 0) or 0, reverse=True)
    return records[:limit] if limit is not None else records
