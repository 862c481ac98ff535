"""JSON file persistence for credentials and device snapshots."""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import DeviceSnapshot

_LOGGER = logging.getLogger(__name__)


class JsonStore:
    """Persist a JSON document to a single file.

    File access runs in the default executor so callers never block the
    event loop.
    """

    def __init__(self, path: Path | str, *, private: bool = False) -> None:
        """Initialise the store for ``path``."""

        self.path = Path(path)
        self.private = private
        self._lock = asyncio.Lock()

    async def _async_run(self, func: Any, *args: Any) -> Any:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def async_load(self) -> Any | None:
        """Return the stored document, or None when missing or unreadable."""

        def _read() -> Any | None:
            if not self.path.exists():
                return None
            try:
                return json.loads(self.path.read_text(encoding="utf-8"))
            except json.JSONDecodeError:
                _LOGGER.warning("Ignoring unreadable JSON file %s", self.path)
                return None

        return await self._async_run(_read)

    async def async_save(self, data: Any) -> None:
        """Write ``data`` to disk.

        Saves are serialized so overlapping callers never share the
        temporary file.
        """

        def _write() -> None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(data, ensure_ascii=False), encoding="utf-8")
            if self.private:
                tmp_path.chmod(0o600)
            tmp_path.replace(self.path)

        async with self._lock:
            await self._async_run(_write)

    async def async_remove(self) -> None:
        """Delete the stored file if present."""

        def _remove() -> None:
            if self.path.exists():
                self.path.unlink()

        async with self._lock:
            await self._async_run(_remove)


class DeviceStore:
    """Persist the registry as a flat JSON array of ``{device, room}``."""

    def __init__(self, store: JsonStore) -> None:
        self._store = store

    async def async_get(self) -> list[DeviceSnapshot] | None:
        """Load the persisted snapshots; None when nothing was saved."""

        data = await self._store.async_load()
        if not isinstance(data, list):
            return None
        snapshots: list[DeviceSnapshot] = []
        for entry in data:
            try:
                snapshots.append(DeviceSnapshot.model_validate(entry))
            except ValidationError as err:
                _LOGGER.warning("Skipping invalid persisted device: %s", err)
        return snapshots

    async def async_set(self, snapshots: list[DeviceSnapshot]) -> None:
        """Replace the persisted snapshots."""

        await self._store.async_save(
            [snapshot.model_dump(mode="json") for snapshot in snapshots]
        )
