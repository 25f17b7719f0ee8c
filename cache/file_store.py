"""
File-backed trajectory cache.

One JSON document per device under a cache directory. Writes go to a
temporary file that is then renamed over the snapshot, so a reader sees
either the previous snapshot or the new one, never a partial write.
"""

import asyncio
import os
import tempfile
from pathlib import Path
from typing import Optional
from urllib.parse import quote

from cache.store import TrajectoryCache
from errors.exceptions import cache_unavailable


class FileTrajectoryCache(TrajectoryCache):
    """
    Trajectory cache storing one JSON file per device.

    Attributes:
        cache_dir: Directory holding the snapshots
    """

    def __init__(self, cache_dir: str | Path):
        self.cache_dir = Path(cache_dir)

    def _get_path(self, device_id: str) -> Path:
        # Device ids are opaque; percent-encode them into a flat file name
        return self.cache_dir / f"{quote(device_id, safe='')}.json"

    async def _read(self, device_id: str) -> Optional[str]:
        return await asyncio.to_thread(self._read_sync, device_id)

    async def _write(self, device_id: str, payload: str) -> None:
        await asyncio.to_thread(self._write_sync, device_id, payload)

    async def _delete(self, device_id: str) -> None:
        await asyncio.to_thread(self._delete_sync, device_id)

    def _read_sync(self, device_id: str) -> Optional[str]:
        path = self._get_path(device_id)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise cache_unavailable(
                f"Cannot read {path.name}: {e}", details={"device_id": device_id}
            ) from e

    def _write_sync(self, device_id: str, payload: str) -> None:
        path = self._get_path(device_id)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.cache_dir, suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    handle.write(payload)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise cache_unavailable(
                f"Cannot write {path.name}: {e}", details={"device_id": device_id}
            ) from e

    def _delete_sync(self, device_id: str) -> None:
        path = self._get_path(device_id)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise cache_unavailable(
                f"Cannot delete {path.name}: {e}", details={"device_id": device_id}
            ) from e

    async def health_check(self) -> bool:
        """Healthy when the cache directory exists (or can be created) and is writable."""
        try:
            await asyncio.to_thread(self.cache_dir.mkdir, parents=True, exist_ok=True)
        except OSError:
            return False
        return os.access(self.cache_dir, os.W_OK)
