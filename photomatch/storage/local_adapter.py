import asyncio
from pathlib import Path

from photomatch.storage.base import BaseBlobStore
from photomatch.storage.exceptions import StorageError
from photomatch.storage.models import ListPage


class LocalBlobStore(BaseBlobStore):
    """Stores objects as files below a root directory."""

    PAGE_SIZE = 1000

    def __init__(self, root: Path, page_size: int = PAGE_SIZE) -> None:
        self._root = root
        self._page_size = page_size

    async def put(self, key: str, data: bytes, content_type: str) -> str:
        path = self._resolve(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as exc:
            raise StorageError(f"Failed to write {key}: {exc}") from exc
        return key

    async def list_keys(self, prefix: str, continuation_token: str | None = None) -> ListPage:
        keys = await asyncio.to_thread(self._keys_with_prefix, prefix)
        start = int(continuation_token) if continuation_token else 0
        end = start + self._page_size
        next_token = str(end) if end < len(keys) else None
        return ListPage(items=keys[start:end], next_token=next_token)

    async def head(self, key: str) -> bool:
        return self._resolve(key).is_file()

    def _resolve(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if not path.is_relative_to(self._root.resolve()):
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    def _keys_with_prefix(self, prefix: str) -> list[str]:
        if not self._root.exists():
            return []
        keys = (p.relative_to(self._root).as_posix() for p in self._root.rglob("*") if p.is_file())
        return sorted(k for k in keys if k.startswith(prefix))

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
