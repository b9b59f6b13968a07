from abc import ABC, abstractmethod

from photomatch.storage.models import ListPage


class BaseBlobStore(ABC):
    """Contract for object stores holding event images and selfies."""

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` under ``key`` and return the key.

        Raises:
            StorageError: if the store rejects the object.
            StorageNetworkError: if the store cannot be reached.
        """

    @abstractmethod
    async def list_keys(self, prefix: str, continuation_token: str | None = None) -> ListPage:
        """Return one page of keys starting with ``prefix``."""

    @abstractmethod
    async def head(self, key: str) -> bool:
        """Return True when ``key`` exists."""

    async def list_all(self, prefix: str) -> list[str]:
        """Follow continuation tokens and return every key under ``prefix``."""
        keys: list[str] = []
        token: str | None = None
        while True:
            page = await self.list_keys(prefix, token)
            keys.extend(page.items)
            if not page.next_token:
                return keys
            token = page.next_token
