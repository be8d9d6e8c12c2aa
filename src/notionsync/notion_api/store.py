"""The remote store seen by the sync engine.

The executor and the client only talk to a :class:`RemoteStore`.
:class:`NotionRemoteStore` implements it over the Notion HTTP API; tests
substitute an ``AsyncMock``.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from notionsync.config import SyncConfig

from .blocks import AsyncBlockAPI, extract_block_ids
from .pages import AsyncPageAPI
from .transport import AsyncNotionTransport


@runtime_checkable
class RemoteStore(Protocol):
    """Block storage operations the sync engine needs."""

    async def create(
        self,
        parent_id: str,
        children: list[dict[str, Any]],
        anchor: str | None,
    ) -> list[str]:
        """Insert *children* under *parent_id* after *anchor*; return their new ids.

        ``anchor=None`` leaves placement to the store (Notion appends at
        the end).
        """
        ...

    async def update(self, block_id: str, payload: dict[str, Any]) -> None:
        ...

    async def delete(self, block_id: str) -> None:
        ...

    async def fetch_page(self, page_id: str) -> dict[str, Any]:
        ...

    async def fetch_children(self, block_id: str) -> list[dict[str, Any]]:
        ...


class NotionRemoteStore:
    """:class:`RemoteStore` backed by the Notion API.

    Parameters
    ----------
    transport:
        The transport every call goes through.  Owned by the store and
        closed by :meth:`close`.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport
        self.blocks = AsyncBlockAPI(transport)
        self.pages = AsyncPageAPI(transport)

    @classmethod
    def from_config(cls, config: SyncConfig) -> NotionRemoteStore:
        return cls(AsyncNotionTransport(config))

    async def create(
        self,
        parent_id: str,
        children: list[dict[str, Any]],
        anchor: str | None,
    ) -> list[str]:
        response = await self.blocks.append_children(parent_id, children, after=anchor)
        return extract_block_ids(response)

    async def update(self, block_id: str, payload: dict[str, Any]) -> None:
        await self.blocks.update(block_id, payload)

    async def delete(self, block_id: str) -> None:
        await self.blocks.delete(block_id)

    async def fetch_page(self, page_id: str) -> dict[str, Any]:
        return await self.pages.retrieve(page_id)

    async def fetch_children(self, block_id: str) -> list[dict[str, Any]]:
        return await self.blocks.get_children(block_id)

    async def search_pages(self, query: str | None = None, *, limit: int = 100) -> list[dict[str, Any]]:
        return await self.pages.search(query, limit=limit)

    async def close(self) -> None:
        await self._transport.close()
