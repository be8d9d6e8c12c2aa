"""Wrappers around the Notion ``/blocks`` endpoints."""

from __future__ import annotations

from typing import Any

from .transport import AsyncNotionTransport


def extract_block_ids(response: dict[str, Any]) -> list[str]:
    """Return the ids of the blocks in an ``append children`` response."""
    return [item["id"] for item in response.get("results", []) if "id" in item]


class AsyncBlockAPI:
    """Coroutine wrappers for the Blocks API.

    Parameters
    ----------
    transport:
        The shared :class:`AsyncNotionTransport`.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def retrieve(self, block_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", f"/blocks/{block_id}")

    async def update(self, block_id: str, payload: dict[str, Any]) -> dict[str, Any]:
        """PATCH a block.  *payload* is ``{type: {...}}``; omitted fields are kept."""
        return await self._transport.request("PATCH", f"/blocks/{block_id}", json=payload)

    async def delete(self, block_id: str) -> dict[str, Any]:
        """Archive a block."""
        return await self._transport.request("DELETE", f"/blocks/{block_id}")

    async def get_children(self, block_id: str) -> list[dict[str, Any]]:
        """Return every child of *block_id* in order, following cursors."""
        return [item async for item in self._transport.paginate(f"/blocks/{block_id}/children")]

    async def append_children(
        self,
        block_id: str,
        children: list[dict[str, Any]],
        after: str | None = None,
    ) -> dict[str, Any]:
        """Insert *children* under *block_id*.

        Parameters
        ----------
        block_id:
            Parent block or page.
        children:
            Block objects to insert (Notion accepts at most 100 per call).
        after:
            Id of an existing child to insert after.  ``None`` appends at
            the end.
        """
        body: dict[str, Any] = {"children": children}
        if after is not None:
            body["after"] = after
        return await self._transport.request("PATCH", f"/blocks/{block_id}/children", json=body)
