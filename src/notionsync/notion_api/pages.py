"""Wrappers around the Notion ``/pages`` and ``/search`` endpoints, plus
helpers that read the fields the cache stores from a page object.
"""

from __future__ import annotations

from typing import Any

from notionsync.models import PageMeta

from .transport import AsyncNotionTransport

UNTITLED = "Untitled"


def normalize_page_id(page_id: str) -> str:
    """Strip dashes so that both UUID spellings address the same page."""
    return page_id.replace("-", "")


def page_title(page: dict[str, Any] | None) -> str:
    """Plain-text title of a page, ``"Untitled"`` when it has none."""
    if not page:
        return UNTITLED
    for prop in (page.get("properties") or {}).values():
        if prop.get("type") == "title" and prop.get("title"):
            title = "".join(part.get("plain_text", "") for part in prop["title"])
            if title:
                return title
    return UNTITLED


def page_parent(page: dict[str, Any] | None) -> tuple[str, str | None]:
    """Return ``(parent_type, parent_id)``.

    ``parent_type`` is the Notion parent type (``"workspace"``,
    ``"page_id"``, ``"database_id"``, ``"block_id"``) or ``"unknown"``.
    """
    parent = (page or {}).get("parent") or {}
    parent_type = parent.get("type")
    if parent_type == "workspace":
        return "workspace", None
    if parent_type in ("page_id", "database_id", "block_id"):
        return parent_type, parent.get(parent_type)
    return "unknown", None


def page_icon(page: dict[str, Any] | None) -> tuple[str | None, str | None]:
    """Return ``(icon, icon_type)``: the emoji or the icon URL."""
    icon = (page or {}).get("icon") or {}
    icon_type = icon.get("type")
    if icon_type == "emoji":
        return icon.get("emoji"), icon_type
    if icon_type in ("external", "file"):
        return (icon.get(icon_type) or {}).get("url"), icon_type
    return None, None


def page_meta(page: dict[str, Any]) -> PageMeta:
    """Build the cache row for a page object."""
    parent_type, parent_id = page_parent(page)
    icon, icon_type = page_icon(page)
    return PageMeta(
        id=normalize_page_id(page.get("id", "")),
        title=page_title(page),
        icon=icon,
        icon_type=icon_type,
        parent_type=parent_type,
        parent_id=parent_id,
        last_edited_time=page.get("last_edited_time"),
        created_time=page.get("created_time"),
    )


class AsyncPageAPI:
    """Coroutine wrappers for the Pages and Search APIs.

    Parameters
    ----------
    transport:
        The shared :class:`AsyncNotionTransport`.
    """

    def __init__(self, transport: AsyncNotionTransport) -> None:
        self._transport = transport

    async def retrieve(self, page_id: str) -> dict[str, Any]:
        return await self._transport.request("GET", f"/pages/{normalize_page_id(page_id)}")

    async def search(self, query: str | None = None, *, limit: int = 100) -> list[dict[str, Any]]:
        """Pages shared with the integration, optionally filtered by *query*."""
        body: dict[str, Any] = {"filter": {"property": "object", "value": "page"}}
        if query:
            body["query"] = query
        results: list[dict[str, Any]] = []
        async for page in self._transport.paginate("/search", method="POST", json=body):
            results.append(page)
            if len(results) >= limit:
                break
        return results
