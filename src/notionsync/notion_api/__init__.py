"""notionsync.notion_api -- Notion API transport, endpoint wrappers, and the
remote store used by the sync engine.

* :mod:`.rate_limit` -- async token bucket.
* :mod:`.retries` -- retry policy and backoff.
* :mod:`.transport` -- HTTP transport with auth, retries and pacing.
* :mod:`.pages` -- page and search wrappers, page metadata helpers.
* :mod:`.blocks` -- block wrappers.
* :mod:`.store` -- :class:`RemoteStore` protocol and its Notion implementation.
"""

from __future__ import annotations

from .blocks import AsyncBlockAPI, extract_block_ids
from .pages import AsyncPageAPI, normalize_page_id, page_icon, page_meta, page_parent, page_title
from .rate_limit import AsyncTokenBucket
from .retries import RetryPolicy, parse_retry_after
from .store import NotionRemoteStore, RemoteStore
from .transport import AsyncNotionTransport, error_for_response

__all__ = [
    "AsyncBlockAPI",
    "AsyncNotionTransport",
    "AsyncPageAPI",
    "AsyncTokenBucket",
    "NotionRemoteStore",
    "RemoteStore",
    "RetryPolicy",
    "error_for_response",
    "extract_block_ids",
    "normalize_page_id",
    "page_icon",
    "page_meta",
    "page_parent",
    "page_title",
    "parse_retry_after",
]
