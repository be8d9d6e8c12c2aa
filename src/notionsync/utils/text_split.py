"""Length-limited text splitting for rich-text runs.

Notion rejects a ``rich_text[].text.content`` longer than 2000 characters.
Serialization splits long runs with :func:`split_text` so that a block with
long content still produces a valid payload.
"""

from __future__ import annotations

RICH_TEXT_LIMIT = 2000


def split_text(text: str, limit: int = RICH_TEXT_LIMIT) -> list[str]:
    """Split *text* into chunks of at most *limit* characters.

    Python ``str`` indexing is code-point based, so no character is ever
    cut in half.  An empty string yields ``[""]`` so that callers always get
    at least one chunk to attach annotations to.

    Raises
    ------
    ValueError
        If *limit* is less than 1.

    Examples
    --------
    >>> split_text("hello world", 5)
    ['hello', ' worl', 'd']
    >>> split_text("")
    ['']
    """
    if limit < 1:
        raise ValueError(f"limit must be >= 1, got {limit}")
    if len(text) <= limit:
        return [text]
    return [text[i : i + limit] for i in range(0, len(text), limit)]
