"""MD5 helpers for content hashes.

The cache stores one hash per page (over the whole serialized block
sequence) and one per block.  Equal hashes mean the content is unchanged,
which lets the cache skip redundant writes and the client skip reloading a
page whose remote content matches what is cached.  These hashes are **not**
used for security purposes.
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def md5_hash(data: str) -> str:
    """Return the hex-encoded MD5 digest of *data* (UTF-8 encoded).

    Examples
    --------
    >>> md5_hash("hello")
    '5d41402abc4b2a76b9719d911017c592'
    """
    return hashlib.md5(data.encode("utf-8")).hexdigest()


def canonical_json(value: Any) -> str:
    """Serialize *value* deterministically (sorted keys, Unicode kept)."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, separators=(",", ":"))


def hash_dict(d: dict) -> str:
    """Return the hex-encoded MD5 of a JSON-serialized dict.

    Examples
    --------
    >>> hash_dict({"b": 2, "a": 1}) == hash_dict({"a": 1, "b": 2})
    True
    """
    return md5_hash(canonical_json(d))


def hash_blocks(blocks: list[dict[str, Any]]) -> str:
    """Return the content hash of a serialized block sequence.

    Order matters: the same blocks in a different order hash differently.
    """
    return md5_hash(canonical_json(blocks))
