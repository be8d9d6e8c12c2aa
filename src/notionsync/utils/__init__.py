from .hashing import canonical_json, hash_blocks, hash_dict, md5_hash
from .redact import redact
from .text_split import RICH_TEXT_LIMIT, split_text

__all__ = [
    "RICH_TEXT_LIMIT",
    "canonical_json",
    "hash_blocks",
    "hash_dict",
    "md5_hash",
    "redact",
    "split_text",
]
