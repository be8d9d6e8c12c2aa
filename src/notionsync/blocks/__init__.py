"""Block model: typed block entities, rich-text runs, and the formatter boundary."""

from __future__ import annotations

from .formatter import Formatter, LineFormatter
from .model import (
    DEFAULT_CODE_LANGUAGE,
    VARIANTS,
    Block,
    BlockFields,
    BlockState,
    BlockType,
    block_from_api,
    is_temp_id,
    new_temp_id,
)
from .rich_text import Annotations, TextRun, from_plain, plain_text, runs_from_api, runs_to_api

__all__ = [
    "DEFAULT_CODE_LANGUAGE",
    "VARIANTS",
    "Annotations",
    "Block",
    "BlockFields",
    "BlockState",
    "BlockType",
    "Formatter",
    "LineFormatter",
    "TextRun",
    "block_from_api",
    "from_plain",
    "is_temp_id",
    "new_temp_id",
    "plain_text",
    "runs_from_api",
    "runs_to_api",
]
