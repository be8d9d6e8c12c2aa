"""Tests for the utils package: hashing, redact and text_split."""

from __future__ import annotations

import pytest

from notionsync.utils import (
    RICH_TEXT_LIMIT,
    canonical_json,
    hash_blocks,
    hash_dict,
    md5_hash,
    redact,
    split_text,
)

# ---------------------------------------------------------------------------
# hashing
# ---------------------------------------------------------------------------


class TestHashing:
    def test_md5_known_value(self):
        assert md5_hash("hello") == "5d41402abc4b2a76b9719d911017c592"

    def test_md5_unicode(self):
        assert len(md5_hash("日本語 ✓")) == 32

    def test_canonical_json_sorted_and_compact(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
        assert canonical_json({"t": "é"}) == '{"t":"é"}'

    def test_hash_dict_key_order_irrelevant(self):
        assert hash_dict({"a": 1, "b": {"c": 2}}) == hash_dict({"b": {"c": 2}, "a": 1})

    def test_hash_blocks_order_sensitive(self):
        a = {"id": "a", "type": "paragraph"}
        b = {"id": "b", "type": "paragraph"}
        assert hash_blocks([a, b]) != hash_blocks([b, a])
        assert hash_blocks([a, b]) == hash_blocks([dict(a), dict(b)])

    def test_hash_blocks_empty(self):
        assert hash_blocks([]) == md5_hash("[]")


# ---------------------------------------------------------------------------
# redact
# ---------------------------------------------------------------------------


class TestRedact:
    def test_authorization_header(self):
        assert redact({"Authorization": "Bearer ntn_abc123"}) == {"Authorization": "Bearer <redacted>"}

    def test_sensitive_keys_masked(self):
        result = redact({"api_key": 123, "Cookie": ["a"], "name": "ok"})
        assert result == {"api_key": "<redacted>", "Cookie": "<redacted>", "name": "ok"}

    def test_token_scrubbed_everywhere(self):
        token = "secret_abcdef1234"
        payload = {"results": [{"note": f"leaked {token} here"}]}
        result = redact(payload, token)
        assert token not in str(result)
        assert result["results"][0]["note"] == "leaked <redacted:...1234> here"

    def test_long_text_replaced_by_length(self):
        result = redact({"content": "x" * 500})
        assert result == {"content": "<text:500_chars>"}

    def test_custom_max_text(self):
        assert redact({"content": "abcdef"}, max_text=3) == {"content": "<text:6_chars>"}

    def test_input_not_mutated(self):
        payload = {"token": "abc", "nested": {"Authorization": "Bearer x"}}
        redact(payload)
        assert payload == {"token": "abc", "nested": {"Authorization": "Bearer x"}}


# ---------------------------------------------------------------------------
# text_split
# ---------------------------------------------------------------------------


class TestSplitText:
    def test_short_text_single_chunk(self):
        assert split_text("hello") == ["hello"]

    def test_empty_text(self):
        assert split_text("") == [""]

    def test_exact_limit(self):
        assert split_text("a" * RICH_TEXT_LIMIT) == ["a" * RICH_TEXT_LIMIT]

    def test_long_text_split_at_limit(self):
        chunks = split_text("a" * (RICH_TEXT_LIMIT * 2 + 5))
        assert [len(c) for c in chunks] == [RICH_TEXT_LIMIT, RICH_TEXT_LIMIT, 5]

    def test_code_points_not_cut(self):
        text = "😀" * 5
        assert split_text(text, 2) == ["😀😀", "😀😀", "😀"]

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            split_text("abc", 0)
