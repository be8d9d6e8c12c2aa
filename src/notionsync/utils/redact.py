"""Payload redaction for debug dumps.

Request and response bodies written by ``debug_dump_payload`` pass through
:func:`redact` first.  Credential-like keys lose their values, the
integration token and ``Bearer`` headers are scrubbed from every string,
and long text (block content is user data) shrinks to a
``<text:N_chars>`` placeholder.
"""

from __future__ import annotations

import re
from typing import Any

# Key substrings whose values never appear in a dump.
_CREDENTIAL_KEYS = ("token", "secret", "password", "authorization", "cookie", "api_key")

_MAX_TEXT_LENGTH = 200

_BEARER_RE = re.compile(r"(Bearer\s+)\S+")


def _is_credential(key: Any) -> bool:
    return isinstance(key, str) and any(part in key.lower() for part in _CREDENTIAL_KEYS)


def _scrub(text: str, token: str | None) -> str:
    if token and token in text:
        tail = token[-4:] if len(token) >= 4 else "****"
        marker = f"<redacted:...{tail}>"
        text = text.replace(token, "<redacted>" if token in marker else marker)
    return _BEARER_RE.sub(r"\1<redacted>", text)


def _walk(node: Any, token: str | None, max_text: int) -> Any:
    if isinstance(node, dict):
        out = {}
        for key, value in node.items():
            if not _is_credential(key):
                out[key] = _walk(value, token, max_text)
            elif isinstance(value, str) and _BEARER_RE.search(value):
                out[key] = _scrub(value, token)
            else:
                out[key] = "<redacted>"
        return out
    if isinstance(node, (list, tuple)):
        return [_walk(item, token, max_text) for item in node]
    if isinstance(node, str):
        node = _scrub(node, token)
        return f"<text:{len(node)}_chars>" if len(node) > max_text else node
    return node


def redact(
    payload: dict,
    token: str | None = None,
    *,
    max_text: int = _MAX_TEXT_LENGTH,
) -> dict:
    """Return a redacted copy of *payload*; the input is left untouched.

    Parameters
    ----------
    payload:
        A request body, response body, or header mapping.
    token:
        The integration token; every occurrence is scrubbed.
    max_text:
        Strings longer than this are replaced by ``<text:N_chars>``.

    Examples
    --------
    >>> redact({"Authorization": "Bearer ntn_abc123"})
    {'Authorization': 'Bearer <redacted>'}
    """
    return _walk(payload, token, max_text)
