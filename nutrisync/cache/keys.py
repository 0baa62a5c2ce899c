# -*- coding: utf-8 -*-
"""Cache keys scoped by identity.

A key looks like ``goals:user-1`` or ``daily_stats:2026-10-19:user-1``. The
identity is always the last segment and is percent-quoted, so it never
contains the separator and two identities can never produce the same key.
"""

from __future__ import annotations

from typing import Optional
from urllib.parse import quote, unquote

SEPARATOR = ":"


def collection_key(collection: str, identity: str, scope: Optional[str] = None) -> str:
    if not identity:
        raise ValueError("identity must be a non-empty string")
    parts = [collection]
    if scope:
        parts.append(scope)
    parts.append(quote(identity, safe=""))
    return SEPARATOR.join(parts)


def key_identity(key: str) -> Optional[str]:
    if SEPARATOR not in key:
        return None
    return unquote(key.rsplit(SEPARATOR, 1)[1])
