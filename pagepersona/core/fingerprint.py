"""Deterministic request fingerprints used as the deduplication key."""
from __future__ import annotations

import hashlib
import json
from typing import Literal

from pagepersona.core.errors import InvalidRequest
from pagepersona.core.urls import normalize_url

RequestKind = Literal["url", "text"]

JOB_ID_PREFIX_LENGTH = 32


def sha256_text(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def content_key(kind: str, content: str) -> str:
    """Return the normalized content component of a fingerprint.

    URLs are canonicalised; text is reduced to the digest of the whole
    trimmed body so that inputs sharing a long prefix never collide.
    """

    if kind == "url":
        return normalize_url(content)
    if kind == "text":
        text = (content or "").strip()
        if not text:
            raise InvalidRequest("text is required")
        return sha256_text(text)
    raise InvalidRequest(f"unsupported request kind: {kind!r}")


def fingerprint(kind: str, content: str, persona: str) -> str:
    persona_id = (persona or "").strip().lower()
    if not persona_id:
        raise InvalidRequest("persona is required")
    key = content_key(kind, content)
    payload = json.dumps(
        {"kind": kind, "key": key, "persona": persona_id},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    return sha256_text(payload)


def job_id_for(fp: str, attempt: int) -> str:
    return f"{fp[:JOB_ID_PREFIX_LENGTH]}-{attempt}"
