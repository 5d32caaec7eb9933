"""
Record signatures - deterministic content fingerprints.

A signature has the form ``FP-<16 hex chars>-<epoch ms>``.  The hex part is
the head of ``sha256(canonical_json(content) + str(epoch_ms))`` where
*content* is the record's wire dict without the signature itself.

This is a checksum, not an authentication tag.  No secret is involved, so
anyone holding a record can recompute (or forge) its signature.  It detects
accidental or naive modification of a stored record; it does not prove who
wrote it.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from typing import Any

from relaylog.core.constants import SIGNATURE_DIGEST_CHARS, SIGNATURE_PREFIX

_SIGNATURE_RE = re.compile(
    rf"^{SIGNATURE_PREFIX}-([0-9a-f]{{{SIGNATURE_DIGEST_CHARS}}})-(\d+)$"
)


def canonical_json(content: Mapping[str, Any]) -> str:
    return json.dumps(content, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def compute_signature(content: Mapping[str, Any], signed_at_ms: int) -> str:
    """Fingerprint *content* as signed at *signed_at_ms*."""
    payload = canonical_json(content) + str(int(signed_at_ms))
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    return f"{SIGNATURE_PREFIX}-{digest[:SIGNATURE_DIGEST_CHARS]}-{int(signed_at_ms)}"


def signed_at(signature: str) -> int | None:
    """Return the signing timestamp embedded in *signature*, or None if malformed."""
    if not isinstance(signature, str):
        return None
    m = _SIGNATURE_RE.match(signature)
    if m is None:
        return None
    return int(m.group(2))


def verify_signature(content: Mapping[str, Any], signature: str) -> bool:
    """True iff *signature* is exactly the fingerprint of *content* at its embedded time."""
    ts = signed_at(signature)
    if ts is None:
        return False
    try:
        expected = compute_signature(content, ts)
    except (TypeError, ValueError):
        return False
    return expected == signature
