"""Content-derived message ids for broker-side duplicate detection."""

from __future__ import annotations

import base64
import hashlib

from claimcheck.models import encode_body


def compute_content_hash(body: bytes | str | None) -> str:
    """Return base64(SHA-256(body)).

    Identical bodies yield identical ids, so a broker with duplicate
    detection enabled drops resends of the same payload.
    """
    digest = hashlib.sha256(encode_body(body)).digest()
    return base64.b64encode(digest).decode("ascii")
