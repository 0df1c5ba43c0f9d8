"""Hashing helpers for synthesized stream event identifiers."""
from __future__ import annotations

import hashlib
import json
from typing import Any

from shared.logging.logger import get_logger

log = get_logger("shared.utils.hashing")


def stable_payload_hash(payload: Any) -> str:
    """Compute a deterministic hash for a decoded JSON payload.

    Keys are sorted so that two payloads differing only in key order hash
    identically. Values that cannot be serialised fall back to ``repr``.
    """

    digest = hashlib.sha256()
    try:
        encoded = json.dumps(payload, sort_keys=True, ensure_ascii=False, default=str)
    except (TypeError, ValueError) as exc:  # pragma: no cover - defensive logging
        log.debug(f"Falling back to repr() for payload hash: {exc}")
        encoded = repr(payload)
    digest.update(encoded.encode("utf-8"))
    return digest.hexdigest()


def synthesize_event_id(payload: Any, arrival_ts: float) -> str:
    """Build an id from payload content plus arrival time.

    Used when an inbound message carries no id of its own.
    """

    digest = hashlib.sha256()
    digest.update(stable_payload_hash(payload).encode("ascii"))
    digest.update(f"{arrival_ts:.6f}".encode("ascii"))
    return digest.hexdigest()[:16]
