"""Deterministic keys for idempotent side-effect application."""

import hashlib
import json
from typing import Any
from uuid import UUID


def generate_idempotency_key(
    operation: str,
    entity_id: UUID | str,
    params: dict[str, Any] | None = None,
) -> str:
    """Generate a deterministic idempotency key.

    Args:
        operation: Operation name (e.g., "booking_intent")
        entity_id: Primary entity ID
        params: Additional parameters to include in key

    Returns:
        SHA256 hash of operation + entity + params
    """
    key_data = {
        "operation": operation,
        "entity_id": str(entity_id),
        "params": params or {},
    }
    key_str = json.dumps(key_data, sort_keys=True)
    return hashlib.sha256(key_str.encode()).hexdigest()


def generate_intent_id(booking_id: UUID | str, version: int, seq: int) -> str:
    """Intent ID for the ``seq``-th log entry, emitted by the transition producing ``version``.

    The same transition replayed against the same snapshot yields the same
    IDs, so a consumer keyed on intent ID can never apply it twice.
    """
    return generate_idempotency_key(
        "booking_intent", booking_id, {"version": version, "seq": seq}
    )
