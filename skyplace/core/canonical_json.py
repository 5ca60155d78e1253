"""
Canonical JSON (RFC 8785 JCS)

Wrapper for the canonicaljson library so commandId hashing is stable
regardless of dict construction order or the path a command arrived by.

Contract:
- Same fields → same bytes → same commandId (idempotent dedupe)
- Different fields → different commandId
"""

import canonicaljson


def canonicalJsonBytes(obj: any) -> bytes:
    """Canonical JSON as UTF-8 bytes, for hashing without a decode/encode round-trip."""
    return canonicaljson.encode_canonical_json(obj)
