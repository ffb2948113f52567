# emission/core/hashing.py
import hashlib

from emission.core.types import LedgerEvent
from emission.core.canon import canonical_json


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def event_hash(event: LedgerEvent) -> str:
    """SHA-256 over the canonical JSON of the full event, prev_hash included."""
    return sha256_hex(canonical_json(event.to_dict()))
