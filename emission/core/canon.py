# emission/core/canon.py
from typing import Any

try:
    import jcs
except ImportError:
    raise ImportError("Please install jcs: pip install jcs")


def canonical_json(obj: Any) -> bytes:
    """
    Deterministic UTF-8 bytes for an event or snapshot (RFC 8785 / JCS).
    Used for hashing the journal and deriving deployment addresses.
    """
    return jcs.canonicalize(obj)


def canonical_json_str(obj: Any) -> str:
    return canonical_json(obj).decode("utf-8")
