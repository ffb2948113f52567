# emission/core/address.py
import re

from emission.core.errors import InvalidArgument, INVALID_ADDRESS

ZERO_ADDRESS = "0x" + "0" * 40

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


def normalize_address(value: str) -> str:
    """Validate an EVM-style address and return it lower-cased."""
    if not isinstance(value, str) or not _ADDRESS_RE.match(value):
        raise InvalidArgument(INVALID_ADDRESS, f"not a valid address: {value!r}")
    return value.lower()


def is_zero_address(value: str) -> bool:
    return normalize_address(value) == ZERO_ADDRESS


def address_from_bytes(data: bytes) -> str:
    """Take the trailing 20 bytes of a digest as an address."""
    if len(data) < 20:
        raise ValueError("need at least 20 bytes to form an address")
    return "0x" + data[-20:].hex()
