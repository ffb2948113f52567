# emission/core/errors.py
"""
Typed failures raised by the ledger.

Each failure carries a stable ``reason`` code that tests and callers can
match on, plus a human readable message. A rejected call never leaves
partial state behind.
"""


class LedgerError(Exception):
    """Base class for every rejected ledger operation."""

    def __init__(self, reason: str, message: str):
        self.reason = reason
        self.message = message
        super().__init__(f"[{reason}] {message}")


class Unauthorized(LedgerError):
    """Caller lacks the privilege the operation requires."""


class InvalidArgument(LedgerError):
    """A supplied value violates a structural precondition."""


class InvalidState(LedgerError):
    """The ledger's current state does not support the operation."""


class LimitExceeded(LedgerError):
    """A mint would push total supply past a nonzero emission cap."""


# Stable reason codes
NOT_OWNER = "not_owner"
NOT_MINTER_OR_OWNER = "not_minter_or_owner"
ZERO_ADDRESS = "zero_address"
INVALID_ADDRESS = "invalid_address"
ZERO_AMOUNT = "zero_amount"
INVALID_AMOUNT = "invalid_amount"
CAP_BELOW_SUPPLY = "cap_below_supply"
NOT_A_MINTER = "not_a_minter"
EMISSION_LIMIT_REACHED = "emission_limit_reached"
