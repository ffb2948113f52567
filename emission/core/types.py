# emission/core/types.py
from dataclasses import dataclass, field, asdict
from typing import Dict, Literal, Tuple

DECIMALS = 18

# Role tag reported by has_role(); the only role the ledger recognizes.
MINTER_ROLE = "MINTER_ROLE"

EventKind = Literal[
    "Deployed",
    "Transfer",
    "RoleGranted",
    "RoleRevoked",
    "MaxEmissionChanged",
    "OwnershipTransferred",
]


@dataclass(frozen=True)
class LedgerEvent:
    """Single entry in the hash-chained journal of a deployed ledger."""
    sequence: int
    kind: EventKind
    payload: Dict[str, object]
    caller: str
    timestamp: str                  # ISO 8601 UTC with millis
    prev_hash: str = ""             # hex(sha256) of previous event, empty for the first

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "LedgerEvent":
        return cls(
            sequence=int(d["sequence"]),
            kind=d["kind"],
            payload=dict(d["payload"]),
            caller=d["caller"],
            timestamp=d["timestamp"],
            prev_hash=d.get("prev_hash", ""),
        )


@dataclass(frozen=True)
class DeploymentRecord:
    """Where and by whom a ledger was deployed."""
    address: str
    name: str
    symbol: str
    deployer: str
    nonce: int = 0
    created_at: str = ""


@dataclass(frozen=True)
class LedgerSnapshot:
    """Consistent point-in-time view of a ledger's state."""
    name: str
    symbol: str
    owner: str
    total_supply: int
    max_emission: int
    decimals: int = DECIMALS
    minters: Tuple[str, ...] = ()
    balances: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict:
        d = asdict(self)
        d["minters"] = list(self.minters)
        return d
