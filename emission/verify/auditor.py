# emission/verify/auditor.py
from typing import List, Optional
from dataclasses import dataclass

from emission.core.address import ZERO_ADDRESS
from emission.core.hashing import event_hash
from emission.core.types import LedgerEvent, LedgerSnapshot
from emission.storage import StorageBackend
from emission.token.ledger import EmissionLedger


@dataclass
class AuditFailure:
    index: int
    message: str
    category: str = "general"  # "sequence", "genesis", "hash_chain", "replay", "invariant", "storage"


@dataclass
class AuditResult:
    is_valid: bool
    message: str = ""
    failures: List[AuditFailure] = None
    snapshot: Optional[LedgerSnapshot] = None

    def __post_init__(self):
        if self.failures is None:
            self.failures = []

    @property
    def first_failure(self) -> Optional[AuditFailure]:
        return self.failures[0] if self.failures else None

    def __bool__(self):
        return self.is_valid

    def __str__(self):
        if self.is_valid:
            return "Journal is valid ✓"
        lines = [f"Audit FAILED ({len(self.failures)} issues):"]
        for f in self.failures:
            lines.append(f"  • [{f.index}] {f.category}: {f.message}")
        return "\n".join(lines)


def check_invariants(snapshot: LedgerSnapshot) -> List[str]:
    """Return a description of every supply/role invariant the snapshot breaks."""
    problems = []
    if snapshot.total_supply != sum(snapshot.balances.values()):
        problems.append(
            f"total supply {snapshot.total_supply} != sum of balances {sum(snapshot.balances.values())}"
        )
    negative = [a for a, v in snapshot.balances.items() if v < 0]
    if negative:
        problems.append(f"negative balances: {', '.join(negative)}")
    if snapshot.max_emission > 0 and snapshot.total_supply > snapshot.max_emission:
        problems.append(f"total supply {snapshot.total_supply} exceeds max emission {snapshot.max_emission}")
    if ZERO_ADDRESS in snapshot.minters:
        problems.append("zero address holds the minter role")
    return problems


class JournalAuditor:
    """
    Offline auditor for ledger journals.
    Checks ordering and hash links, then replays every event through a fresh
    ledger and re-checks the supply and role invariants after each step.
    """

    def audit(self, events: List[LedgerEvent]) -> AuditResult:
        if not events:
            return AuditResult(True, "Empty journal is valid")

        result = AuditResult(True)

        # 1. Ordering & genesis
        if events[0].kind != "Deployed":
            result.failures.append(AuditFailure(0, f"First event is {events[0].kind}, expected Deployed", "genesis"))
            result.is_valid = False
        for i, event in enumerate(events):
            if event.sequence != i:
                result.failures.append(AuditFailure(i, f"Sequence mismatch: expected {i}, got {event.sequence}", "sequence"))
                result.is_valid = False

        if not result.is_valid:
            return result

        # 2. Hash chain
        for i in range(1, len(events)):
            if events[i].prev_hash != event_hash(events[i - 1]):
                result.failures.append(AuditFailure(i, "prev_hash does not match previous event hash", "hash_chain"))
                result.is_valid = False

        # 3. Replay + invariants
        try:
            ledger = EmissionLedger.replay(events[:1])
        except ValueError as e:
            result.failures.append(AuditFailure(0, str(e), "replay"))
            result.is_valid = False
            result.message = f"Failed with {len(result.failures)} issues"
            return result

        for i, event in enumerate(events[1:], start=1):
            try:
                ledger.apply_event(event)
            except ValueError as e:
                result.failures.append(AuditFailure(i, str(e), "replay"))
                result.is_valid = False
                break
            for problem in check_invariants(ledger.snapshot()):
                result.failures.append(AuditFailure(i, problem, "invariant"))
                result.is_valid = False

        result.snapshot = ledger.snapshot()
        result.message = (
            f"Valid journal ({len(events)} events)" if result.is_valid
            else f"Failed with {len(result.failures)} issues"
        )
        return result

    def audit_from_storage(self, address: str, storage: StorageBackend) -> AuditResult:
        """
        Load a journal from persistent storage and audit it.
        Load failures are reported as a single storage failure.
        """
        try:
            events = storage.load_events(address, verify_chain=False)
        except Exception as e:
            return AuditResult(
                False,
                f"Failed to load journal for '{address}' from storage: {str(e)}",
                [AuditFailure(-1, str(e), "storage")]
            )

        if not events:
            return AuditResult(
                False,
                f"No journal found for '{address}'",
                [AuditFailure(-1, "no events recorded", "storage")]
            )

        result = self.audit(events)

        # Stored row hashes also cover the last event, which no prev_hash points at.
        try:
            storage.load_events(address, verify_chain=True)
        except ValueError as e:
            result.failures.append(AuditFailure(-1, str(e), "hash_chain"))
            result.is_valid = False
            result.message = f"Failed with {len(result.failures)} issues"

        return result
