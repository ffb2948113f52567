# emission/token/ledger.py
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Set

from emission.core.address import ZERO_ADDRESS, normalize_address
from emission.core.errors import (
    InvalidArgument,
    InvalidState,
    LedgerError,
    LimitExceeded,
    Unauthorized,
    CAP_BELOW_SUPPLY,
    EMISSION_LIMIT_REACHED,
    INVALID_AMOUNT,
    NOT_A_MINTER,
    NOT_MINTER_OR_OWNER,
    NOT_OWNER,
    ZERO_ADDRESS as ZERO_ADDRESS_REASON,
    ZERO_AMOUNT,
)
from emission.core.hashing import event_hash
from emission.core.types import DECIMALS, MINTER_ROLE, LedgerEvent, LedgerSnapshot

logger = logging.getLogger(__name__)

EventListener = Callable[[LedgerEvent], None]


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _require_amount(value, reason: str, message: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidArgument(INVALID_AMOUNT, f"amount must be an integer, got {value!r}")
    if value < 0 or (reason == ZERO_AMOUNT and value == 0):
        raise InvalidArgument(reason, message)
    return value


class EmissionLedger:
    """
    Capped, role-gated issuance ledger for one fungible token.

    The creator becomes the owner. The owner grants and revokes minters and
    sets the emission cap (0 = uncapped); the owner and current minters may
    mint. Every successful change is recorded as a hash-chained LedgerEvent.

    Each call holds the ledger lock for its whole duration and is applied
    completely or not at all. Listeners see an event before it is committed,
    so a listener that raises (e.g. a failed persist) rejects the change.
    """

    def __init__(
        self,
        name: str,
        symbol: str,
        owner: str,
        clock: Callable[[], str] = utc_now,
    ):
        owner = normalize_address(owner)
        if owner == ZERO_ADDRESS:
            raise InvalidArgument(ZERO_ADDRESS_REASON, "owner can not be zero address")

        self._lock = threading.RLock()
        self._clock = clock
        self._name = name
        self._symbol = symbol
        self._owner = owner
        self._minters: Set[str] = set()
        self._balances: Dict[str, int] = {}
        self._total_supply = 0
        self._max_emission = 0
        self._events: List[LedgerEvent] = []
        self._listeners: List[EventListener] = []

        self._commit("Deployed", {"name": name, "symbol": symbol, "owner": owner}, owner, lambda: None)

    # ── queries

    @property
    def name(self) -> str:
        return self._name

    @property
    def symbol(self) -> str:
        return self._symbol

    @property
    def decimals(self) -> int:
        return DECIMALS

    @property
    def owner(self) -> str:
        with self._lock:
            return self._owner

    administrator = owner

    @property
    def total_supply(self) -> int:
        with self._lock:
            return self._total_supply

    @property
    def max_emission(self) -> int:
        with self._lock:
            return self._max_emission

    def balance_of(self, account: str) -> int:
        account = normalize_address(account)
        with self._lock:
            return self._balances.get(account, 0)

    def has_role(self, role: str, account: str) -> bool:
        account = normalize_address(account)
        with self._lock:
            return role == MINTER_ROLE and account in self._minters

    def minters(self) -> List[str]:
        with self._lock:
            return sorted(self._minters)

    def events(self) -> List[LedgerEvent]:
        with self._lock:
            return self._events.copy()

    def last_hash(self) -> Optional[str]:
        with self._lock:
            if not self._events:
                return None
            return event_hash(self._events[-1])

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                name=self._name,
                symbol=self._symbol,
                owner=self._owner,
                total_supply=self._total_supply,
                max_emission=self._max_emission,
                minters=tuple(sorted(self._minters)),
                balances=dict(self._balances),
            )

    def subscribe(self, listener: EventListener) -> None:
        """Register a callback invoked with each new event before it is committed."""
        with self._lock:
            self._listeners.append(listener)

    # ── owner operations

    def set_minter_role(self, caller: str, account: str) -> None:
        with self._lock:
            self._require_owner(caller)
            account = normalize_address(account)
            if account == ZERO_ADDRESS:
                raise InvalidArgument(ZERO_ADDRESS_REASON, "minter address can not be zero address")
            if account in self._minters:
                return

            self._commit(
                "RoleGranted",
                {"role": MINTER_ROLE, "account": account},
                caller,
                lambda: self._minters.add(account),
            )

    def revoke_minter_role(self, caller: str, account: str) -> None:
        with self._lock:
            self._require_owner(caller)
            account = normalize_address(account)
            if account not in self._minters:
                raise InvalidState(NOT_A_MINTER, "given address is not a minter")

            self._commit(
                "RoleRevoked",
                {"role": MINTER_ROLE, "account": account},
                caller,
                lambda: self._minters.discard(account),
            )

    def set_max_emission(self, caller: str, new_cap: int) -> None:
        with self._lock:
            self._require_owner(caller)
            new_cap = _require_amount(new_cap, INVALID_AMOUNT, "max emission can not be negative")
            if new_cap != 0 and new_cap < self._total_supply:
                raise InvalidArgument(CAP_BELOW_SUPPLY, "max emission must be 0 or more than total supply")

            def apply():
                self._max_emission = new_cap

            self._commit(
                "MaxEmissionChanged",
                {"previous": self._max_emission, "current": new_cap},
                caller,
                apply,
            )

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        with self._lock:
            self._require_owner(caller)
            new_owner = normalize_address(new_owner)
            if new_owner == ZERO_ADDRESS:
                raise InvalidArgument(ZERO_ADDRESS_REASON, "new owner is the zero address")
            self._set_owner(caller, new_owner)

    def renounce_ownership(self, caller: str) -> None:
        with self._lock:
            self._require_owner(caller)
            self._set_owner(caller, ZERO_ADDRESS)

    # ── issuance

    def mint(self, caller: str, to: str, amount: int) -> None:
        with self._lock:
            caller = normalize_address(caller)
            if caller != self._owner and caller not in self._minters:
                raise Unauthorized(NOT_MINTER_OR_OWNER, "caller is not a minter or owner")
            to = normalize_address(to)
            if to == ZERO_ADDRESS:
                raise InvalidArgument(ZERO_ADDRESS_REASON, "mint to the zero address")
            amount = _require_amount(amount, ZERO_AMOUNT, "amount must be more than 0")
            if self._max_emission > 0 and self._total_supply + amount > self._max_emission:
                raise LimitExceeded(EMISSION_LIMIT_REACHED, "emission limit reached")

            def apply():
                self._balances[to] = self._balances.get(to, 0) + amount
                self._total_supply += amount

            self._commit(
                "Transfer",
                {"from": ZERO_ADDRESS, "to": to, "value": amount},
                caller,
                apply,
            )

    # ── replay

    @classmethod
    def replay(cls, events: Iterable[LedgerEvent]) -> "EmissionLedger":
        """
        Rebuild a ledger by re-applying a journal through the public operations.
        Every authorization and limit is checked again, and each re-emitted
        event must hash identically to the recorded one.
        """
        events = list(events)
        if not events or events[0].kind != "Deployed":
            raise ValueError("Journal must start with a Deployed event")

        genesis = events[0]
        try:
            ledger = cls(
                genesis.payload["name"],
                genesis.payload["symbol"],
                genesis.payload["owner"],
                clock=lambda: genesis.timestamp,
            )
        except (LedgerError, KeyError) as e:
            raise ValueError(f"Invalid Deployed event: {e}") from e
        ledger._check_replayed(genesis)
        ledger._clock = utc_now

        for event in events[1:]:
            ledger.apply_event(event)
        return ledger

    def apply_event(self, event: LedgerEvent) -> None:
        """Re-apply one recorded event; raises ValueError if it is rejected or differs."""
        with self._lock:
            clock = self._clock
            self._clock = lambda: event.timestamp
            try:
                self._dispatch(event)
            except (LedgerError, KeyError) as e:
                raise ValueError(f"Event {event.sequence} ({event.kind}) does not re-apply: {e}") from e
            finally:
                self._clock = clock
            self._check_replayed(event)

    def _dispatch(self, event: LedgerEvent) -> None:
        p = event.payload
        if event.kind == "Transfer":
            self.mint(event.caller, p["to"], p["value"])
        elif event.kind == "RoleGranted":
            self.set_minter_role(event.caller, p["account"])
        elif event.kind == "RoleRevoked":
            self.revoke_minter_role(event.caller, p["account"])
        elif event.kind == "MaxEmissionChanged":
            self.set_max_emission(event.caller, p["current"])
        elif event.kind == "OwnershipTransferred":
            if p["current"] == ZERO_ADDRESS:
                self.renounce_ownership(event.caller)
            else:
                self.transfer_ownership(event.caller, p["current"])
        else:
            raise ValueError(f"Unexpected event kind at sequence {event.sequence}: {event.kind}")

    def _check_replayed(self, recorded: LedgerEvent) -> None:
        produced = self._events[-1] if self._events else None
        if produced is None or produced.sequence != recorded.sequence:
            raise ValueError(f"Event {recorded.sequence} produced no matching journal entry")
        if event_hash(produced) != event_hash(recorded):
            raise ValueError(f"Event {recorded.sequence} ({recorded.kind}) differs from its replay")

    # ── internals

    def _require_owner(self, caller: str) -> None:
        caller = normalize_address(caller)
        if self._owner == ZERO_ADDRESS or caller != self._owner:
            raise Unauthorized(NOT_OWNER, "caller is not the owner")

    def _set_owner(self, caller: str, new_owner: str) -> None:
        def apply():
            self._owner = new_owner

        self._commit(
            "OwnershipTransferred",
            {"previous": self._owner, "current": new_owner},
            caller,
            apply,
        )

    def _commit(self, kind: str, payload: dict, caller: str, apply: Callable[[], None]) -> LedgerEvent:
        """Build the next event, hand it to listeners, then apply the state change."""
        prev_hash = event_hash(self._events[-1]) if self._events else ""
        event = LedgerEvent(
            sequence=len(self._events),
            kind=kind,
            payload=payload,
            caller=normalize_address(caller),
            timestamp=self._clock(),
            prev_hash=prev_hash,
        )

        for listener in self._listeners:
            listener(event)

        apply()
        self._events.append(event)
        logger.debug("%s #%d %s", self._symbol, event.sequence, kind)
        return event
