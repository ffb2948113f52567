# tests/test_ledger.py
import threading

import pytest

from emission.core.address import ZERO_ADDRESS
from emission.core.errors import InvalidArgument, InvalidState, LimitExceeded, Unauthorized
from emission.core.hashing import event_hash
from emission.core.types import MINTER_ROLE
from emission.token.ledger import EmissionLedger

NAME = "LET coin"
SYMBOL = "LET"

OWNER = "0x" + "11" * 20
ADDRESS1 = "0x" + "22" * 20
ADDRESS2 = "0x" + "33" * 20


@pytest.fixture
def ledger():
    return EmissionLedger(NAME, SYMBOL, owner=OWNER)


def assert_consistent(ledger):
    snap = ledger.snapshot()
    assert snap.total_supply == sum(snap.balances.values())
    assert all(v >= 0 for v in snap.balances.values())
    if snap.max_emission:
        assert snap.total_supply <= snap.max_emission


# ── deployment

def test_sets_owner(ledger):
    assert ledger.owner == OWNER
    assert ledger.administrator == OWNER


def test_initial_state(ledger):
    assert ledger.name == NAME
    assert ledger.symbol == SYMBOL
    assert ledger.decimals == 18
    assert ledger.total_supply == 0
    assert ledger.max_emission == 0
    assert ledger.minters() == []


def test_zero_owner_rejected():
    with pytest.raises(InvalidArgument):
        EmissionLedger(NAME, SYMBOL, owner=ZERO_ADDRESS)


def test_deploy_records_genesis_event(ledger):
    events = ledger.events()
    assert len(events) == 1
    assert events[0].kind == "Deployed"
    assert events[0].payload == {"name": NAME, "symbol": SYMBOL, "owner": OWNER}
    assert events[0].prev_hash == ""


# ── minter role

def test_set_minter_role(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    assert ledger.has_role(MINTER_ROLE, ADDRESS1) is True
    assert ledger.has_role("OTHER_ROLE", ADDRESS1) is False


def test_set_minter_role_not_owner(ledger):
    with pytest.raises(Unauthorized) as exc:
        ledger.set_minter_role(ADDRESS1, ADDRESS2)
    assert exc.value.reason == "not_owner"
    assert not ledger.has_role(MINTER_ROLE, ADDRESS2)


def test_set_minter_role_zero_address(ledger):
    with pytest.raises(InvalidArgument) as exc:
        ledger.set_minter_role(OWNER, ZERO_ADDRESS)
    assert exc.value.reason == "zero_address"
    assert ledger.minters() == []


def test_set_minter_role_twice_is_noop(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    count = len(ledger.events())
    ledger.set_minter_role(OWNER, ADDRESS1)
    assert len(ledger.events()) == count
    assert ledger.minters() == [ADDRESS1]


def test_revoke_minter_role(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    ledger.revoke_minter_role(OWNER, ADDRESS1)
    assert ledger.has_role(MINTER_ROLE, ADDRESS1) is False


def test_revoke_minter_role_not_owner(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    with pytest.raises(Unauthorized):
        ledger.revoke_minter_role(ADDRESS2, ADDRESS1)
    assert ledger.has_role(MINTER_ROLE, ADDRESS1)


def test_revoke_non_minter(ledger):
    with pytest.raises(InvalidState) as exc:
        ledger.revoke_minter_role(OWNER, ADDRESS1)
    assert exc.value.reason == "not_a_minter"


def test_minter_cannot_manage_roles(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    with pytest.raises(Unauthorized):
        ledger.set_minter_role(ADDRESS1, ADDRESS2)
    with pytest.raises(Unauthorized):
        ledger.set_max_emission(ADDRESS1, 100)


def test_addresses_compared_case_insensitively(ledger):
    ledger.set_minter_role(OWNER, "0x" + "AB" * 20)
    assert ledger.has_role(MINTER_ROLE, "0x" + "ab" * 20)


# ── max emission

def test_set_max_emission(ledger):
    ledger.set_max_emission(OWNER, 10)
    assert ledger.max_emission == 10


def test_set_zero_max_emission_with_supply(ledger):
    ledger.mint(OWNER, OWNER, 10)
    assert ledger.total_supply == 10
    ledger.set_max_emission(OWNER, 20)
    ledger.set_max_emission(OWNER, 0)
    assert ledger.max_emission == 0


def test_max_emission_below_supply(ledger):
    ledger.mint(OWNER, OWNER, 10)
    with pytest.raises(InvalidArgument) as exc:
        ledger.set_max_emission(OWNER, 5)
    assert exc.value.reason == "cap_below_supply"
    assert ledger.max_emission == 0


def test_max_emission_equal_to_supply(ledger):
    ledger.mint(OWNER, OWNER, 10)
    ledger.set_max_emission(OWNER, 10)
    assert ledger.max_emission == 10


def test_max_emission_not_owner(ledger):
    with pytest.raises(Unauthorized):
        ledger.set_max_emission(ADDRESS1, 10)
    assert ledger.max_emission == 0


def test_negative_max_emission(ledger):
    with pytest.raises(InvalidArgument) as exc:
        ledger.set_max_emission(OWNER, -1)
    assert exc.value.reason == "invalid_amount"


def test_max_emission_event(ledger):
    ledger.set_max_emission(OWNER, 10)
    ledger.set_max_emission(OWNER, 0)
    kinds = [(e.kind, e.payload) for e in ledger.events()[1:]]
    assert kinds == [
        ("MaxEmissionChanged", {"previous": 0, "current": 10}),
        ("MaxEmissionChanged", {"previous": 10, "current": 0}),
    ]


# ── mint

def test_mint_by_owner_to_owner(ledger):
    ledger.mint(OWNER, OWNER, 1)
    assert ledger.balance_of(OWNER) == 1
    assert ledger.total_supply == 1


def test_mint_by_owner_to_other(ledger):
    ledger.mint(OWNER, ADDRESS1, 1)
    assert ledger.balance_of(ADDRESS1) == 1
    assert ledger.total_supply == 1


def test_mint_by_minter(ledger):
    ledger.set_minter_role(OWNER, ADDRESS2)
    ledger.mint(ADDRESS2, ADDRESS1, 1)
    assert ledger.balance_of(ADDRESS1) == 1
    assert ledger.total_supply == 1


def test_mint_under_cap(ledger):
    ledger.mint(OWNER, OWNER, 10)
    ledger.set_max_emission(OWNER, 11)
    ledger.mint(OWNER, OWNER, 1)
    assert ledger.balance_of(OWNER) == 11
    assert ledger.total_supply == 11


def test_mint_over_cap(ledger):
    ledger.mint(OWNER, OWNER, 10)
    ledger.set_max_emission(OWNER, 11)
    before = ledger.snapshot()
    with pytest.raises(LimitExceeded) as exc:
        ledger.mint(OWNER, OWNER, 2)
    assert exc.value.reason == "emission_limit_reached"
    assert ledger.snapshot() == before


def test_cap_boundary(ledger):
    ledger.set_max_emission(OWNER, 10)
    ledger.mint(OWNER, OWNER, 10)
    assert ledger.balance_of(OWNER) == 10
    with pytest.raises(LimitExceeded):
        ledger.mint(OWNER, OWNER, 1)
    assert ledger.total_supply == 10


def test_mint_uncapped_after_cap_removed(ledger):
    ledger.set_max_emission(OWNER, 5)
    ledger.mint(OWNER, OWNER, 5)
    ledger.set_max_emission(OWNER, 0)
    ledger.mint(OWNER, ADDRESS1, 1000)
    assert ledger.total_supply == 1005


def test_mint_not_owner_not_minter(ledger):
    with pytest.raises(Unauthorized) as exc:
        ledger.mint(ADDRESS1, ADDRESS1, 10)
    assert exc.value.reason == "not_minter_or_owner"
    assert ledger.total_supply == 0


def test_mint_revoked_minter(ledger):
    ledger.set_minter_role(OWNER, ADDRESS2)
    ledger.revoke_minter_role(OWNER, ADDRESS2)
    with pytest.raises(Unauthorized):
        ledger.mint(ADDRESS2, ADDRESS1, 10)


def test_mint_zero_amount(ledger):
    with pytest.raises(InvalidArgument) as exc:
        ledger.mint(OWNER, ADDRESS1, 0)
    assert exc.value.reason == "zero_amount"


def test_unauthorized_checked_before_amount(ledger):
    with pytest.raises(Unauthorized):
        ledger.mint(ADDRESS1, ADDRESS1, 0)


@pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
def test_mint_rejects_bad_amounts(ledger, amount):
    with pytest.raises(InvalidArgument):
        ledger.mint(OWNER, ADDRESS1, amount)
    assert ledger.total_supply == 0


def test_mint_to_zero_address(ledger):
    with pytest.raises(InvalidArgument) as exc:
        ledger.mint(OWNER, ZERO_ADDRESS, 1)
    assert exc.value.reason == "zero_address"


def test_supply_matches_balances_over_sequence(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    ledger.set_max_emission(OWNER, 100)
    for caller, to, amount in [
        (OWNER, ADDRESS1, 30),
        (ADDRESS1, ADDRESS2, 40),
        (ADDRESS1, OWNER, 31),
        (OWNER, ADDRESS2, 30),
        (ADDRESS2, ADDRESS2, 1),
    ]:
        try:
            ledger.mint(caller, to, amount)
        except (LimitExceeded, Unauthorized):
            pass
        assert_consistent(ledger)
    assert ledger.total_supply == 100


# ── ownership

def test_transfer_ownership(ledger):
    ledger.transfer_ownership(OWNER, ADDRESS1)
    assert ledger.owner == ADDRESS1
    with pytest.raises(Unauthorized):
        ledger.set_max_emission(OWNER, 10)
    ledger.set_max_emission(ADDRESS1, 10)
    with pytest.raises(Unauthorized):
        ledger.mint(OWNER, OWNER, 1)


def test_transfer_ownership_to_zero(ledger):
    with pytest.raises(InvalidArgument):
        ledger.transfer_ownership(OWNER, ZERO_ADDRESS)


def test_renounce_ownership(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    ledger.renounce_ownership(OWNER)
    assert ledger.owner == ZERO_ADDRESS
    with pytest.raises(Unauthorized):
        ledger.set_minter_role(OWNER, ADDRESS2)
    with pytest.raises(Unauthorized):
        ledger.set_minter_role(ZERO_ADDRESS, ADDRESS2)
    ledger.mint(ADDRESS1, ADDRESS1, 5)
    assert ledger.total_supply == 5


# ── journal

def test_events_are_hash_chained(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    ledger.mint(ADDRESS1, ADDRESS2, 3)
    events = ledger.events()
    assert [e.sequence for e in events] == [0, 1, 2]
    for prev, cur in zip(events, events[1:]):
        assert cur.prev_hash == event_hash(prev)
    assert ledger.last_hash() == event_hash(events[-1])
    assert events[2].payload == {"from": ZERO_ADDRESS, "to": ADDRESS2, "value": 3}
    assert events[2].caller == ADDRESS1


def test_rejected_call_records_nothing(ledger):
    with pytest.raises(InvalidArgument):
        ledger.mint(OWNER, ADDRESS1, 0)
    assert len(ledger.events()) == 1


def test_listener_failure_rolls_back(ledger):
    def fail(event):
        raise RuntimeError("disk full")

    ledger.subscribe(fail)
    with pytest.raises(RuntimeError):
        ledger.mint(OWNER, ADDRESS1, 5)
    assert ledger.total_supply == 0
    assert ledger.balance_of(ADDRESS1) == 0
    assert len(ledger.events()) == 1


def test_replay_rebuilds_state(ledger):
    ledger.set_minter_role(OWNER, ADDRESS1)
    ledger.set_max_emission(OWNER, 50)
    ledger.mint(ADDRESS1, ADDRESS2, 20)
    ledger.revoke_minter_role(OWNER, ADDRESS1)
    ledger.transfer_ownership(OWNER, ADDRESS2)

    rebuilt = EmissionLedger.replay(ledger.events())
    assert rebuilt.snapshot() == ledger.snapshot()
    assert rebuilt.last_hash() == ledger.last_hash()


def test_replay_requires_genesis(ledger):
    ledger.mint(OWNER, ADDRESS1, 1)
    with pytest.raises(ValueError, match="Deployed"):
        EmissionLedger.replay(ledger.events()[1:])
    with pytest.raises(ValueError):
        EmissionLedger.replay([])


def test_replay_rejects_unauthorized_event(ledger):
    ledger.mint(OWNER, ADDRESS1, 1)
    events = ledger.events()
    forged = events[1].__class__.from_dict({**events[1].to_dict(), "caller": ADDRESS1})
    with pytest.raises(ValueError, match="does not re-apply"):
        EmissionLedger.replay([events[0], forged])


# ── concurrency

def test_concurrent_mints_respect_cap(ledger):
    ledger.set_max_emission(OWNER, 500)
    rejected = []

    def worker():
        for _ in range(100):
            try:
                ledger.mint(OWNER, ADDRESS1, 1)
            except LimitExceeded:
                rejected.append(1)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert ledger.total_supply == 500
    assert ledger.balance_of(ADDRESS1) == 500
    assert len(rejected) == 300
    assert len(ledger.events()) == 1 + 1 + 500


@pytest.mark.parametrize("operation", [
    lambda ledger, caller: ledger.set_minter_role(caller, ZERO_ADDRESS),
    lambda ledger, caller: ledger.revoke_minter_role(caller, ADDRESS2),
    lambda ledger, caller: ledger.set_max_emission(caller, -1),
    lambda ledger, caller: ledger.set_max_emission(caller, 5),
    lambda ledger, caller: ledger.transfer_ownership(caller, ZERO_ADDRESS),
], ids=["grant-zero", "revoke-non-minter", "negative-cap", "cap-below-supply", "owner-zero"])
def test_owner_check_precedes_argument_checks(ledger, operation):
    ledger.mint(OWNER, OWNER, 10)
    before = ledger.snapshot()
    with pytest.raises(Unauthorized) as exc:
        operation(ledger, ADDRESS1)
    assert exc.value.reason == "not_owner"
    assert ledger.snapshot() == before
