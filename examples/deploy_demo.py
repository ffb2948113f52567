# examples/deploy_demo.py
# Run with: python examples/deploy_demo.py
#
# Deploys "LET coin" in memory, walks through the minter / cap rules,
# then audits the resulting journal and shows tamper detection.

import logging
from dataclasses import replace

from emission.core.errors import LedgerError
from emission.deploy.deployer import deploy
from emission.verify.auditor import JournalAuditor

OWNER = "0x" + "11" * 20
MINTER = "0x" + "22" * 20
HOLDER = "0x" + "33" * 20


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(message)s")

    deployment = deploy("LET coin", "LET", OWNER)
    ledger = deployment.ledger

    print("\n[Issuance]")
    ledger.set_minter_role(OWNER, MINTER)
    ledger.set_max_emission(OWNER, 100)
    ledger.mint(MINTER, HOLDER, 60)
    ledger.mint(OWNER, OWNER, 40)
    print(f"  total supply {ledger.total_supply} / cap {ledger.max_emission}")

    for label, call in [
        ("mint past cap", lambda: ledger.mint(OWNER, OWNER, 1)),
        ("lower cap below supply", lambda: ledger.set_max_emission(OWNER, 50)),
        ("stranger mints", lambda: ledger.mint(HOLDER, HOLDER, 1)),
    ]:
        try:
            call()
        except LedgerError as e:
            print(f"  {label:24} -> rejected: {e.reason}")

    print("\n[Journal]")
    events = ledger.events()
    for evt in events:
        hash_preview = evt.prev_hash[:12] + "..." if evt.prev_hash else "(genesis)"
        print(f"  [{evt.sequence}] {evt.kind:20} | {hash_preview} | {evt.payload}")

    print("\n[Audit]")
    auditor = JournalAuditor()
    print(f"  Valid: {auditor.audit(events).is_valid}")

    print("\n[Tamper detection]")
    tampered = events.copy()
    tampered[3] = replace(tampered[3], payload={**tampered[3].payload, "value": 6000})
    print(f"  Tampering detected: {not auditor.audit(tampered).is_valid}")
