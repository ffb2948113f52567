# emission/deploy/deployer.py
import hashlib
import logging
from dataclasses import dataclass
from typing import Optional

from emission.core.address import address_from_bytes, normalize_address
from emission.core.canon import canonical_json
from emission.core.types import DeploymentRecord
from emission.storage import StorageBackend
from emission.token.ledger import EmissionLedger

logger = logging.getLogger(__name__)


def derive_address(deployer: str, nonce: int) -> str:
    """Deterministic contract address for (deployer, nonce)."""
    digest = hashlib.sha256(canonical_json({"deployer": normalize_address(deployer), "nonce": nonce})).digest()
    return address_from_bytes(digest)


@dataclass
class Deployment:
    """A ledger together with the address it was deployed at."""
    address: str
    ledger: EmissionLedger
    record: DeploymentRecord
    storage: Optional[StorageBackend] = None

    def __post_init__(self):
        if self.storage is not None:
            self.ledger.subscribe(self._persist)

    def _persist(self, event) -> None:
        self.storage.append_event(self.address, event)


def deploy(
    name: str,
    symbol: str,
    deployer: str,
    storage: Optional[StorageBackend] = None,
    nonce: Optional[int] = None,
) -> Deployment:
    """
    Create a new ledger owned by ``deployer``.

    With a storage backend the deployment record and genesis event are
    written immediately, and every later change is persisted before it is
    applied. The nonce defaults to one past the deployer's highest used nonce.
    """
    deployer = normalize_address(deployer)
    logger.info("Deploying contracts with the account: %s", deployer)

    if nonce is None:
        nonce = 0
        if storage is not None:
            nonce = storage.next_nonce(deployer)

    address = derive_address(deployer, nonce)
    if storage is not None and storage.load_deployment(address) is not None:
        raise ValueError(f"Address {address} already deployed (nonce {nonce})")

    ledger = EmissionLedger(name, symbol, owner=deployer)
    genesis = ledger.events()[0]
    record = DeploymentRecord(
        address=address,
        name=name,
        symbol=symbol,
        deployer=deployer,
        nonce=nonce,
        created_at=genesis.timestamp,
    )

    if storage is not None:
        storage.save_deployment(record, genesis=genesis)

    logger.info("%s contract address: %s", name, address)
    return Deployment(address=address, ledger=ledger, record=record, storage=storage)


def load_deployment(address: str, storage: StorageBackend) -> Deployment:
    """Rebuild a persisted deployment by replaying its journal."""
    address = normalize_address(address)
    record = storage.load_deployment(address)
    if record is None:
        raise ValueError(f"No deployment found at {address}")

    events = storage.load_events(address)
    ledger = EmissionLedger.replay(events)
    logger.debug("Loaded %s at %s from %d events", record.symbol, address, len(events))
    return Deployment(address=address, ledger=ledger, record=record, storage=storage)
