# emission/storage/__init__.py
"""
Storage backends for deployed ledgers and their event journals.
"""

from abc import ABC, abstractmethod
from typing import List, Optional
from pathlib import Path
from emission.core.types import DeploymentRecord, LedgerEvent


class StorageBackend(ABC):
    """Abstract base for all persistent storage implementations."""

    @abstractmethod
    def save_deployment(self, record: DeploymentRecord, genesis: Optional[LedgerEvent] = None) -> None:
        """Store a deployment and, atomically with it, its genesis event."""
        pass

    @abstractmethod
    def load_deployment(self, address: str) -> Optional[DeploymentRecord]:
        pass

    @abstractmethod
    def list_deployments(self) -> List[DeploymentRecord]:
        pass

    @abstractmethod
    def next_nonce(self, deployer: str) -> int:
        pass

    @abstractmethod
    def append_event(self, address: str, event: LedgerEvent) -> None:
        pass

    @abstractmethod
    def load_events(self, address: str, verify_chain: bool = True) -> List[LedgerEvent]:
        pass

    @abstractmethod
    def close(self) -> None:
        pass


def create_storage(uri: str) -> StorageBackend:
    if uri.startswith("sqlite://"):
        from .sqlite import SQLiteStorage
        raw_path = uri[len("sqlite://"):]
        if not raw_path:
            raise ValueError(f"Missing database path in storage URI: {uri}")
        return SQLiteStorage(Path(raw_path).resolve())
    else:
        raise ValueError(f"Unsupported storage URI: {uri}")


from .sqlite import SQLiteStorage

__all__ = ["StorageBackend", "create_storage", "SQLiteStorage"]
