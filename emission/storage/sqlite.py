# emission/storage/sqlite.py
import os
import sqlite3
import json
from contextlib import contextmanager
from pathlib import Path
from typing import List, Optional

from emission.core.types import DeploymentRecord, LedgerEvent
from emission.core.canon import canonical_json_str
from emission.core.hashing import event_hash
from . import StorageBackend


class SQLiteStorage(StorageBackend):
    """SQLite persistent storage for deployments and their event journals."""

    def __init__(self, db_path: str | Path | None = None):
        if db_path is None:
            env_path = os.environ.get("EMISSION_DB_PATH")
            db_path = env_path if env_path else Path.cwd() / "emission.db"

        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.db_path = self.db_path.resolve()

        self._conn: Optional[sqlite3.Connection] = None
        self._connect()

    def _connect(self):
        self._conn = sqlite3.connect(str(self.db_path), isolation_level=None)
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_schema()

    def _create_schema(self):
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS deployments (
                address     TEXT    PRIMARY KEY,
                name        TEXT    NOT NULL,
                symbol      TEXT    NOT NULL,
                deployer    TEXT    NOT NULL,
                nonce       INTEGER NOT NULL,
                created_at  TEXT    NOT NULL
            )
        """)
        self.conn.execute("""
            CREATE TABLE IF NOT EXISTS events (
                address         TEXT    NOT NULL,
                sequence        INTEGER NOT NULL,
                prev_hash       TEXT    NOT NULL,
                event_hash      TEXT    NOT NULL,
                kind            TEXT    NOT NULL,
                caller          TEXT    NOT NULL,
                timestamp       TEXT    NOT NULL,
                canonical_json  TEXT    NOT NULL,
                PRIMARY KEY (address, sequence)
            )
        """)
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_events_kind   ON events(address, kind)")
        self.conn.execute("CREATE INDEX IF NOT EXISTS idx_events_caller ON events(caller)")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Storage connection is closed")
        return self._conn

    @contextmanager
    def transaction(self):
        """Group writes; everything inside is rolled back if any statement fails."""
        self.conn.execute("BEGIN IMMEDIATE")
        try:
            yield self.conn
        except BaseException:
            self.conn.execute("ROLLBACK")
            raise
        self.conn.execute("COMMIT")

    def save_deployment(self, record: DeploymentRecord, genesis: Optional[LedgerEvent] = None) -> None:
        with self.transaction():
            self.conn.execute("""
                INSERT INTO deployments (address, name, symbol, deployer, nonce, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
            """, (record.address, record.name, record.symbol, record.deployer, record.nonce, record.created_at))
            if genesis is not None:
                self.append_event(record.address, genesis)

    def next_nonce(self, deployer: str) -> int:
        """One past the highest nonce the deployer has used, 0 if none."""
        row = self.conn.execute(
            "SELECT MAX(nonce) FROM deployments WHERE deployer = ?",
            (deployer.lower(),)
        ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def load_deployment(self, address: str) -> Optional[DeploymentRecord]:
        row = self.conn.execute("""
            SELECT address, name, symbol, deployer, nonce, created_at
            FROM deployments WHERE address = ?
        """, (address.lower(),)).fetchone()
        if row is None:
            return None
        return DeploymentRecord(*row)

    def list_deployments(self) -> List[DeploymentRecord]:
        """All deployments, most recent first."""
        cursor = self.conn.execute("""
            SELECT address, name, symbol, deployer, nonce, created_at
            FROM deployments ORDER BY created_at DESC, address ASC
        """)
        return [DeploymentRecord(*row) for row in cursor.fetchall()]

    def append_event(self, address: str, event: LedgerEvent) -> None:
        # Plain INSERT: a duplicate sequence must fail loudly so the ledger rejects the change.
        self.conn.execute("""
            INSERT INTO events
            (address, sequence, prev_hash, event_hash, kind, caller, timestamp, canonical_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            address.lower(), event.sequence, event.prev_hash, event_hash(event),
            event.kind, event.caller, event.timestamp, canonical_json_str(event.to_dict())
        ))

    def load_events(self, address: str, verify_chain: bool = True) -> List[LedgerEvent]:
        cursor = self.conn.execute("""
            SELECT sequence, event_hash, canonical_json
            FROM events WHERE address = ? ORDER BY sequence ASC
        """, (address.lower(),))

        loaded = []
        stored_hashes = []
        for seq, stored_hash, cjson in cursor:
            loaded.append(LedgerEvent.from_dict(json.loads(cjson)))
            stored_hashes.append(stored_hash)

        if verify_chain:
            for i, event in enumerate(loaded):
                if event_hash(event) != stored_hashes[i]:
                    raise ValueError(f"Hash mismatch at sequence {event.sequence}")
                if i > 0 and event.prev_hash != stored_hashes[i - 1]:
                    raise ValueError(f"Chain broken at sequence {event.sequence}")
        return loaded

    def query_events(self, address: str, limit: int = 50) -> List[LedgerEvent]:
        """Most recent ``limit`` events, returned oldest first."""
        cursor = self.conn.execute("""
            SELECT canonical_json FROM events
            WHERE address = ?
            ORDER BY sequence DESC
            LIMIT ?
        """, (address.lower(), limit))

        loaded = [LedgerEvent.from_dict(json.loads(row[0])) for row in cursor]
        loaded.reverse()
        return loaded

    def get_event_count(self, address: str) -> int:
        cursor = self.conn.execute(
            "SELECT COUNT(*) FROM events WHERE address = ?",
            (address.lower(),)
        )
        return cursor.fetchone()[0]

    def close(self) -> None:
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
