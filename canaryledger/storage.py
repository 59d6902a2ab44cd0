"""
Storage backends for the canary ledger.

A backend persists exactly what the ledger state owns: the id-indexed
message records, the per-sender counters, the single canary record and the
event chain. The ledger stages each transaction in memory and hands it to
commit(); a backend must apply it all-or-nothing and raise StorageError on
failure, in which case the ledger discards the transaction.
"""

import json
import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Optional, Union

from .errors import StorageError
from .events import EventKind, LedgerEvent
from .models import CanaryStatus, Message

if TYPE_CHECKING:
    from .state import Transaction

logger = logging.getLogger(__name__)


@dataclass
class LedgerSnapshot:
    """Everything a backend returns on load()."""
    messages: Dict[int, Message] = field(default_factory=dict)
    sender_counts: Dict[str, int] = field(default_factory=dict)
    canary: Optional[CanaryStatus] = None
    events: List[LedgerEvent] = field(default_factory=list)


class LedgerBackend(ABC):
    """
    Abstract persistence interface.

    Implementations must be:
    - Atomic (a transaction is applied entirely or not at all)
    - Append-only for messages (ids are never deleted or reused)
    - Ordered (events are stored in commit order)
    """

    @abstractmethod
    def load(self) -> LedgerSnapshot:
        """Load the full persisted state."""
        pass

    @abstractmethod
    def commit(self, tx: "Transaction") -> None:
        """Persist a staged transaction. Raises StorageError on failure."""
        pass

    def stats(self) -> Dict[str, int]:
        """Row counts for health reporting."""
        return {}

    def close(self) -> None:
        pass


class InMemoryBackend(LedgerBackend):
    """
    Non-persistent backend for development and testing.

    WARNING: State is lost when the process exits.
    """

    def load(self) -> LedgerSnapshot:
        return LedgerSnapshot()

    def commit(self, tx: "Transaction") -> None:
        return None


class SqliteBackend(LedgerBackend):
    """
    SQLite-backed ledger storage.

    One SQL transaction per ledger transaction. The ledger state lock already
    serializes writers, so a single shared connection is used.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.RLock()
        if str(self.path) != ":memory:":
            self.path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=NORMAL;")
        self._conn.row_factory = sqlite3.Row
        self.init_schema()

    @contextmanager
    def _transaction(self):
        """
        Context manager for database transactions.
        Commits on success, rolls back on failure.
        """
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def init_schema(self) -> None:
        """Create tables. Safe to call multiple times."""
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS messages (
                message_id INTEGER PRIMARY KEY,
                fingerprint BLOB NOT NULL,
                credential BLOB NOT NULL,
                created_at INTEGER NOT NULL,
                unlock_time INTEGER NOT NULL,
                sender TEXT NOT NULL,
                recipient TEXT NOT NULL,
                quantum_secure INTEGER NOT NULL,
                security_level INTEGER NOT NULL,
                requested_level INTEGER NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_messages_recipient
            ON messages(recipient);""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS sender_counts (
                sender TEXT PRIMARY KEY,
                count INTEGER NOT NULL
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS canary (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                last_checked INTEGER NOT NULL,
                threat_level INTEGER NOT NULL,
                threat_detected INTEGER NOT NULL
            );""")

            conn.execute("""
            CREATE TABLE IF NOT EXISTS event_log (
                seq INTEGER PRIMARY KEY,
                kind TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                payload_json TEXT NOT NULL,
                prev_hash TEXT,
                entry_hash TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_event_log_kind
            ON event_log(kind);""")

    def load(self) -> LedgerSnapshot:
        snapshot = LedgerSnapshot()
        with self._lock:
            conn = self._conn
            for row in conn.execute("SELECT * FROM messages ORDER BY message_id ASC"):
                snapshot.messages[row["message_id"]] = Message(
                    message_id=row["message_id"],
                    fingerprint=bytes(row["fingerprint"]),
                    credential=bytes(row["credential"]),
                    created_at=row["created_at"],
                    unlock_time=row["unlock_time"],
                    sender=row["sender"],
                    recipient=row["recipient"],
                    quantum_secure=bool(row["quantum_secure"]),
                    security_level=row["security_level"],
                    requested_level=row["requested_level"],
                )

            for row in conn.execute("SELECT sender, count FROM sender_counts"):
                snapshot.sender_counts[row["sender"]] = row["count"]

            row = conn.execute(
                "SELECT last_checked, threat_level, threat_detected FROM canary WHERE id = 1"
            ).fetchone()
            if row:
                snapshot.canary = CanaryStatus(
                    last_checked=row["last_checked"],
                    threat_level=row["threat_level"],
                    threat_detected=bool(row["threat_detected"]),
                )

            for row in conn.execute("SELECT * FROM event_log ORDER BY seq ASC"):
                snapshot.events.append(LedgerEvent(
                    seq=row["seq"],
                    kind=EventKind(row["kind"]),
                    timestamp=row["timestamp"],
                    payload=json.loads(row["payload_json"]),
                    prev_hash=row["prev_hash"],
                    entry_hash=row["entry_hash"],
                ))

        logger.info(
            "Loaded ledger state from %s: %d messages, %d events",
            self.path, len(snapshot.messages), len(snapshot.events)
        )
        return snapshot

    def commit(self, tx: "Transaction") -> None:
        try:
            with self._transaction() as conn:
                for msg in tx.messages.values():
                    # Only the escalation columns may change after insert.
                    conn.execute(
                        "INSERT INTO messages(message_id, fingerprint, credential, created_at, "
                        "unlock_time, sender, recipient, quantum_secure, security_level, requested_level) "
                        "VALUES(?,?,?,?,?,?,?,?,?,?) "
                        "ON CONFLICT(message_id) DO UPDATE SET "
                        "quantum_secure=excluded.quantum_secure, "
                        "security_level=MAX(messages.security_level, excluded.security_level)",
                        (msg.message_id, msg.fingerprint, msg.credential, msg.created_at,
                         msg.unlock_time, msg.sender, msg.recipient, int(msg.quantum_secure),
                         msg.security_level, msg.requested_level)
                    )

                for sender, count in tx.sender_counts.items():
                    conn.execute(
                        "INSERT INTO sender_counts(sender, count) VALUES(?,?) "
                        "ON CONFLICT(sender) DO UPDATE SET count=excluded.count",
                        (sender, count)
                    )

                if tx.canary is not None:
                    conn.execute(
                        "INSERT INTO canary(id, last_checked, threat_level, threat_detected) "
                        "VALUES(1,?,?,?) "
                        "ON CONFLICT(id) DO UPDATE SET last_checked=excluded.last_checked, "
                        "threat_level=excluded.threat_level, threat_detected=excluded.threat_detected",
                        (tx.canary.last_checked, tx.canary.threat_level, int(tx.canary.threat_detected))
                    )

                for event in tx.events:
                    conn.execute(
                        "INSERT INTO event_log(seq, kind, timestamp, payload_json, prev_hash, entry_hash) "
                        "VALUES(?,?,?,?,?,?)",
                        (event.seq, event.kind.value, event.timestamp,
                         json.dumps(event.payload, sort_keys=True), event.prev_hash, event.entry_hash)
                    )
        except (sqlite3.Error, OverflowError) as e:
            raise StorageError(f"Failed to commit ledger transaction: {e}") from e

    def stats(self) -> Dict[str, int]:
        """Get table row counts for monitoring."""
        stats = {}
        with self._lock:
            for table in ["messages", "sender_counts", "event_log"]:
                cur = self._conn.execute(f"SELECT COUNT(*) AS cnt FROM {table}")
                stats[f"{table}_count"] = cur.fetchone()["cnt"]
        return stats

    def close(self) -> None:
        with self._lock:
            self._conn.close()
