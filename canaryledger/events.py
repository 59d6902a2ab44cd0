"""
Tamper-evident notification log.

Every committed ledger or canary transaction appends its notifications here,
in commit order. Entries form a hash chain:

    payload_hash = SHA-256(CJE({seq, kind, timestamp, payload}))
    entry_hash   = SHA-256(prev_entry_hash || payload_hash)

so rewriting or dropping any past entry breaks every later link. The chain
can be re-verified offline from an export with verify_chain().
"""

import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Tuple

from .hashing import canonicalize, chain_entry_hash, sha256_hex

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    MESSAGE_STORED = "MESSAGE_STORED"
    MESSAGE_AUTHENTICATED = "MESSAGE_AUTHENTICATED"
    THREAT_DETECTED = "THREAT_DETECTED"
    SECURITY_LEVEL_UPGRADED = "SECURITY_LEVEL_UPGRADED"


@dataclass(frozen=True)
class LedgerEvent:
    """One committed notification with its chain links."""
    seq: int
    kind: EventKind
    timestamp: int
    payload: Dict[str, Any] = field(default_factory=dict)
    prev_hash: Optional[str] = None
    entry_hash: str = ""

    @property
    def payload_hash(self) -> str:
        return event_payload_hash(self.seq, self.kind, self.timestamp, self.payload)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind.value,
            "timestamp": self.timestamp,
            "payload": dict(self.payload),
            "prev_hash": self.prev_hash,
            "entry_hash": self.entry_hash,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LedgerEvent":
        return cls(
            seq=int(data["seq"]),
            kind=EventKind(data["kind"]),
            timestamp=int(data["timestamp"]),
            payload=dict(data.get("payload") or {}),
            prev_hash=data.get("prev_hash"),
            entry_hash=data.get("entry_hash", ""),
        )


def event_payload_hash(seq: int, kind: EventKind, timestamp: int, payload: Dict[str, Any]) -> str:
    return sha256_hex(canonicalize({
        "seq": seq,
        "kind": EventKind(kind).value,
        "timestamp": timestamp,
        "payload": payload,
    }))


def make_event(
    seq: int,
    kind: EventKind,
    timestamp: int,
    payload: Dict[str, Any],
    prev_hash: Optional[str]
) -> LedgerEvent:
    """Build a chained event following an entry whose hash is prev_hash."""
    entry_hash = chain_entry_hash(prev_hash, event_payload_hash(seq, kind, timestamp, payload))
    return LedgerEvent(
        seq=seq,
        kind=EventKind(kind),
        timestamp=timestamp,
        payload=dict(payload),
        prev_hash=prev_hash,
        entry_hash=entry_hash,
    )


@dataclass
class ChainVerification:
    """Result of verifying an event chain."""
    valid: bool
    checked: int
    broken_at: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "checked": self.checked,
            "broken_at": self.broken_at,
            "reason": self.reason,
        }


def verify_chain(entries: Iterable[Dict[str, Any]]) -> ChainVerification:
    """
    Verify an exported event chain.

    Checks, per entry: sequence continuity, prev_hash linkage, and that the
    declared entry_hash matches the recomputed one.
    """
    prev_hash: Optional[str] = None
    checked = 0
    for expected_seq, raw in enumerate(entries, start=1):
        try:
            event = LedgerEvent.from_dict(raw)
        except (KeyError, ValueError, TypeError) as e:
            return ChainVerification(False, checked, expected_seq, f"Malformed entry: {e}")

        if event.seq != expected_seq:
            return ChainVerification(False, checked, expected_seq,
                                     f"Sequence gap: expected {expected_seq}, got {event.seq}")
        if event.prev_hash != prev_hash:
            return ChainVerification(False, checked, event.seq, "prev_hash does not link to previous entry")

        recomputed = chain_entry_hash(prev_hash, event.payload_hash)
        if recomputed != event.entry_hash:
            return ChainVerification(False, checked, event.seq, "entry_hash mismatch")

        prev_hash = event.entry_hash
        checked += 1

    return ChainVerification(True, checked)


Subscriber = Callable[[LedgerEvent], None]


class EventLog:
    """
    In-memory append-only event chain with subscriber dispatch.

    Appends must extend the current head exactly; the ledger state stages
    events against head() inside a transaction and appends them only after
    the storage backend commits. Appending never calls subscribers; they
    run from dispatch(), which the ledger state calls once a transaction is
    fully applied. A subscriber may itself run ledger operations: events
    those commit are queued behind the ones still being delivered.
    """

    def __init__(self, entries: Optional[Iterable[LedgerEvent]] = None):
        self._entries: List[LedgerEvent] = []
        self._subscribers: List[Subscriber] = []
        self._pending: Deque[LedgerEvent] = deque()
        self._dispatching = False
        self._lock = threading.RLock()
        for event in entries or ():
            self._link(event)

    def head(self) -> Tuple[int, Optional[str]]:
        """Return (last_seq, last_entry_hash); (0, None) when empty."""
        with self._lock:
            if not self._entries:
                return 0, None
            last = self._entries[-1]
            return last.seq, last.entry_hash

    def _link(self, event: LedgerEvent) -> None:
        last_seq, last_hash = self.head()
        if event.seq != last_seq + 1 or event.prev_hash != last_hash:
            raise ValueError(f"Event {event.seq} does not extend chain head {last_seq}")
        self._entries.append(event)

    def append(self, event: LedgerEvent) -> None:
        """Append a committed event; subscribers see it on the next dispatch()."""
        with self._lock:
            self._link(event)
            self._pending.append(event)

    def dispatch(self) -> None:
        """Deliver queued events to subscribers in chain order."""
        with self._lock:
            if self._dispatching:
                return
            self._dispatching = True
        try:
            while True:
                with self._lock:
                    if not self._pending:
                        self._dispatching = False
                        return
                    event = self._pending.popleft()
                    subscribers = list(self._subscribers)
                for callback in subscribers:
                    try:
                        callback(event)
                    except Exception:
                        # A subscriber failure must not un-commit the transaction.
                        logger.exception("Event subscriber failed for event %s", event.seq)
        except BaseException:
            with self._lock:
                self._dispatching = False
            raise

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register a callback for committed events; returns an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    def query(
        self,
        kind: Optional[EventKind] = None,
        message_id: Optional[int] = None,
        since_seq: int = 0
    ) -> List[LedgerEvent]:
        with self._lock:
            events = self._entries[since_seq:] if since_seq > 0 else self._entries[:]
        if kind:
            events = [e for e in events if e.kind == kind]
        if message_id is not None:
            events = [e for e in events if e.payload.get("message_id") == message_id]
        return events

    def export(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [e.to_dict() for e in self._entries]

    def verify(self) -> ChainVerification:
        return verify_chain(self.export())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
