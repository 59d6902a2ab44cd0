"""
Explicitly owned, lock-serialized ledger state.

LedgerState holds every piece of shared state (messages, sender counters,
canary record, event chain) and is the only place it changes. Mutating
operations run inside transaction():

    with state.transaction() as tx:
        ...validate against state, stage writes on tx...

The lock is held for the whole block, the clock is read once (tx.now), and
staged writes reach the backend and then memory only if the block exits
normally. Raising inside the block discards everything staged, including any
message id the transaction allocated. Subscribers hear about committed
events after the lock is released.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .clock import Clock
from .events import EventKind, EventLog, LedgerEvent, make_event
from .models import CanaryStatus, Message
from .storage import InMemoryBackend, LedgerBackend

logger = logging.getLogger(__name__)


class Transaction:
    """Writes staged by one serialized operation."""

    def __init__(self, now: int, next_message_id: int, event_head: Tuple[int, Optional[str]]):
        self.now = now
        self.messages: Dict[int, Message] = {}
        self.sender_counts: Dict[str, int] = {}
        self.canary: Optional[CanaryStatus] = None
        self.events: List[LedgerEvent] = []
        self._next_message_id = next_message_id
        self._event_seq, self._event_hash = event_head

    def allocate_message_id(self) -> int:
        message_id = self._next_message_id
        self._next_message_id += 1
        return message_id

    def put_message(self, message: Message) -> None:
        self.messages[message.message_id] = message

    def put_sender_count(self, sender: str, count: int) -> None:
        self.sender_counts[sender] = count

    def put_canary(self, status: CanaryStatus) -> None:
        self.canary = status

    def emit(self, kind: EventKind, **payload: Any) -> LedgerEvent:
        """Stage a notification chained after the previously staged one."""
        event = make_event(self._event_seq + 1, kind, self.now, payload, self._event_hash)
        self._event_seq, self._event_hash = event.seq, event.entry_hash
        self.events.append(event)
        return event

    def is_empty(self) -> bool:
        return not (self.messages or self.sender_counts or self.canary or self.events)


class LedgerState:
    """Process-wide ledger state with a single serializing lock."""

    def __init__(
        self,
        clock: Clock,
        backend: Optional[LedgerBackend] = None,
        start_time: Optional[int] = None
    ):
        self.clock = clock
        self.backend = backend or InMemoryBackend()
        self.lock = threading.RLock()

        snapshot = self.backend.load()
        self._messages: Dict[int, Message] = dict(snapshot.messages)
        self._sender_counts: Dict[str, int] = dict(snapshot.sender_counts)
        self.events = EventLog(snapshot.events)

        if snapshot.canary is not None:
            self._canary = snapshot.canary
        else:
            # First start: initialize and persist the canary record.
            self._canary = CanaryStatus.initial(clock.now() if start_time is None else start_time)
            with self.transaction() as tx:
                tx.put_canary(self._canary)

    # ============================================================
    # Transactions
    # ============================================================

    @contextmanager
    def transaction(self) -> Iterator[Transaction]:
        with self.lock:
            tx = Transaction(self.clock.now(), self._next_message_id(), self.events.head())
            yield tx
            if tx.is_empty():
                return
            self.backend.commit(tx)
            self._apply(tx)
        # Outside the lock: subscribers may start transactions of their own.
        self.events.dispatch()

    def _apply(self, tx: Transaction) -> None:
        self._messages.update(tx.messages)
        self._sender_counts.update(tx.sender_counts)
        if tx.canary is not None:
            self._canary = tx.canary
        for event in tx.events:
            self.events.append(event)

    def _next_message_id(self) -> int:
        return max(self._messages, default=0) + 1

    # ============================================================
    # Reads
    # ============================================================

    def get_message(self, message_id: int) -> Optional[Message]:
        with self.lock:
            return self._messages.get(message_id)

    def sender_count(self, sender: str) -> int:
        with self.lock:
            return self._sender_counts.get(sender, 0)

    @property
    def canary(self) -> CanaryStatus:
        with self.lock:
            return self._canary

    def messages(self) -> List[Message]:
        with self.lock:
            return [self._messages[k] for k in sorted(self._messages)]

    def message_count(self) -> int:
        with self.lock:
            return len(self._messages)
