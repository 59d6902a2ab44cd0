"""Read-only accessors over ledger and canary state."""

from typing import Any, Dict, List, Optional

from .errors import NotFound
from .events import ChainVerification, EventKind, LedgerEvent
from .models import CanaryStatus, Message, MessageState
from .state import LedgerState


class QueryService:
    """No method here takes a transaction or mutates state."""

    def __init__(self, state: LedgerState):
        self._state = state

    def get_message(self, message_id: int) -> Message:
        message = self._state.get_message(message_id)
        if message is None:
            raise NotFound(f"Message {message_id} not found", message_id=message_id)
        return message

    def get_canary_status(self) -> CanaryStatus:
        return self._state.canary

    def get_sender_count(self, identity: str) -> int:
        return self._state.sender_count(identity)

    def message_state(self, message_id: int, now: Optional[int] = None) -> MessageState:
        """
        Derive the lifecycle state of a message.

        AUTHENTICATED once any successful authentication is on the event
        log, else LOCKED or UNLOCKABLE depending on the clock.
        """
        message = self.get_message(message_id)
        if self._state.events.query(EventKind.MESSAGE_AUTHENTICATED, message_id=message_id):
            return MessageState.AUTHENTICATED
        now = self._state.clock.now() if now is None else now
        return MessageState.UNLOCKABLE if message.is_unlocked(now) else MessageState.LOCKED

    def messages_for_recipient(self, recipient: str) -> List[Message]:
        return [m for m in self._state.messages() if m.recipient == recipient]

    def events(
        self,
        kind: Optional[EventKind] = None,
        message_id: Optional[int] = None,
        since_seq: int = 0
    ) -> List[LedgerEvent]:
        return self._state.events.query(kind, message_id, since_seq)

    def export_events(self) -> List[Dict[str, Any]]:
        return self._state.events.export()

    def verify_event_chain(self) -> ChainVerification:
        return self._state.events.verify()

    def stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "message_count": self._state.message_count(),
            "event_count": len(self._state.events),
            "threat_detected": self._state.canary.threat_detected,
        }
        stats.update(self._state.backend.stats())
        return stats
