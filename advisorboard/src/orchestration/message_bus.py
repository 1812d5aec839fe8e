"""
Message Bus - Event records and the append-only mission log.

Every event in a mission cascade is a Message. The orchestrator appends each
dispatched message to the MessageLog before committing its payload, so the
log order is the dispatch order (a pre-order walk of the reaction tree).

Features:
- Immutable messages with a closed, type-checked payload
- Reserved sender/recipient sentinels ("system", "broadcast")
- Mission generation id on every message for stale-result detection
- Filterable history for the presentation layer
"""

import logging
import time
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Iterator, Optional

from .blackboard import BlackboardField, check_field_value, serialize_value

logger = logging.getLogger(__name__)

# Reserved identities
SYSTEM_SENDER = "system"
BROADCAST = "broadcast"


class MessageKind(Enum):
    """Kinds of events a mission cascade can carry."""
    MISSION_START = "mission_start"
    DATA_AVAILABLE = "data_available"
    MISSION_COMPLETE = "mission_complete"
    AGENT_FAILURE = "agent_failure"


@dataclass(frozen=True)
class Payload:
    """
    Closed tagged union of the values a message can commit.

    Exactly the blackboard fields, each optional. At least one must be set,
    and every set attribute must match the declared type of its field.
    """
    mission_inputs: Any = None
    risk_result: Any = None
    market_context: Any = None
    portfolios: Any = None
    simulation: Any = None
    report: Any = None

    def __post_init__(self):
        present = 0
        for item in fields(self):
            value = getattr(self, item.name)
            if value is None:
                continue
            present += 1
            check_field_value(BlackboardField(item.name), value)
        if present == 0:
            raise ValueError("Payload must carry at least one field")

    @classmethod
    def of(cls, blackboard_field: BlackboardField, value: Any) -> 'Payload':
        """Build a single-field payload."""
        return cls(**{blackboard_field.value: value})

    def items(self) -> Iterator[tuple[BlackboardField, Any]]:
        """Yield (field, value) for every field present."""
        for item in fields(self):
            value = getattr(self, item.name)
            if value is not None:
                yield BlackboardField(item.name), value

    def to_dict(self) -> dict:
        """Serialize present fields to plain data."""
        return {f.value: serialize_value(v) for f, v in self.items()}


@dataclass(frozen=True)
class Message:
    """
    One event on the mission bus.

    All messages include:
    - Unique identifier
    - created_at, a monotonic clock reading in nanoseconds used for ordering,
      and a UTC timestamp for display
    - Sender and recipient identities
    - Kind and a non-empty summary for the audit log
    - Optional payload committed to the blackboard on dispatch
    - Mission generation id
    """
    kind: MessageKind
    sender: str
    summary: str
    recipient: str = BROADCAST
    payload: Optional[Payload] = None
    mission_id: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    created_at: int = field(default_factory=time.monotonic_ns)

    def __post_init__(self):
        if not self.summary or not self.summary.strip():
            raise ValueError("Message summary must not be empty")

    @property
    def is_broadcast(self) -> bool:
        return self.recipient == BROADCAST

    def to_dict(self) -> dict:
        """Serialize message to dictionary."""
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "created_at": self.created_at,
            "kind": self.kind.value,
            "sender": self.sender,
            "recipient": self.recipient,
            "summary": self.summary,
            "payload": self.payload.to_dict() if self.payload else None,
            "mission_id": self.mission_id,
        }


class MessageLog:
    """
    Append-only, ordered record of every dispatched message.

    The orchestrator is the only writer. Readers get copies, so the log is
    safe to read at any time during a cascade.
    """

    def __init__(self):
        self._messages: list[Message] = []
        self._total_appended = 0

    def append(self, message: Message) -> int:
        """
        Append a message.

        Returns:
            Position of the message in the log
        """
        self._messages.append(message)
        self._total_appended += 1
        logger.debug(
            f"Logged message {message.id[:8]} [{message.kind.value}] "
            f"from {message.sender}: {message.summary}"
        )
        return len(self._messages) - 1

    def clear(self) -> int:
        """Drop all entries. Returns number of messages cleared."""
        count = len(self._messages)
        self._messages = []
        return count

    def entries(self) -> list[Message]:
        """Ordered copy of the log."""
        return list(self._messages)

    def get_history(
        self,
        kind: Optional[MessageKind] = None,
        sender: Optional[str] = None,
        limit: int = 100,
    ) -> list[Message]:
        """
        Get log entries with filtering.

        Args:
            kind: Optional kind filter
            sender: Optional sender filter
            limit: Maximum messages to return

        Returns:
            Matching messages in log order (oldest first)
        """
        results = [
            msg for msg in self._messages
            if (kind is None or msg.kind == kind)
            and (sender is None or msg.sender == sender)
        ]
        return results[-limit:] if limit > 0 else []

    def last(self) -> Optional[Message]:
        return self._messages[-1] if self._messages else None

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(list(self._messages))

    def get_stats(self) -> dict:
        """Get log statistics."""
        by_kind: dict[str, int] = {}
        for msg in self._messages:
            by_kind[msg.kind.value] = by_kind.get(msg.kind.value, 0) + 1
        return {
            "size": len(self._messages),
            "total_appended": self._total_appended,
            "by_kind": by_kind,
        }


# Convenience function for creating messages
def create_message(
    kind: MessageKind,
    sender: str,
    summary: str,
    payload: Optional[Payload] = None,
    recipient: str = BROADCAST,
    mission_id: Optional[str] = None,
) -> Message:
    """Create a new message with default values."""
    return Message(
        kind=kind,
        sender=sender,
        summary=summary,
        recipient=recipient,
        payload=payload,
        mission_id=mission_id,
    )
