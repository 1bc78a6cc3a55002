"""Interfaces of the services the dispute core depends on, with local defaults."""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol
from uuid import uuid4

from dispute_resolution.data.storage import Storage
from dispute_resolution.models.settlement import LedgerEntry
from dispute_resolution.utils.logging import AuditLogger, get_logger

logger = get_logger("collaborators")


class ConversationGateway(Protocol):
    def create_conversation(self, participant_a: str, participant_b: str) -> str: ...

    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        attachments: list[dict] | None = None,
    ) -> None: ...


class SettlementLedger(Protocol):
    def refund(self, reference_id: str, amount: Decimal, idempotency_key: str | None = None) -> str: ...

    def release(self, reference_id: str, amount: Decimal, idempotency_key: str | None = None) -> str: ...


class Notifier(Protocol):
    def notify(self, user_id: str, event: str, payload: dict[str, Any]) -> None: ...


@dataclass
class ConversationMessage:
    cursor: int
    sender_id: str
    content: str
    attachments: list[dict] = field(default_factory=list)
    sent_at: datetime = field(default_factory=datetime.now)


class ConversationLog:
    """Append-only message log per conversation.

    Clients poll with ``fetch_since(cursor)``; a push layer can wrap the same
    log without the dispute core knowing about it.
    """

    def __init__(self):
        self._participants: dict[str, tuple[str, str]] = {}
        self._messages: dict[str, list[ConversationMessage]] = {}
        self._lock = threading.Lock()

    def create_conversation(self, participant_a: str, participant_b: str) -> str:
        conversation_id = f"conv_{uuid4().hex[:12]}"
        with self._lock:
            self._participants[conversation_id] = (participant_a, participant_b)
            self._messages[conversation_id] = []
        return conversation_id

    def participants(self, conversation_id: str) -> tuple[str, str]:
        return self._participants[conversation_id]

    def append(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        attachments: list[dict] | None = None,
    ) -> int:
        """Append a message and return its cursor."""
        with self._lock:
            if conversation_id not in self._messages:
                raise KeyError(f"Unknown conversation: {conversation_id}")
            log = self._messages[conversation_id]
            message = ConversationMessage(
                cursor=len(log) + 1,
                sender_id=sender_id,
                content=content,
                attachments=attachments or [],
            )
            log.append(message)
            return message.cursor

    def send_message(
        self,
        conversation_id: str,
        sender_id: str,
        content: str,
        attachments: list[dict] | None = None,
    ) -> None:
        self.append(conversation_id, sender_id, content, attachments)

    def fetch_since(self, conversation_id: str, cursor: int = 0) -> list[ConversationMessage]:
        """Messages after the given cursor, oldest first."""
        with self._lock:
            return [m for m in self._messages.get(conversation_id, []) if m.cursor > cursor]


class LocalLedger:
    """Ledger that records refund and release instructions in the data directory."""

    def __init__(self, storage: Storage):
        self.storage = storage

    def _record(self, kind: str, reference_id: str, amount: Decimal, idempotency_key: str | None) -> str:
        entry = self.storage.append_ledger_entry(
            LedgerEntry(
                kind=kind,
                reference_id=reference_id,
                amount=amount,
                idempotency_key=idempotency_key,
            )
        )
        logger.info(f"Ledger {kind} of {amount} on {reference_id}: {entry.ref}")
        return entry.ref

    def refund(self, reference_id: str, amount: Decimal, idempotency_key: str | None = None) -> str:
        return self._record("refund", reference_id, amount, idempotency_key)

    def release(self, reference_id: str, amount: Decimal, idempotency_key: str | None = None) -> str:
        return self._record("release", reference_id, amount, idempotency_key)


class AuditNotifier:
    """Notifier that only records events; delivery belongs to the notification service."""

    def __init__(self, audit_logger: AuditLogger):
        self.audit_logger = audit_logger

    def notify(self, user_id: str, event: str, payload: dict[str, Any]) -> None:
        self.audit_logger.for_user(user_id).log_transition(
            dispute_id=str(payload.get("dispute_id")),
            action=f"notify:{event}",
            from_stage=str(payload.get("from_stage", "-")),
            to_stage=str(payload.get("stage", "-")),
            metadata=payload,
        )
