"""JSON file storage for disputes, transaction references and settlements."""

import json
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from pydantic import BaseModel

from dispute_resolution.config import settings
from dispute_resolution.errors import ConflictError, NotFoundError
from dispute_resolution.models.dispute import Dispute, DisputeFilters
from dispute_resolution.models.settlement import LedgerEntry, SettlementResult
from dispute_resolution.models.transaction import TransactionReference
from dispute_resolution.models.user import UserProfile

# One lock per data directory, shared by every Storage instance pointing at it
_locks: dict[Path, threading.RLock] = {}
_locks_guard = threading.Lock()


def _lock_for(path: Path) -> threading.RLock:
    key = path.resolve()
    with _locks_guard:
        if key not in _locks:
            _locks[key] = threading.RLock()
        return _locks[key]


class Storage:
    """File-backed store.

    Disputes live in one JSON file each under ``disputes/``; everything else
    is a JSON list per collection. Dispute writes are conditional on the
    version the caller read, so concurrent transitions on the same record
    cannot both win.
    """

    def __init__(self, data_dir: Path | None = None):
        self.data_dir = Path(data_dir) if data_dir else settings.data_dir
        self.disputes_dir = self.data_dir / "disputes"
        self.disputes_dir.mkdir(parents=True, exist_ok=True)
        self._lock = _lock_for(self.data_dir)

    # -- file helpers -------------------------------------------------

    def _read_json(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        with open(path, encoding="utf-8") as f:
            return json.load(f)

    def _write_json(self, path: Path, data: Any):
        tmp_path = path.with_suffix(path.suffix + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        os.replace(tmp_path, path)

    def _write_models(self, path: Path, items: Iterable[BaseModel]):
        self._write_json(path, [item.model_dump(mode="json") for item in items])

    # -- transaction references ---------------------------------------

    def _references_file(self, kind: str) -> Path:
        if kind == "order":
            return self.data_dir / "orders.json"
        if kind == "customization":
            return self.data_dir / "customizations.json"
        raise ValueError(f"Unknown reference kind: {kind}")

    def get_references(self, kind: str) -> list[TransactionReference]:
        """Get all orders or customization requests."""
        raw = self._read_json(self._references_file(kind), [])
        return [TransactionReference.model_validate(item) for item in raw]

    def get_reference(self, kind: str, reference_id: str) -> TransactionReference | None:
        """Get a single order or customization request."""
        for reference in self.get_references(kind):
            if reference.id == reference_id:
                return reference
        return None

    def save_references(self, kind: str, references: list[TransactionReference]):
        with self._lock:
            self._write_models(self._references_file(kind), references)

    # -- users --------------------------------------------------------

    def get_users(self) -> list[UserProfile]:
        raw = self._read_json(self.data_dir / "users.json", [])
        return [UserProfile.model_validate(item) for item in raw]

    def get_user(self, user_id: str) -> UserProfile | None:
        for user in self.get_users():
            if user.id == user_id:
                return user
        return None

    def save_users(self, users: list[UserProfile]):
        with self._lock:
            self._write_models(self.data_dir / "users.json", users)

    # -- disputes -----------------------------------------------------

    def _dispute_path(self, dispute_id: str) -> Path:
        return self.disputes_dir / f"{dispute_id}.json"

    def get_dispute_by_id(self, dispute_id: str) -> Dispute | None:
        """Load a dispute, or None when it does not exist."""
        path = self._dispute_path(dispute_id)
        if not path.exists():
            return None
        return Dispute.model_validate(self._read_json(path, {}))

    def get_disputes(self, filters: DisputeFilters | None = None) -> list[Dispute]:
        """List disputes, most recent first."""
        disputes = [
            Dispute.model_validate(self._read_json(path, {}))
            for path in self.disputes_dir.glob("*.json")
        ]
        if filters is not None:
            disputes = [d for d in disputes if filters.matches(d)]
        disputes.sort(key=lambda d: d.created_at, reverse=True)
        return disputes

    def find_open_dispute(self, reference_kind: str, reference_id: str) -> Dispute | None:
        """Find the open dispute for a transaction, if any."""
        matches = self.get_disputes(
            DisputeFilters(reference_kind=reference_kind, reference_id=reference_id, status="open")
        )
        return matches[0] if matches else None

    def find_expired_negotiations(self, now: datetime) -> list[Dispute]:
        """Open disputes still negotiating past their deadline, oldest deadline first."""
        expired = [
            d
            for d in self.get_disputes(DisputeFilters(stage="negotiation", status="open"))
            if d.negotiation_deadline is not None and d.negotiation_deadline <= now
        ]
        expired.sort(key=lambda d: d.negotiation_deadline)
        return expired

    def find_pending_settlements(self) -> list[Dispute]:
        """Open disputes claimed for resolution whose settlement never completed."""
        pending = [
            d
            for d in self.get_disputes(DisputeFilters(status="open"))
            if d.pending_resolution is not None
        ]
        pending.sort(key=lambda d: d.pending_resolution.requested_at)
        return pending

    def create_dispute(self, dispute: Dispute) -> Dispute:
        """Persist a new dispute.

        Raises:
            ConflictError: If the transaction already has an open dispute
        """
        with self._lock:
            existing = self.find_open_dispute(dispute.reference_kind, dispute.reference_id)
            if existing is not None:
                raise ConflictError(
                    f"An active dispute already exists for this transaction (ID: {existing.id})"
                )
            stored = dispute.model_copy(update={"version": 1})
            self._write_json(self._dispute_path(stored.id), stored.model_dump(mode="json"))
            return stored

    def update_dispute(
        self, dispute: Dispute, expected_version: int, now: datetime | None = None
    ) -> Dispute:
        """Write a dispute only if nobody changed it since it was read.

        ``now`` stamps updated_at; callers with their own clock pass it in.

        Raises:
            NotFoundError: If the dispute does not exist
            ConflictError: If the stored version differs from expected_version
        """
        with self._lock:
            current = self.get_dispute_by_id(dispute.id)
            if current is None:
                raise NotFoundError(f"Dispute {dispute.id} not found")
            if current.version != expected_version:
                raise ConflictError("Dispute state changed, reload and retry")
            stored = Dispute.model_validate(
                {
                    **dispute.model_dump(),
                    "version": expected_version + 1,
                    "updated_at": now or datetime.now(),
                }
            )
            self._write_json(self._dispute_path(stored.id), stored.model_dump(mode="json"))
            return stored

    # -- settlements --------------------------------------------------

    def get_settlement(self, dispute_id: str) -> SettlementResult | None:
        raw = self._read_json(self.data_dir / "settlements.json", [])
        for item in raw:
            if item["dispute_id"] == dispute_id:
                return SettlementResult.model_validate(item)
        return None

    def save_settlement(self, result: SettlementResult):
        """Record a settlement.

        Raises:
            ConflictError: If the dispute already has a settlement record
        """
        with self._lock:
            if self.get_settlement(result.dispute_id) is not None:
                raise ConflictError(f"Dispute {result.dispute_id} is already settled")
            raw = self._read_json(self.data_dir / "settlements.json", [])
            raw.append(result.model_dump(mode="json"))
            self._write_json(self.data_dir / "settlements.json", raw)

    # -- local ledger -------------------------------------------------

    def get_ledger_entries(self) -> list[LedgerEntry]:
        raw = self._read_json(self.data_dir / "ledger.json", [])
        return [LedgerEntry.model_validate(item) for item in raw]

    def find_ledger_entry(self, idempotency_key: str) -> LedgerEntry | None:
        for entry in self.get_ledger_entries():
            if entry.idempotency_key == idempotency_key:
                return entry
        return None

    def append_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        """Append a ledger entry, returning the existing one for a repeated key."""
        with self._lock:
            if entry.idempotency_key:
                existing = self.find_ledger_entry(entry.idempotency_key)
                if existing is not None:
                    return existing
            raw = self._read_json(self.data_dir / "ledger.json", [])
            raw.append(entry.model_dump(mode="json"))
            self._write_json(self.data_dir / "ledger.json", raw)
            return entry
