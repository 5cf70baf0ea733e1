"""
AuditorService -- tamper-evident audit trail.

Responsibility:
    Appends an AuditLogEntry (before/after snapshots) for every state change
    made by the document and reconciliation services, and verifies the
    per-org hash chain.

Architecture position:
    Kernel > Services.  Called by DocumentService and ReconciliationService
    inside their transaction.

Invariants enforced:
    - Same transaction: ``record`` only flushes.  If the audit insert fails,
      the mutation it documents rolls back with it.
    - Sequence monotonicity per org via SequenceService.
    - Chain integrity: ``hash = H(org, seq, entity, action, payload_hash,
      prev_hash)``.
    - Append-only: AuditLogEntry is protected by ORM listeners.

Failure modes:
    - AuditChainBrokenError from verify_chain when a stored hash or link
      does not recompute.
"""

import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import AuditChainBrokenError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.audit_log import AuditAction, AuditLogEntry
from ledger_kernel.services.sequence_service import SequenceService
from ledger_kernel.utils.hashing import canonicalize_json, hash_audit_entry, hash_payload

logger = get_logger("services.auditor")


@dataclass(frozen=True)
class AuditTraceEntry:
    seq: int
    action: AuditAction
    occurred_at: datetime
    actor_id: UUID
    before: dict[str, Any] | None
    after: dict[str, Any] | None
    hash: str


def _snapshot(data: dict[str, Any] | None) -> dict[str, Any] | None:
    # Normalize Decimal/UUID/date to their JSON form so the stored payload
    # rehashes identically when the chain is verified
    if data is None:
        return None
    return json.loads(canonicalize_json(data))


def _payload_hash(before: dict[str, Any] | None, after: dict[str, Any] | None) -> str:
    return hash_payload({"before": before, "after": after})


class AuditorService:
    """Audit trail writer.  Never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self, org_id: UUID) -> str | None:
        last = self._session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.org_id == org_id)
            .order_by(AuditLogEntry.seq.desc())
            .limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    def record(
        self,
        org_id: UUID,
        actor_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: AuditAction,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """
        Append an audit entry in the caller's transaction.

        The sequence allocation locks the org's audit counter, which also
        serializes readers of the previous hash.
        """
        action = AuditAction(action)
        seq = self._sequence_service.next_value(SequenceService.audit_sequence(org_id))
        prev_hash = self._get_last_hash(org_id)

        before_snapshot = _snapshot(before)
        after_snapshot = _snapshot(after)
        payload_hash = _payload_hash(before_snapshot, after_snapshot)

        entry = AuditLogEntry(
            org_id=org_id,
            seq=seq,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            before=before_snapshot,
            after=after_snapshot,
            occurred_at=self._clock.now(),
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=hash_audit_entry(
                org_id=str(org_id),
                seq=seq,
                entity_type=entity_type,
                entity_id=str(entity_id),
                action=action.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            ),
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "audit_entry_created",
            extra={
                "entity_type": entity_type,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return entry

    def verify_chain(self, org_id: UUID) -> bool:
        """
        Recompute every entry of the org's chain.

        Raises:
            AuditChainBrokenError: At the first entry whose payload hash,
                entry hash or previous-hash link does not match.
        """
        entries = self._session.execute(
            select(AuditLogEntry)
            .where(AuditLogEntry.org_id == org_id)
            .order_by(AuditLogEntry.seq)
        ).scalars().all()

        prev_hash: str | None = None
        for entry in entries:
            if entry.prev_hash != prev_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"org_id": str(org_id), "seq": entry.seq, "alert": True},
                )
                raise AuditChainBrokenError(org_id, entry.seq, prev_hash or "GENESIS", entry.prev_hash or "GENESIS")

            payload_hash = _payload_hash(entry.before, entry.after)
            expected = hash_audit_entry(
                org_id=str(org_id),
                seq=entry.seq,
                entity_type=entry.entity_type,
                entity_id=str(entry.entity_id),
                action=AuditAction(entry.action).value,
                payload_hash=payload_hash,
                prev_hash=entry.prev_hash,
            )
            if payload_hash != entry.payload_hash or expected != entry.hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"org_id": str(org_id), "seq": entry.seq, "alert": True},
                )
                raise AuditChainBrokenError(org_id, entry.seq, expected, entry.hash)
            prev_hash = entry.hash

        logger.info(
            "audit_chain_valid",
            extra={"org_id": str(org_id), "entry_count": len(entries)},
        )
        return True

    def get_trace(self, entity_type: str, entity_id: UUID) -> tuple[AuditTraceEntry, ...]:
        """All entries for one entity, oldest first."""
        entries = self._session.execute(
            select(AuditLogEntry)
            .where(
                AuditLogEntry.entity_type == entity_type,
                AuditLogEntry.entity_id == entity_id,
            )
            .order_by(AuditLogEntry.seq)
        ).scalars().all()
        return tuple(
            AuditTraceEntry(
                seq=e.seq,
                action=AuditAction(e.action),
                occurred_at=e.occurred_at,
                actor_id=e.actor_id,
                before=e.before,
                after=e.after,
                hash=e.hash,
            )
            for e in entries
        )
