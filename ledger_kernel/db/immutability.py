"""
ORM-level immutability enforcement.

SQLAlchemy fires ``before_update`` / ``before_delete`` before SQL reaches
the database.  The listeners registered here refuse changes to finalized
financial records and raise ImmutabilityViolationError, which aborts the
flush and, with it, the caller's transaction.

Entity          | Rule
----------------|---------------------------------------------------------
LedgerLine      | never updated, never deleted
LedgerBatch     | never deleted; only POSTED -> REVERSED + reversed_by_id
AuditLogEntry   | never updated, never deleted
Idempotency     | never updated
Document        | non-DRAFT: only status POSTED -> VOID/BOUNCED, voided_at,
                | amount_paid; never deleted once posted
DocumentLine    | frozen once its document leaves DRAFT

TrackedBase audit metadata (updated_at, updated_by_id) and the optimistic
``version`` counter may always change.

Usage:
    from ledger_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from ledger_kernel.domain.dtos import BatchStatus, DocumentStatus
from ledger_kernel.exceptions import ImmutabilityViolationError
from ledger_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_AUDIT_METADATA = frozenset({"updated_at", "updated_by_id", "version"})

_DOCUMENT_LIFECYCLE_FIELDS = frozenset({"status", "voided_at", "amount_paid"})

_TERMINAL_TRANSITIONS = {
    DocumentStatus.POSTED.value: {DocumentStatus.VOID.value, DocumentStatus.BOUNCED.value},
}


def _changed_fields(target) -> list[str]:
    insp = inspect(target)
    return [
        attr.key
        for attr in insp.mapper.column_attrs
        if attr.key not in _AUDIT_METADATA
        and insp.attrs[attr.key].history.has_changes()
    ]


def _previous_value(target, field: str):
    history = get_history(target, field)
    if history.deleted:
        return history.deleted[0]
    return getattr(target, field)


def _block(entity_type: str, target, operation: str, reason: str) -> None:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
            "reason": reason,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=reason,
    )


# Ledger


def _check_ledger_line_update(mapper, connection, target):
    changed = _changed_fields(target)
    if changed:
        _block("LedgerLine", target, "UPDATE", f"Cannot modify ledger line fields {changed}")


def _check_ledger_line_delete(mapper, connection, target):
    _block("LedgerLine", target, "DELETE", "Ledger lines cannot be deleted")


def _check_ledger_batch_update(mapper, connection, target):
    changed = set(_changed_fields(target))
    if not changed:
        return
    old_status = _previous_value(target, "status")
    reversal_link = changed <= {"status", "reversed_by_id"}
    if (
        reversal_link
        and old_status == BatchStatus.POSTED
        and target.status == BatchStatus.REVERSED
        and _previous_value(target, "reversed_by_id") is None
        and target.reversed_by_id is not None
    ):
        return
    _block(
        "LedgerBatch",
        target,
        "UPDATE",
        f"Only the reversal link may change on a ledger batch (changed {sorted(changed)})",
    )


def _check_ledger_batch_delete(mapper, connection, target):
    _block("LedgerBatch", target, "DELETE", "Ledger batches cannot be deleted")


# Audit and idempotency


def _check_audit_entry_update(mapper, connection, target):
    _block("AuditLogEntry", target, "UPDATE", "Audit log entries are append-only")


def _check_audit_entry_delete(mapper, connection, target):
    _block("AuditLogEntry", target, "DELETE", "Audit log entries are append-only")


def _check_idempotency_update(mapper, connection, target):
    _block("IdempotencyRecord", target, "UPDATE", "Idempotency records are never updated")


# Documents


def _check_document_update(mapper, connection, target):
    old_status = _previous_value(target, "status")
    if old_status == DocumentStatus.DRAFT:
        # Draft edits and the posting transition itself
        return

    changed = set(_changed_fields(target))
    illegal = changed - _DOCUMENT_LIFECYCLE_FIELDS
    if illegal:
        _block(
            "Document",
            target,
            "UPDATE",
            f"Cannot modify {sorted(illegal)} on a {old_status} document",
        )
    if "status" in changed:
        allowed = _TERMINAL_TRANSITIONS.get(str(DocumentStatus(old_status).value), set())
        if DocumentStatus(target.status).value not in allowed:
            _block(
                "Document",
                target,
                "UPDATE",
                f"Illegal status transition {old_status} -> {target.status}",
            )


def _check_document_delete(mapper, connection, target):
    if _previous_value(target, "status") != DocumentStatus.DRAFT:
        _block("Document", target, "DELETE", "Only draft documents can be deleted")


def _parent_document_status(connection, target) -> str | None:
    from ledger_kernel.models.document import Document

    document_id = _previous_value(target, "document_id")
    return connection.execute(
        select(Document.status).where(Document.id == document_id)
    ).scalar_one_or_none()


def _check_document_line_update(mapper, connection, target):
    status = _parent_document_status(connection, target)
    if status is not None and status != DocumentStatus.DRAFT:
        _block("DocumentLine", target, "UPDATE", f"Document is {status}")


def _check_document_line_delete(mapper, connection, target):
    status = _parent_document_status(connection, target)
    if status is not None and status != DocumentStatus.DRAFT:
        _block("DocumentLine", target, "DELETE", f"Document is {status}")


def _listeners():
    from ledger_kernel.models.audit_log import AuditLogEntry
    from ledger_kernel.models.document import Document, DocumentLine
    from ledger_kernel.models.idempotency import IdempotencyRecord
    from ledger_kernel.models.ledger import LedgerBatch, LedgerLine

    return [
        (LedgerLine, "before_update", _check_ledger_line_update),
        (LedgerLine, "before_delete", _check_ledger_line_delete),
        (LedgerBatch, "before_update", _check_ledger_batch_update),
        (LedgerBatch, "before_delete", _check_ledger_batch_delete),
        (AuditLogEntry, "before_update", _check_audit_entry_update),
        (AuditLogEntry, "before_delete", _check_audit_entry_delete),
        (IdempotencyRecord, "before_update", _check_idempotency_update),
        (Document, "before_update", _check_document_update),
        (Document, "before_delete", _check_document_delete),
        (DocumentLine, "before_update", _check_document_line_update),
        (DocumentLine, "before_delete", _check_document_line_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call after models are imported and before any database work.  Calling
    it twice does not register duplicates.
    """
    for target, event_name, listener in _listeners():
        if not event.contains(target, event_name, listener):
            event.listen(target, event_name, listener)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    Only for tests that deliberately corrupt records to prove detection.
    """
    for target, event_name, listener in _listeners():
        if event.contains(target, event_name, listener):
            event.remove(target, event_name, listener)
