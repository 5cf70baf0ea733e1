"""
IdempotencyBroker -- exactly-once outcomes for keyed mutating requests.

Responsibility:
    Looks up an (org, key) pair before a command runs and stores the
    command's response in the same transaction once it succeeds.  A retry
    with the same key and the same body replays the stored response; a
    retry with the same key and a different body is a conflict.

Architecture position:
    Kernel > Services.  Wrapped around every keyed command by the
    CommandGateway; requests without a key bypass the broker entirely.

Invariants enforced:
    - One record per (org_id, key), enforced by a unique constraint.
    - The record is inserted in the same transaction as the state change
      it describes: either both commit or neither does.
    - Records are never updated (immutability listener).

Failure modes:
    - IdempotencyKeyReuseError: key seen before with a different request hash.
    - IdempotencyKeyRaceError: a concurrent request with the same fresh key
      committed first.  The gateway rolls back and calls ``begin`` again,
      which then replays the winner's response.

Usage:
    broker = IdempotencyBroker(session, clock)
    key = IdempotencyBroker.scoped_key("document.post", client_key)
    lookup = broker.begin(org_id, key, {"documentId": str(document_id)})
    if lookup.is_replay:
        return lookup.status_code, lookup.response
    ...  # run the command
    broker.complete(org_id, key, lookup.request_hash, body, 201)
"""

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.exceptions import IdempotencyKeyReuseError
from ledger_kernel.logging_config import get_logger
from ledger_kernel.models.idempotency import IdempotencyRecord
from ledger_kernel.utils.hashing import hash_payload

logger = get_logger("services.idempotency")


class IdempotencyKeyRaceError(Exception):
    """Another transaction stored a response for this key first."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Idempotency key {key!r} was claimed by a concurrent request")


@dataclass(frozen=True)
class IdempotencyLookup:
    """
    Outcome of ``begin``.

    ``is_replay`` means the stored ``response``/``status_code`` must be
    returned as-is and the command must not run.  Otherwise the caller
    proceeds and later passes ``request_hash`` to ``complete``.
    """

    key: str
    request_hash: str
    is_replay: bool = False
    response: dict[str, Any] | None = None
    status_code: int | None = None


class IdempotencyBroker:
    """Storage-backed idempotency broker.  Never commits."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    @staticmethod
    def scoped_key(operation: str, client_key: str) -> str:
        """Namespace a client key by operation: ``document.post:<key>``."""
        return f"{operation}:{client_key}"

    def _find(self, org_id: UUID, key: str) -> IdempotencyRecord | None:
        return self._session.execute(
            select(IdempotencyRecord).where(
                IdempotencyRecord.org_id == org_id,
                IdempotencyRecord.key == key,
            )
        ).scalar_one_or_none()

    def begin(self, org_id: UUID, key: str, request_body: dict[str, Any]) -> IdempotencyLookup:
        """
        Hash the request and look up a prior outcome for (org_id, key).

        Raises:
            IdempotencyKeyReuseError: The key was used with a different body.
        """
        request_hash = hash_payload(request_body)
        record = self._find(org_id, key)

        if record is None:
            return IdempotencyLookup(key=key, request_hash=request_hash)

        if record.request_hash != request_hash:
            logger.warning(
                "idempotency_key_reuse",
                extra={"idempotency_key": key},
            )
            raise IdempotencyKeyReuseError(key, record.request_hash, request_hash)

        logger.info(
            "idempotency_replay",
            extra={"idempotency_key": key, "status_code": record.status_code},
        )
        return IdempotencyLookup(
            key=key,
            request_hash=request_hash,
            is_replay=True,
            response=record.response,
            status_code=record.status_code,
        )

    def complete(
        self,
        org_id: UUID,
        key: str,
        request_hash: str,
        response: dict[str, Any],
        status_code: int,
    ) -> IdempotencyRecord:
        """
        Store the command's response in the caller's transaction.

        Raises:
            IdempotencyKeyRaceError: The unique (org_id, key) constraint
                rejected the insert.
        """
        record = IdempotencyRecord(
            org_id=org_id,
            key=key,
            request_hash=request_hash,
            response=response,
            status_code=status_code,
            created_at=self._clock.now(),
        )
        savepoint = self._session.begin_nested()
        try:
            self._session.add(record)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.info("idempotency_key_race_lost", extra={"idempotency_key": key})
            raise IdempotencyKeyRaceError(key) from None

        logger.debug(
            "idempotency_record_stored",
            extra={"idempotency_key": key, "status_code": status_code},
        )
        return record
