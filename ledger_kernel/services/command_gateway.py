"""
CommandGateway -- controller-facing entry point for every mutating command.

Responsibility:
    Owns the transaction boundary around each command: opens a session,
    loads the org's settings snapshot, runs the idempotency broker, calls
    the document or reconciliation service, stores the keyed response,
    and commits.  Maps kernel errors to ``CommandResult`` status codes.

Architecture position:
    Kernel > Services -- imperative shell, the only component that commits.
    HTTP controllers (outside the kernel) translate routes to these calls.

Command flow:
    1. Bind LogContext (correlation_id, org_id, actor_id, operation).
    2. session_scope(): load OrgContext.
    3. Keyed commands: IdempotencyBroker.begin -> replay or proceed.
    4. Service call (lock date guard, validation, posting, audit).
    5. Keyed commands: IdempotencyBroker.complete in the same transaction.
    6. Commit; on a transient failure roll back and retry once.

Failure modes:
    - LedgerKernelError: mapped to CommandResult(http_status, {"error": ...}).
    - InvariantViolationError: additionally logged at CRITICAL with alert=True.
    - StaleDataError / OperationalError / IntegrityError: retried; after the
      last attempt reported as ConcurrencyConflictError (409).
    - Anything else propagates unchanged after rollback.
"""

import time
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Mapping
from uuid import UUID, uuid4

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from ledger_kernel.config import KernelSettings
from ledger_kernel.db.engine import get_session_factory, session_scope
from ledger_kernel.db.immutability import register_immutability_listeners
from ledger_kernel.domain.clock import Clock, SystemClock
from ledger_kernel.domain.dtos import DocumentDraft, DocumentType, MatchType
from ledger_kernel.domain.money import exact_minor_units, to_decimal
from ledger_kernel.domain.org_context import OrgContext
from ledger_kernel.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    IdempotencyKeyReuseError,
    InvalidRequestError,
    InvariantViolationError,
    LedgerKernelError,
)
from ledger_kernel.logging_config import LogContext, get_logger
from ledger_kernel.services.document_service import DocumentService
from ledger_kernel.services.idempotency_broker import (
    IdempotencyBroker,
    IdempotencyKeyRaceError,
)
from ledger_kernel.services.reconciliation_service import ReconciliationService
from ledger_kernel.services.reference_data import (
    MasterDataLookup,
    SqlMasterDataLookup,
    load_org_context,
)

logger = get_logger("services.command_gateway")

Handler = Callable[[Session, OrgContext], dict[str, Any]]

# Normalized request fields for the idempotency hash.  Evaluated inside the
# error mapping and only for keyed commands.
RequestBody = Callable[[], dict[str, Any]]

_TRANSIENT_ERRORS = (StaleDataError, OperationalError, IntegrityError, IdempotencyKeyRaceError)


@dataclass(frozen=True)
class CommandResult:
    """Status code and JSON-safe body of one command."""

    status_code: int
    body: dict[str, Any]
    replayed: bool = False

    @property
    def is_success(self) -> bool:
        return 200 <= self.status_code < 300


# ---------------------------------------------------------------------------
# Payload parsing
# ---------------------------------------------------------------------------


def _require(payload: Mapping[str, Any], field: str) -> Any:
    value = payload.get(field)
    if value in (None, ""):
        raise InvalidRequestError(field, "is required")
    return value


def _parse_uuid(payload: Mapping[str, Any], field: str) -> UUID:
    raw = _require(payload, field)
    if isinstance(raw, UUID):
        return raw
    try:
        return UUID(str(raw))
    except ValueError:
        raise InvalidRequestError(field, f"not a valid id: {raw!r}") from None


def _parse_date(payload: Mapping[str, Any], field: str) -> date:
    raw = _require(payload, field)
    if isinstance(raw, date):
        return raw
    try:
        return date.fromisoformat(str(raw))
    except ValueError:
        raise InvalidRequestError(field, f"not an ISO date: {raw!r}") from None


def _as_uuid(value: UUID | str, field: str) -> UUID:
    return _parse_uuid({field: value}, field)


def _document_request(
    document_type: DocumentType | str, document_id: UUID | str
) -> RequestBody:
    def request() -> dict[str, Any]:
        return {
            "documentType": DocumentType.parse(document_type).value,
            "documentId": _as_uuid(document_id, "documentId"),
        }

    return request


def _reconciliation_request(payload: Mapping[str, Any]) -> RequestBody:
    def request() -> dict[str, Any]:
        return {
            "bankAccountId": _parse_uuid(payload, "bankAccountId"),
            "periodStart": _parse_date(payload, "periodStart"),
            "periodEnd": _parse_date(payload, "periodEnd"),
            "openingBalance": to_decimal(_require(payload, "openingBalance"), "openingBalance"),
            "closingBalance": to_decimal(_require(payload, "closingBalance"), "closingBalance"),
        }

    return request


class CommandGateway:
    """
    One method per command.  Each returns a CommandResult and never raises
    a LedgerKernelError.

    Args:
        session_factory: Defaults to the module-level factory from
            ``ledger_kernel.db.engine``.
        clock: Injected into every service (tests use DeterministicClock).
        settings: Retry attempts and the suggestion date window.
        master_data_factory: Builds the MasterDataLookup for a session.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | None = None,
        clock: Clock | None = None,
        settings: KernelSettings | None = None,
        master_data_factory: Callable[[Session], MasterDataLookup] | None = None,
    ):
        self._session_factory = session_factory or get_session_factory()
        self._clock = clock or SystemClock()
        self._settings = settings or KernelSettings()
        self._master_data_factory = master_data_factory or SqlMasterDataLookup
        register_immutability_listeners()

    def _documents(self, session: Session) -> DocumentService:
        return DocumentService(
            session, self._clock, master_data=self._master_data_factory(session)
        )

    def _reconciliation(self, session: Session) -> ReconciliationService:
        return ReconciliationService(
            session, self._clock, master_data=self._master_data_factory(session)
        )

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def create_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        payload: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            draft = DocumentDraft.from_dict(document_type, payload)
            return self._documents(session).create(ctx, actor_id, draft).to_dict()

        return self._execute(
            "document.create",
            org_id,
            actor_id,
            handler,
            success_status=201,
            idempotency_key=idempotency_key,
            request_body=lambda: DocumentDraft.from_dict(document_type, payload).to_request_dict(),
        )

    def update_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        document_id: UUID,
        payload: Mapping[str, Any],
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            draft = DocumentDraft.from_dict(document_type, payload)
            return self._documents(session).update(
                ctx, actor_id, _as_uuid(document_id, "documentId"), draft
            ).to_dict()

        return self._execute(
            "document.update", org_id, actor_id, handler,
            success_status=200, document_id=document_id,
        )

    def post_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        document_id: UUID,
        idempotency_key: str | None = None,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            return self._documents(session).post(
                ctx, actor_id, _as_uuid(document_id, "documentId"),
                DocumentType.parse(document_type),
            ).to_dict()

        return self._execute(
            "document.post",
            org_id,
            actor_id,
            handler,
            success_status=201,
            idempotency_key=idempotency_key,
            request_body=_document_request(document_type, document_id),
            document_id=document_id,
        )

    def void_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        document_id: UUID,
        idempotency_key: str | None = None,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            return self._documents(session).void(
                ctx, actor_id, _as_uuid(document_id, "documentId"),
                DocumentType.parse(document_type),
            ).to_dict()

        return self._execute(
            "document.void",
            org_id,
            actor_id,
            handler,
            success_status=200,
            idempotency_key=idempotency_key,
            request_body=_document_request(document_type, document_id),
            document_id=document_id,
        )

    def bounce_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        document_id: UUID,
        idempotency_key: str | None = None,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            return self._documents(session).bounce(
                ctx, actor_id, _as_uuid(document_id, "documentId"),
                DocumentType.parse(document_type),
            ).to_dict()

        return self._execute(
            "document.bounce",
            org_id,
            actor_id,
            handler,
            success_status=200,
            idempotency_key=idempotency_key,
            request_body=_document_request(document_type, document_id),
            document_id=document_id,
        )

    def get_document(
        self,
        org_id: UUID,
        actor_id: UUID,
        document_type: DocumentType | str,
        document_id: UUID,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            return self._documents(session).get(
                ctx, _as_uuid(document_id, "documentId"), DocumentType.parse(document_type)
            ).to_dict()

        return self._execute(
            "document.get", org_id, actor_id, handler,
            success_status=200, document_id=document_id,
        )

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def create_reconciliation_session(
        self,
        org_id: UUID,
        actor_id: UUID,
        payload: Mapping[str, Any],
        idempotency_key: str | None = None,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            bank_account_id = _parse_uuid(payload, "bankAccountId")
            bank = self._master_data_factory(session).get_bank_account(ctx.org_id, bank_account_id)
            return self._reconciliation(session).create_session(
                ctx,
                actor_id,
                bank_account_id=bank_account_id,
                period_start=_parse_date(payload, "periodStart"),
                period_end=_parse_date(payload, "periodEnd"),
                opening_balance=exact_minor_units(
                    _require(payload, "openingBalance"), bank.currency, "openingBalance"
                ),
                closing_balance=exact_minor_units(
                    _require(payload, "closingBalance"), bank.currency, "closingBalance"
                ),
            ).to_dict()

        return self._execute(
            "reconciliation.create",
            org_id,
            actor_id,
            handler,
            success_status=201,
            idempotency_key=idempotency_key,
            request_body=_reconciliation_request(payload),
        )

    def match_reconciliation(
        self,
        org_id: UUID,
        actor_id: UUID,
        session_id: UUID,
        payload: Mapping[str, Any],
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            raw_type = str(payload.get("matchType") or MatchType.MANUAL.value).upper()
            try:
                match_type = MatchType(raw_type)
            except ValueError:
                raise InvalidRequestError("matchType", f"must be MANUAL or AUTO, got {raw_type!r}") from None
            return self._reconciliation(session).match_transaction(
                ctx,
                actor_id,
                _as_uuid(session_id, "sessionId"),
                bank_transaction_id=_parse_uuid(payload, "bankTransactionId"),
                ledger_batch_id=_parse_uuid(payload, "ledgerBatchId"),
                match_type=match_type,
            ).to_dict()

        return self._execute(
            "reconciliation.match", org_id, actor_id, handler, success_status=201
        )

    def close_reconciliation(
        self,
        org_id: UUID,
        actor_id: UUID,
        session_id: UUID,
        payload: Mapping[str, Any] | None = None,
    ) -> CommandResult:
        payload = payload or {}

        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            service = self._reconciliation(session)
            recon_id = _as_uuid(session_id, "sessionId")
            final_balance = None
            if payload.get("finalClosingBalance") is not None:
                recon = service.get_session(ctx, recon_id)
                bank = self._master_data_factory(session).get_bank_account(
                    ctx.org_id, recon.bank_account_id
                )
                final_balance = exact_minor_units(
                    payload["finalClosingBalance"], bank.currency, "finalClosingBalance"
                )
            return service.close_session(ctx, actor_id, recon_id, final_balance).to_dict()

        return self._execute(
            "reconciliation.close", org_id, actor_id, handler, success_status=200
        )

    def suggest_reconciliation_matches(
        self,
        org_id: UUID,
        actor_id: UUID,
        session_id: UUID,
    ) -> CommandResult:
        def handler(session: Session, ctx: OrgContext) -> dict[str, Any]:
            suggestions = self._reconciliation(session).suggest_matches(
                ctx,
                _as_uuid(session_id, "sessionId"),
                date_window_days=self._settings.suggestion_date_window_days,
            )
            return {"suggestions": [s.to_dict() for s in suggestions]}

        return self._execute(
            "reconciliation.suggest", org_id, actor_id, handler, success_status=200
        )

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def _execute(
        self,
        operation: str,
        org_id: UUID,
        actor_id: UUID,
        handler: Handler,
        *,
        success_status: int,
        idempotency_key: str | None = None,
        request_body: RequestBody | None = None,
        document_id: UUID | None = None,
    ) -> CommandResult:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            org_id=str(org_id),
            actor_id=str(actor_id),
            operation=operation,
            document_id=str(document_id) if document_id else None,
        ):
            logger.info("command_started", extra={"keyed": idempotency_key is not None})
            t0 = time.monotonic()
            request: dict[str, Any] = {}
            try:
                if idempotency_key and request_body is not None:
                    request = request_body()
                result = self._run_with_retry(
                    operation, org_id, handler, success_status, idempotency_key, request
                )
            except ConflictError as exc:
                result = None
                if idempotency_key and not isinstance(exc, IdempotencyKeyReuseError):
                    result = self._replay_after_conflict(operation, org_id, idempotency_key, request)
                if result is None:
                    result = self._error_result(exc)
            except LedgerKernelError as exc:
                result = self._error_result(exc)
            except Exception:
                logger.error(
                    "command_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "command_completed",
                extra={
                    "status_code": result.status_code,
                    "replayed": result.replayed,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return result

    def _run_with_retry(
        self,
        operation: str,
        org_id: UUID,
        handler: Handler,
        success_status: int,
        idempotency_key: str | None,
        request_body: dict[str, Any],
    ) -> CommandResult:
        max_retries = self._settings.transient_retry_attempts
        attempt = 0
        while True:
            try:
                return self._run_once(
                    operation, org_id, handler, success_status, idempotency_key, request_body
                )
            except _TRANSIENT_ERRORS as exc:
                if attempt >= max_retries:
                    logger.warning(
                        "command_retries_exhausted",
                        extra={"attempts": attempt + 1, "exc_type": type(exc).__name__},
                    )
                    raise ConcurrencyConflictError(operation, type(exc).__name__) from exc
                attempt += 1
                logger.warning(
                    "command_retry",
                    extra={"attempt": attempt, "exc_type": type(exc).__name__},
                )

    def _run_once(
        self,
        operation: str,
        org_id: UUID,
        handler: Handler,
        success_status: int,
        idempotency_key: str | None,
        request_body: dict[str, Any],
    ) -> CommandResult:
        with session_scope(self._session_factory) as session:
            ctx = load_org_context(session, org_id)

            broker = lookup = None
            if idempotency_key:
                broker = IdempotencyBroker(session, self._clock)
                lookup = broker.begin(
                    org_id, IdempotencyBroker.scoped_key(operation, idempotency_key), request_body
                )
                if lookup.is_replay:
                    return CommandResult(lookup.status_code, lookup.response, replayed=True)

            body = handler(session, ctx)

            if broker is not None:
                broker.complete(org_id, lookup.key, lookup.request_hash, body, success_status)
            return CommandResult(success_status, body)

    def _replay_after_conflict(
        self,
        operation: str,
        org_id: UUID,
        idempotency_key: str,
        request_body: dict[str, Any],
    ) -> CommandResult | None:
        """
        A keyed command that lost a race to a concurrent request with the
        same key sees the winner's state change as a conflict.  If the
        winner's response is now stored, replay it instead.
        """
        try:
            with session_scope(self._session_factory) as session:
                lookup = IdempotencyBroker(session, self._clock).begin(
                    org_id, IdempotencyBroker.scoped_key(operation, idempotency_key), request_body
                )
        except IdempotencyKeyReuseError as exc:
            return self._error_result(exc)
        if not lookup.is_replay:
            return None
        return CommandResult(lookup.status_code, lookup.response, replayed=True)

    def _error_result(self, exc: LedgerKernelError) -> CommandResult:
        if isinstance(exc, InvariantViolationError):
            logger.critical(
                "invariant_violation",
                extra={"error_code": exc.code, "alert": True},
                exc_info=exc,
            )
        else:
            logger.warning(
                "command_rejected",
                extra={"error_code": exc.code, "error_category": exc.category},
            )
        return CommandResult(exc.http_status, {"error": exc.to_dict()})
