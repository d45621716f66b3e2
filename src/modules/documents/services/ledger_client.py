# src/modules/documents/services/ledger_client.py
import hashlib
import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError

from config import Settings, settings as default_settings
from modules.documents.services.errors import ErrorKind
from modules.ledger.models import LedgerEventKind
from modules.ledger.services import (
    GasSchedule, LedgerEvent, LedgerRejection, RejectReason, SignatureLedger, format_ether
)
from modules.ledger.services.identity import normalize_identity

logger = logging.getLogger(__name__)

REJECTION_KINDS = {
    RejectReason.DOCUMENT_EXISTS: ErrorKind.CONFLICT,
    RejectReason.EMPTY_SIGNERS: ErrorKind.INVALID_INPUT,
    RejectReason.INVALID_IDENTITY: ErrorKind.INVALID_INPUT,
    RejectReason.DOCUMENT_MISSING: ErrorKind.NOT_FOUND,
    RejectReason.DOCUMENT_INACTIVE: ErrorKind.CONFLICT,
    RejectReason.NOT_AUTHORIZED: ErrorKind.UNAUTHORIZED,
    RejectReason.ALREADY_SIGNED: ErrorKind.CONFLICT,
    RejectReason.NOT_CREATOR: ErrorKind.UNAUTHORIZED,
    RejectReason.OUT_OF_GAS: ErrorKind.INVALID_INPUT,
}

DEFAULT_EVENT_KINDS = (LedgerEventKind.DOCUMENT_CREATED, LedgerEventKind.DOCUMENT_SIGNED)


class LedgerResult:
    """Outcome of a ledger client call: a payload on success, a typed failure otherwise."""

    def __init__(self, success: bool, data: Optional[Dict[str, Any]] = None,
                 error_kind: Optional[ErrorKind] = None, error: Optional[str] = None,
                 reason: Optional[RejectReason] = None):
        self.success = success
        self.data = data or {}
        self.error_kind = error_kind
        self.error = error
        self.reason = reason

    @classmethod
    def ok(cls, **data) -> "LedgerResult":
        return cls(True, data=data)

    @classmethod
    def fail(cls, kind: ErrorKind, error: str, reason: Optional[RejectReason] = None) -> "LedgerResult":
        return cls(False, error_kind=kind, error=error, reason=reason)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]

    def to_dict(self) -> Dict[str, Any]:
        if self.success:
            return {"success": True, **self.data}
        return {"success": False, "error": self.error, "error_kind": self.error_kind.value}

    def __repr__(self) -> str:
        if self.success:
            return f"LedgerResult(ok, {self.data})"
        return f"LedgerResult(failed, {self.error_kind.value}: {self.error})"


class LedgerClient:
    """
    Stateless adapter over `SignatureLedger`.

    Each call opens its own session, so reads always observe the latest
    committed ledger state. Rejections and transport failures come back as
    `LedgerResult` failures; nothing is raised to the caller.
    """

    def __init__(self, session_factory: Callable, gas_schedule: Optional[GasSchedule] = None,
                 settings: Optional[Settings] = None):
        self.session_factory = session_factory
        self.gas = gas_schedule or GasSchedule()
        self.settings = settings or default_settings

    @staticmethod
    def hash_document(content: bytes) -> str:
        return hashlib.sha256(content).hexdigest()

    def _call(self, operation: Callable[[SignatureLedger], LedgerResult]) -> LedgerResult:
        try:
            with self.session_factory() as session:
                return operation(SignatureLedger(session, self.gas))
        except LedgerRejection as e:
            return LedgerResult.fail(REJECTION_KINDS[e.reason], e.message, reason=e.reason)
        except SQLAlchemyError as e:
            logger.error("Ledger unavailable: %s", e)
            return LedgerResult.fail(ErrorKind.UPSTREAM_UNAVAILABLE, "Ledger is unavailable")

    # ----------------------------------------------------------------- writes

    def create_document(self, document_hash: str, signers: Sequence[str], creator: str,
                        gas_limit: Optional[int] = None) -> LedgerResult:
        limit = gas_limit or self.settings.create_gas_limit

        def operation(ledger: SignatureLedger) -> LedgerResult:
            receipt = ledger.create_document(document_hash, signers, creator, gas_limit=limit)
            return LedgerResult.ok(
                document_hash=document_hash,
                transaction_hash=receipt.transaction_hash,
                block_number=receipt.position,
                gas_used=receipt.gas_used,
                created_at=receipt.timestamp,
            )

        return self._call(operation)

    def sign_document(self, document_hash: str, signer: str, metadata_ref: str = "",
                      gas_limit: Optional[int] = None) -> LedgerResult:
        limit = gas_limit or self.settings.sign_gas_limit

        def operation(ledger: SignatureLedger) -> LedgerResult:
            receipt = ledger.sign_document(document_hash, metadata_ref, signer, gas_limit=limit)
            return LedgerResult.ok(
                transaction_hash=receipt.transaction_hash,
                block_number=receipt.position,
                gas_used=receipt.gas_used,
                signed_at=receipt.timestamp,
            )

        return self._call(operation)

    def revoke_document(self, document_hash: str, caller: str,
                        gas_limit: Optional[int] = None) -> LedgerResult:
        limit = gas_limit or self.settings.revoke_gas_limit

        def operation(ledger: SignatureLedger) -> LedgerResult:
            receipt = ledger.revoke_document(document_hash, caller, gas_limit=limit)
            return LedgerResult.ok(
                transaction_hash=receipt.transaction_hash,
                block_number=receipt.position,
                gas_used=receipt.gas_used,
                revoked_at=receipt.timestamp,
            )

        return self._call(operation)

    # ------------------------------------------------------------------ reads

    def is_document_fully_signed(self, document_hash: str) -> LedgerResult:
        return self._call(lambda ledger: LedgerResult.ok(
            is_fully_signed=ledger.is_fully_signed(document_hash)
        ))

    def get_signature_status(self, document_hash: str, signer: str) -> LedgerResult:
        def operation(ledger: SignatureLedger) -> LedgerResult:
            record = ledger.get_signature(document_hash, signer)
            if not record.required:
                return LedgerResult.fail(ErrorKind.NOT_FOUND, "Address is not a signer of this document")
            return LedgerResult.ok(
                signed=record.signed,
                timestamp=record.signed_at,
                signature_metadata=record.metadata_ref,
            )

        return self._call(operation)

    def verify_signature(self, document_hash: str, signer: str) -> LedgerResult:
        def operation(ledger: SignatureLedger) -> LedgerResult:
            record = ledger.verify_document_signature(document_hash, signer)
            if not record.found:
                return LedgerResult.fail(
                    ErrorKind.NOT_FOUND, "Document does not exist", reason=RejectReason.DOCUMENT_MISSING
                )
            return LedgerResult.ok(
                is_valid=record.is_valid,
                signed_at=record.signed_at,
                document_active=record.document_active,
            )

        return self._call(operation)

    def get_required_signers(self, document_hash: str) -> LedgerResult:
        return self._call(lambda ledger: LedgerResult.ok(
            signers=ledger.get_document_signers(document_hash)
        ))

    def get_user_documents(self, creator: str) -> LedgerResult:
        return self._call(lambda ledger: LedgerResult.ok(
            creator=creator,
            documents=ledger.get_user_documents(creator),
        ))

    def get_document(self, document_hash: str) -> LedgerResult:
        def operation(ledger: SignatureLedger) -> LedgerResult:
            record = ledger.get_document(document_hash)
            return LedgerResult.ok(
                document_hash=record.document_hash,
                creator=record.creator,
                created_at=record.created_at,
                active=record.active,
                signers=record.signers,
                block_number=record.position,
            )

        return self._call(operation)

    def get_signing_progress(self, document_hash: str) -> LedgerResult:
        signers_result = self.get_required_signers(document_hash)
        if not signers_result.success:
            return signers_result

        signers: List[str] = signers_result["signers"]
        signatures = []
        for signer in signers:
            status = self.get_signature_status(document_hash, signer)
            if not status.success:
                return status
            signatures.append({"address": signer, **status.data})

        signed_count = sum(1 for sig in signatures if sig["signed"])
        total = len(signers)
        return LedgerResult.ok(
            total_signers=total,
            signed_count=signed_count,
            percent_complete=_percent(signed_count, total),
            signatures=signatures,
        )

    def estimate_costs(self, content: bytes, signers: Sequence[str]) -> LedgerResult:
        try:
            declared = [normalize_identity(s) for s in signers]
        except ValueError as e:
            return LedgerResult.fail(ErrorKind.INVALID_INPUT, str(e))
        if not declared:
            return LedgerResult.fail(ErrorKind.INVALID_INPUT, "At least one signer is required")

        document_hash = self.hash_document(content)
        create_gas = self.gas.create_document_cost(document_hash, declared)
        # worst case: the last declared signer, no metadata
        sign_gas = self.gas.sign_document_cost(document_hash, "", len(declared) - 1)
        price = self.settings.gas_price_gwei
        return LedgerResult.ok(
            document_hash=document_hash,
            gas_price_gwei=price,
            create_document={
                "gas_limit": create_gas,
                "gas_ceiling": self.settings.create_gas_limit,
                "estimated_cost": format_ether(create_gas, price),
            },
            sign_document={
                "gas_limit": sign_gas,
                "gas_ceiling": self.settings.sign_gas_limit,
                "estimated_cost": format_ether(sign_gas, price),
            },
        )

    def head_position(self) -> LedgerResult:
        return self._call(lambda ledger: LedgerResult.ok(block_number=ledger.head_position()))

    def events_since(self, position: int, limit: int = 100,
                     kinds: Optional[Sequence[LedgerEventKind]] = None) -> LedgerResult:
        return self._call(lambda ledger: LedgerResult.ok(
            events=ledger.events_since(position, limit=limit, kinds=kinds)
        ))

    def subscribe(self, handler: Callable[[LedgerEvent], None],
                  kinds: Sequence[LedgerEventKind] = DEFAULT_EVENT_KINDS) -> "LedgerSubscription":
        """Deliver every ledger event appended from now on to `handler`."""
        return LedgerSubscription(self, handler, kinds)


class LedgerSubscription:
    def __init__(self, client: LedgerClient, handler: Callable[[LedgerEvent], None],
                 kinds: Sequence[LedgerEventKind], batch_size: int = 100):
        self.client = client
        self.handler = handler
        self.kinds = tuple(kinds)
        self.batch_size = batch_size
        self.scheduler: Optional[BackgroundScheduler] = None
        self.cursor: Optional[int] = None
        self._sync_cursor()

    def _sync_cursor(self) -> bool:
        head = self.client.head_position()
        if not head.success:
            logger.warning("Could not read ledger head: %s", head.error)
            return False
        self.cursor = head["block_number"]
        return True

    def poll(self) -> int:
        """Deliver pending events in ledger order; returns how many were delivered."""
        if self.cursor is None:
            # the ledger was unreachable at subscribe time; start from the current head
            self._sync_cursor()
            return 0

        delivered = 0
        while True:
            result = self.client.events_since(self.cursor, limit=self.batch_size, kinds=self.kinds)
            if not result.success:
                logger.warning("Ledger event poll failed: %s", result.error)
                return delivered

            events: List[LedgerEvent] = result["events"]
            for event in events:
                try:
                    self.handler(event)
                except Exception:
                    logger.exception("Ledger event handler failed for %s at %d", event.kind, event.position)
                self.cursor = event.position
                delivered += 1

            if len(events) < self.batch_size:
                return delivered

    def start(self, interval_seconds: int) -> None:
        self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(self.poll, 'interval', seconds=interval_seconds,
                               max_instances=1, coalesce=True)
        self.scheduler.start()
        logger.info("Ledger subscription polling every %ss from position %s", interval_seconds, self.cursor)

    def stop(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown(wait=False)
            self.scheduler = None


def _percent(part: int, total: int) -> int:
    if total == 0:
        return 0
    # round half up
    return (part * 200 + total) // (2 * total)
