# src/modules/ledger/services/ledger_service.py
import hashlib
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Callable, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from modules.ledger.models import LedgerDocument, LedgerEntry, LedgerEventKind, LedgerHead, LedgerSigner
from modules.ledger.services.errors import LedgerRejection, RejectReason
from modules.ledger.services.gas import GasSchedule
from modules.ledger.services.identity import normalize_identity
from modules.ledger.services.records import (
    DocumentRecord, LedgerEvent, LedgerReceipt, SignatureRecord, VerificationRecord
)

logger = logging.getLogger(__name__)


class SignatureLedger:
    """
    Authoritative store of documents and their per-signer signature state.

    Every mutating call is one transaction that either commits the new state
    together with one append-log entry, or raises `LedgerRejection` and leaves
    the ledger untouched. `caller` is the identity the call is made as.
    """

    def __init__(self, session: Session, gas_schedule: Optional[GasSchedule] = None,
                 clock: Callable[[], float] = time.time):
        self.session = session
        self.gas = gas_schedule or GasSchedule()
        self.clock = clock

    # ------------------------------------------------------------------ writes

    def create_document(self, document_hash: str, signers: Sequence[str], caller: str,
                        gas_limit: Optional[int] = None) -> LedgerReceipt:
        creator = self._identity(caller)
        with self._serialized() as head:
            if self._find(document_hash) is not None:
                raise LedgerRejection(RejectReason.DOCUMENT_EXISTS, "Document already exists")
            if not signers:
                raise LedgerRejection(RejectReason.EMPTY_SIGNERS, "At least one signer is required")

            declared = [self._identity(s) for s in signers]
            gas_used = self.gas.create_document_cost(document_hash, declared)
            self._check_gas(gas_used, gas_limit)

            now = int(self.clock())
            entry = self._append(head, LedgerEventKind.DOCUMENT_CREATED, document_hash, creator, gas_used, now)
            document = LedgerDocument(
                document_hash=document_hash,
                creator=creator,
                created_at=now,
                active=True,
                position=entry.id,
                signers=[LedgerSigner(slot=i, address=a) for i, a in enumerate(declared)],
            )
            self.session.add(document)
            receipt = self._receipt(entry)
            try:
                self.session.commit()
            except IntegrityError:
                # lost a race against another create of the same id
                raise LedgerRejection(RejectReason.DOCUMENT_EXISTS, "Document already exists")

        logger.info("Document %s created by %s at position %d", document_hash, creator, receipt.position)
        return receipt

    def sign_document(self, document_hash: str, metadata_ref: str, caller: str,
                      gas_limit: Optional[int] = None) -> LedgerReceipt:
        signer_address = self._identity(caller)
        metadata_ref = metadata_ref or ""
        with self._serialized() as head:
            document = self._require(document_hash)

            if not document.active:
                raise LedgerRejection(RejectReason.DOCUMENT_INACTIVE, "Document is not active")

            signer = self._scan(document, signer_address)
            if signer is None:
                raise LedgerRejection(RejectReason.NOT_AUTHORIZED, "Not authorized to sign this document")
            if signer.signed:
                raise LedgerRejection(RejectReason.ALREADY_SIGNED, "Document already signed by this address")

            gas_used = self.gas.sign_document_cost(document_hash, metadata_ref, signer.slot)
            self._check_gas(gas_used, gas_limit)

            now = int(self.clock())
            updated = (
                self.session.query(LedgerSigner)
                .filter(LedgerSigner.id == signer.id, LedgerSigner.signed.is_(False))
                .update(
                    {"signed": True, "signed_at": now, "metadata_ref": metadata_ref},
                    synchronize_session=False,
                )
            )
            if updated == 0:
                # the signer row changed after it was read
                raise LedgerRejection(RejectReason.ALREADY_SIGNED, "Document already signed by this address")

            entry = self._append(
                head, LedgerEventKind.DOCUMENT_SIGNED, document_hash, signer_address, gas_used, now
            )
            receipt = self._receipt(entry)
            self.session.commit()

        logger.info("Document %s signed by %s at position %d", document_hash, signer_address, receipt.position)
        return receipt

    def revoke_document(self, document_hash: str, caller: str,
                        gas_limit: Optional[int] = None) -> LedgerReceipt:
        actor = self._identity(caller)
        with self._serialized() as head:
            document = self._require(document_hash)
            if document.creator != actor:
                raise LedgerRejection(RejectReason.NOT_CREATOR, "Only the document creator can revoke it")

            gas_used = self.gas.revoke_document_cost(document_hash)
            self._check_gas(gas_used, gas_limit)

            now = int(self.clock())
            document.active = False
            entry = self._append(head, LedgerEventKind.DOCUMENT_REVOKED, document_hash, actor, gas_used, now)
            receipt = self._receipt(entry)
            self.session.commit()

        logger.info("Document %s revoked by %s", document_hash, actor)
        return receipt

    # ------------------------------------------------------------------- reads

    def is_fully_signed(self, document_hash: str) -> bool:
        document = self._require(document_hash)
        for signer in document.signers:
            if not signer.signed:
                return False
        return True

    def get_signature(self, document_hash: str, signer: str) -> SignatureRecord:
        document = self._require(document_hash)
        entry = self._scan(document, self._identity(signer))
        if entry is None:
            return SignatureRecord(signed=False, signed_at=0, metadata_ref="", required=False)
        return SignatureRecord(
            signed=entry.signed,
            signed_at=entry.signed_at if entry.signed else 0,
            metadata_ref=entry.metadata_ref,
        )

    def get_document_signers(self, document_hash: str) -> List[str]:
        document = self._require(document_hash)
        return [s.address for s in document.signers]

    def get_user_documents(self, creator: str) -> List[str]:
        try:
            creator = normalize_identity(creator)
        except ValueError:
            return []
        rows = (
            self.session.query(LedgerDocument.document_hash)
            .filter(LedgerDocument.creator == creator)
            .order_by(LedgerDocument.position)
            .all()
        )
        return [row[0] for row in rows]

    def verify_document_signature(self, document_hash: str, signer: str) -> VerificationRecord:
        document = self._find(document_hash)
        if document is None:
            return VerificationRecord(is_valid=False, signed_at=0, document_active=False, found=False)
        try:
            entry = self._scan(document, normalize_identity(signer))
        except ValueError:
            entry = None
        if entry is None or not entry.signed:
            return VerificationRecord(is_valid=False, signed_at=0, document_active=document.active)
        return VerificationRecord(is_valid=True, signed_at=entry.signed_at, document_active=document.active)

    def get_document(self, document_hash: str) -> DocumentRecord:
        document = self._require(document_hash)
        return DocumentRecord(
            document_hash=document.document_hash,
            creator=document.creator,
            created_at=document.created_at,
            active=document.active,
            signers=[s.address for s in document.signers],
            position=document.position,
        )

    def events_since(self, position: int, limit: int = 100,
                     kinds: Optional[Sequence[LedgerEventKind]] = None) -> List[LedgerEvent]:
        query = self.session.query(LedgerEntry).filter(LedgerEntry.id > position)
        if kinds:
            query = query.filter(LedgerEntry.kind.in_(list(kinds)))
        rows = query.order_by(LedgerEntry.id).limit(limit).all()
        return [
            LedgerEvent(
                kind=row.kind.value,
                document_hash=row.document_hash,
                actor=row.actor,
                position=row.id,
                transaction_hash=row.transaction_hash,
                timestamp=row.timestamp,
            )
            for row in rows
        ]

    def head_position(self) -> int:
        return self.session.query(func.max(LedgerEntry.id)).scalar() or 0

    # ----------------------------------------------------------------- helpers

    def _find(self, document_hash: str) -> Optional[LedgerDocument]:
        return (
            self.session.query(LedgerDocument)
            .filter(LedgerDocument.document_hash == document_hash)
            .first()
        )

    def _require(self, document_hash: str) -> LedgerDocument:
        document = self._find(document_hash)
        if document is None:
            raise LedgerRejection(RejectReason.DOCUMENT_MISSING, "Document does not exist")
        return document

    @staticmethod
    def _scan(document: LedgerDocument, address: str) -> Optional[LedgerSigner]:
        # Linear scan in declared order; first match wins
        for signer in document.signers:
            if signer.address == address:
                return signer
        return None

    @staticmethod
    def _identity(value: str) -> str:
        try:
            return normalize_identity(value)
        except ValueError as e:
            raise LedgerRejection(RejectReason.INVALID_IDENTITY, str(e))

    @staticmethod
    def _check_gas(gas_used: int, gas_limit: Optional[int]):
        if gas_limit is not None and gas_used > gas_limit:
            raise LedgerRejection(
                RejectReason.OUT_OF_GAS,
                f"Projected cost {gas_used} exceeds gas limit {gas_limit}",
            )

    def _head_query(self):
        return (
            self.session.query(LedgerHead)
            .filter(LedgerHead.id == LedgerHead.HEAD_ID)
            .populate_existing()
            .with_for_update()
        )

    def _lock_head(self) -> LedgerHead:
        head = self._head_query().first()
        if head is None:
            head = LedgerHead(id=LedgerHead.HEAD_ID, position=self.head_position())
            self.session.add(head)
            self.session.flush()
        return head

    @contextmanager
    def _serialized(self):
        """Hold the head lock for one mutation; a rejection rolls back and releases it."""
        head = self._lock_head()
        try:
            yield head
        except (LedgerRejection, SQLAlchemyError):
            self.session.rollback()
            raise

    def _append(self, head: LedgerHead, kind: LedgerEventKind, document_hash: str, actor: str,
                gas_used: int, timestamp: int) -> LedgerEntry:
        seed = f"{kind.value}:{document_hash}:{actor}:{timestamp}:{uuid.uuid4().hex}"
        head.position += 1
        entry = LedgerEntry(
            id=head.position,
            kind=kind,
            document_hash=document_hash,
            actor=actor,
            transaction_hash="0x" + hashlib.sha256(seed.encode("utf-8")).hexdigest(),
            gas_used=gas_used,
            timestamp=timestamp,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    @staticmethod
    def _receipt(entry: LedgerEntry) -> LedgerReceipt:
        return LedgerReceipt(
            transaction_hash=entry.transaction_hash,
            position=entry.id,
            gas_used=entry.gas_used,
            timestamp=entry.timestamp,
        )
