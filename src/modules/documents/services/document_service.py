import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from config import Settings
from modules.documents.services.document_state_service import (
    LEDGER_REJECTIONS, RejectionReason, SigningAttempt, SigningState
)
from modules.documents.services.errors import DocumentServiceError, ErrorKind
from modules.documents.services.file_store import DocumentFileStore
from modules.documents.services.ledger_client import LedgerClient, LedgerResult
from modules.documents.services.validation import (
    require_address, require_document_hash, validate_document_upload, validate_signers,
    validate_signature_metadata
)
from modules.ledger.services import RejectReason
from modules.metadata.services import MetadataStore, MetadataStoreError

logger = logging.getLogger(__name__)


def _iso(timestamp: int) -> Optional[str]:
    if not timestamp:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class DocumentService:
    """
    Sequences the steps around each ledger mutation: boundary validation,
    authorization and idempotency reads, off-ledger metadata, then the
    mutation itself and best-effort reads for the response.
    """

    def __init__(self, ledger: LedgerClient, metadata_store: MetadataStore,
                 file_store: DocumentFileStore, settings: Settings):
        self.ledger = ledger
        self.metadata_store = metadata_store
        self.files = file_store
        self.settings = settings

    @staticmethod
    def _error(result: LedgerResult, message: Optional[str] = None) -> DocumentServiceError:
        details = {"reason": result.reason.value} if result.reason else {}
        return DocumentServiceError(result.error_kind, message or result.error, details)

    # ------------------------------------------------------------ create flow

    def create_document(self, content: bytes, filename: Optional[str], content_type: Optional[str],
                        signers: List[Any], creator: str, title: Optional[str] = None,
                        description: Optional[str] = None) -> Dict[str, Any]:
        """
        Register a document on the ledger.

        1) Validate the upload and the signer list
        2) Hash the content
        3) Create the ledger record (an already registered hash is a conflict)
        4) Keep the bytes so the document can be downloaded and re-verified
        """
        validate_document_upload(content, filename, self.settings.max_file_size, title, description)
        declared = validate_signers(signers, self.settings.max_signers)
        creator = require_address(creator, "creator")

        document_hash = self.ledger.hash_document(content)
        result = self.ledger.create_document(document_hash, declared, creator)
        if not result.success:
            if result.reason is RejectReason.DOCUMENT_EXISTS:
                raise DocumentServiceError(
                    ErrorKind.CONFLICT, "Document already registered",
                    {"document_hash": document_hash},
                )
            raise self._error(result, "Failed to create document on ledger")

        stored = True
        try:
            self.files.save(document_hash, content, {
                "filename": filename,
                "content_type": content_type,
                "file_size": len(content),
                "title": title,
                "description": description,
                "creator": creator,
            })
        except OSError as e:
            stored = False
            logger.error("Document %s registered but its file could not be stored: %s", document_hash, e)

        return {
            "success": True,
            "document_hash": document_hash,
            "transaction_hash": result["transaction_hash"],
            "block_number": result["block_number"],
            "gas_used": result["gas_used"],
            "created_at": _iso(result["created_at"]),
            "creator": creator,
            "signers": declared,
            "title": title,
            "description": description,
            "file_stored": stored,
        }

    # -------------------------------------------------------------- sign flow

    def sign_document(self, document_hash: str, signer: str,
                      signature_metadata: Optional[Dict[str, Any]] = None,
                      signature_data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        signer = require_address(signer, "signer")
        validate_signature_metadata(signature_metadata, self.settings.max_metadata_bytes)
        attempt = SigningAttempt(document_hash, signer)

        # 1) Authorization: the signer must be declared on the document
        document = self.ledger.get_document(document_hash)
        if not document.success:
            if document.error_kind is ErrorKind.NOT_FOUND:
                attempt.reject(RejectionReason.DOCUMENT_MISSING)
            raise self._error(document)
        if not any(declared == signer for declared in document["signers"]):
            attempt.reject(RejectionReason.NOT_AUTHORIZED)
        if not document["active"]:
            attempt.reject(RejectionReason.DOCUMENT_INACTIVE)

        # 2) Idempotency: a signature is recorded at most once
        existing = self.ledger.get_signature_status(document_hash, signer)
        if not existing.success:
            raise self._error(existing)
        if existing["signed"]:
            attempt.reject(RejectionReason.ALREADY_SIGNED, {"signed_at": _iso(existing["timestamp"])})

        # 3) Optional off-ledger metadata; never blocks signing
        metadata_ref = self._upload_signature_metadata(
            document_hash, signer, signature_metadata, signature_data
        )

        # 4) Ledger mutation
        attempt.advance(SigningState.SIGNING_IN_FLIGHT)
        result = self.ledger.sign_document(document_hash, signer, metadata_ref)
        if not result.success:
            if result.reason in LEDGER_REJECTIONS:
                attempt.reject(LEDGER_REJECTIONS[result.reason])
            raise self._error(result, "Failed to sign document on ledger")
        attempt.advance(SigningState.SIGNED)

        # 5) Post-reads for display only
        completion = self.ledger.is_document_fully_signed(document_hash)
        progress = self.ledger.get_signing_progress(document_hash)

        return {
            "success": True,
            "state": attempt.state.value,
            "transaction_hash": result["transaction_hash"],
            "block_number": result["block_number"],
            "gas_used": result["gas_used"],
            "signer": signer,
            "signed_at": _iso(result["signed_at"]),
            "metadata_ref": metadata_ref or None,
            "is_document_complete": completion["is_fully_signed"] if completion.success else False,
            "signing_progress": {
                "signed_count": progress["signed_count"] if progress.success else 0,
                "total_signers": progress["total_signers"] if progress.success else 0,
                "percent_complete": progress["percent_complete"] if progress.success else 0,
            },
        }

    def _upload_signature_metadata(self, document_hash: str, signer: str,
                                   signature_metadata: Optional[Dict[str, Any]],
                                   signature_data: Optional[Dict[str, Any]]) -> str:
        if not signature_metadata and not signature_data:
            return ""

        metadata = {
            "signer": signer,
            "document_hash": document_hash,
            "timestamp": _now_iso(),
            **(signature_metadata or {}),
        }
        if signature_data:
            metadata["signature_data"] = signature_data

        try:
            return self.metadata_store.put_json(metadata, name=f"signature-{document_hash}-{signer}.json")
        except MetadataStoreError as e:
            logger.warning("Failed to upload signature metadata for %s by %s, signing without it: %s",
                           document_hash, signer, e)
            return ""

    # ------------------------------------------------------------ verify flow

    def verify_document(self, document_hash: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        signers_result = self.ledger.get_required_signers(document_hash)
        if not signers_result.success:
            if signers_result.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(signers_result)

        signers = signers_result["signers"]
        verification_results = []
        for signer in signers:
            verification = self.ledger.verify_signature(document_hash, signer)
            if verification.success:
                verification_results.append({
                    "signer": signer,
                    "is_valid": verification["is_valid"],
                    "signed_at": _iso(verification["signed_at"]),
                    "document_active": verification["document_active"],
                    "error": None,
                })
            else:
                verification_results.append({
                    "signer": signer,
                    "is_valid": False,
                    "signed_at": None,
                    "document_active": False,
                    "error": verification.error,
                })

        valid_signatures = sum(1 for r in verification_results if r["is_valid"])
        return {
            "document_hash": document_hash,
            "is_fully_valid": valid_signatures == len(signers),
            "valid_signatures": valid_signatures,
            "total_signers": len(signers),
            "verification_results": verification_results,
            "verified_at": _now_iso(),
        }

    # ------------------------------------------------------------------ reads

    def get_document_status(self, document_hash: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        document = self.ledger.get_document(document_hash)
        if not document.success:
            if document.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(document)

        progress = self.ledger.get_signing_progress(document_hash)
        if not progress.success:
            raise self._error(progress)
        completion = self.ledger.is_document_fully_signed(document_hash)
        if not completion.success:
            raise self._error(completion)

        info = self.files.info(document_hash)
        return {
            "document_hash": document_hash,
            "creator": document["creator"],
            "created_at": _iso(document["created_at"]),
            "block_number": document["block_number"],
            "active": document["active"],
            "is_fully_signed": completion["is_fully_signed"],
            "total_signers": progress["total_signers"],
            "signed_count": progress["signed_count"],
            "percent_complete": progress["percent_complete"],
            "signers": [
                {"address": s["address"], "signed": s["signed"], "signed_at": _iso(s["timestamp"])}
                for s in progress["signatures"]
            ],
            "filename": info.get("filename"),
            "title": info.get("title"),
            "description": info.get("description"),
        }

    def get_required_signers(self, document_hash: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        result = self.ledger.get_required_signers(document_hash)
        if not result.success:
            if result.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(result)
        return {
            "document_hash": document_hash,
            "signers": result["signers"],
            "total_signers": len(result["signers"]),
        }

    def get_signatures(self, document_hash: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        progress = self.ledger.get_signing_progress(document_hash)
        if not progress.success:
            if progress.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(progress)

        signatures = []
        for signature in progress["signatures"]:
            ref = signature["signature_metadata"]
            signatures.append({
                "address": signature["address"],
                "signed": signature["signed"],
                "signed_at": _iso(signature["timestamp"]),
                "metadata_ref": ref or None,
                "metadata": self._fetch_metadata(ref),
            })

        return {
            "document_hash": document_hash,
            "total_signers": progress["total_signers"],
            "signed_count": progress["signed_count"],
            "percent_complete": progress["percent_complete"],
            "signatures": signatures,
        }

    def get_signature(self, document_hash: str, signer: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        signer = require_address(signer, "signer")
        result = self.ledger.get_signature_status(document_hash, signer)
        if not result.success:
            if result.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(
                    ErrorKind.NOT_FOUND, "Signature not found or document does not exist"
                )
            raise self._error(result)

        ref = result["signature_metadata"]
        return {
            "document_hash": document_hash,
            "signer": signer,
            "signed": result["signed"],
            "timestamp": result["timestamp"],
            "signed_at": _iso(result["timestamp"]),
            "metadata_ref": ref or None,
            "metadata": self._fetch_metadata(ref),
        }

    def _fetch_metadata(self, ref: str) -> Optional[Dict[str, Any]]:
        if not ref:
            return None
        try:
            return self.metadata_store.get_json(ref)
        except MetadataStoreError as e:
            logger.warning("Failed to fetch signature metadata %s: %s", ref, e)
            return None

    def get_user_documents(self, creator: str) -> Dict[str, Any]:
        creator = require_address(creator, "creator")
        result = self.ledger.get_user_documents(creator)
        if not result.success:
            raise self._error(result)
        return {"creator": creator, "documents": result["documents"], "total": len(result["documents"])}

    def estimate_costs(self, content: bytes, signers: List[Any]) -> Dict[str, Any]:
        validate_document_upload(content, None, self.settings.max_file_size)
        declared = validate_signers(signers, self.settings.max_signers)
        result = self.ledger.estimate_costs(content, declared)
        if not result.success:
            raise self._error(result)
        return result.data

    def download_document(self, document_hash: str) -> Tuple[bytes, Dict[str, Any]]:
        """Return the stored bytes, refusing to serve them if they no longer hash to the ledger id."""
        document_hash = require_document_hash(document_hash)
        document = self.ledger.get_document(document_hash)
        if not document.success:
            if document.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(document)

        loaded = self.files.load(document_hash)
        if loaded is None:
            raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document file is not available")
        content, info = loaded

        if self.ledger.hash_document(content) != document_hash:
            logger.error("Stored file for %s no longer matches its hash", document_hash)
            raise DocumentServiceError(ErrorKind.CONFLICT, "Integrity compromised: hash does not match")
        return content, info

    def revoke_document(self, document_hash: str, caller: str) -> Dict[str, Any]:
        document_hash = require_document_hash(document_hash)
        caller = require_address(caller, "caller")
        result = self.ledger.revoke_document(document_hash, caller)
        if not result.success:
            if result.error_kind is ErrorKind.NOT_FOUND:
                raise DocumentServiceError(ErrorKind.NOT_FOUND, "Document not found")
            raise self._error(result)
        return {
            "success": True,
            "document_hash": document_hash,
            "active": False,
            "transaction_hash": result["transaction_hash"],
            "block_number": result["block_number"],
            "revoked_at": _iso(result["revoked_at"]),
        }
