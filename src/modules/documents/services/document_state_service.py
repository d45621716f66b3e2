import logging
from enum import Enum
from typing import Any, Dict, Optional

from modules.documents.services.errors import DocumentServiceError, ErrorKind
from modules.ledger.services import RejectReason

logger = logging.getLogger(__name__)


class SigningState(Enum):
    UNSIGNED = "unsigned"
    SIGNING_IN_FLIGHT = "signing-in-flight"
    SIGNED = "signed"
    REJECTED = "rejected"


class RejectionReason(Enum):
    NOT_AUTHORIZED = "not-authorized"
    ALREADY_SIGNED = "already-signed"
    DOCUMENT_MISSING = "document-missing"
    DOCUMENT_INACTIVE = "document-inactive"


REJECTION_KINDS = {
    RejectionReason.NOT_AUTHORIZED: ErrorKind.UNAUTHORIZED,
    RejectionReason.ALREADY_SIGNED: ErrorKind.CONFLICT,
    RejectionReason.DOCUMENT_MISSING: ErrorKind.NOT_FOUND,
    RejectionReason.DOCUMENT_INACTIVE: ErrorKind.CONFLICT,
}

REJECTION_MESSAGES = {
    RejectionReason.NOT_AUTHORIZED: "Not authorized to sign this document",
    RejectionReason.ALREADY_SIGNED: "Document already signed by this address",
    RejectionReason.DOCUMENT_MISSING: "Document not found",
    RejectionReason.DOCUMENT_INACTIVE: "Document has been revoked",
}

# Ledger rejections of the signing call that correspond to a rejected attempt
LEDGER_REJECTIONS = {
    RejectReason.NOT_AUTHORIZED: RejectionReason.NOT_AUTHORIZED,
    RejectReason.ALREADY_SIGNED: RejectionReason.ALREADY_SIGNED,
    RejectReason.DOCUMENT_MISSING: RejectionReason.DOCUMENT_MISSING,
    RejectReason.DOCUMENT_INACTIVE: RejectionReason.DOCUMENT_INACTIVE,
}


class SigningRejected(DocumentServiceError):
    """A signing attempt ended in the rejected state."""

    def __init__(self, reason: RejectionReason, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            REJECTION_KINDS[reason],
            REJECTION_MESSAGES[reason],
            {"reason": reason.value, **(details or {})},
        )
        self.reason = reason


class DocumentStateService:

    TRANSITIONS = {
        SigningState.UNSIGNED: {SigningState.SIGNING_IN_FLIGHT, SigningState.REJECTED},
        SigningState.SIGNING_IN_FLIGHT: {SigningState.SIGNED, SigningState.REJECTED},
        SigningState.SIGNED: set(),
        SigningState.REJECTED: set(),
    }

    @staticmethod
    def can_change_state(current: SigningState, new_state: SigningState) -> bool:
        return new_state in DocumentStateService.TRANSITIONS[current]

    @staticmethod
    def get_allowed_transitions(current: SigningState) -> list:
        return sorted(DocumentStateService.TRANSITIONS[current], key=lambda s: s.value)


class SigningAttempt:
    """State of one (document, signer) pair while a signing request is processed."""

    def __init__(self, document_hash: str, signer: str):
        self.document_hash = document_hash
        self.signer = signer
        self.state = SigningState.UNSIGNED
        self.reason: Optional[RejectionReason] = None

    def advance(self, new_state: SigningState):
        if not DocumentStateService.can_change_state(self.state, new_state):
            raise RuntimeError(
                f"Signing of {self.document_hash} by {self.signer} cannot go "
                f"from {self.state.value} to {new_state.value}"
            )
        logger.debug("Signing %s by %s: %s -> %s",
                     self.document_hash, self.signer, self.state.value, new_state.value)
        self.state = new_state

    def reject(self, reason: RejectionReason, details: Optional[Dict[str, Any]] = None):
        self.advance(SigningState.REJECTED)
        self.reason = reason
        logger.info("Signing of %s by %s rejected: %s", self.document_hash, self.signer, reason.value)
        raise SigningRejected(reason, details)
