from enum import Enum


class RejectReason(Enum):
    """Machine-readable reasons a ledger call can be rejected with."""
    DOCUMENT_EXISTS = "document-exists"
    EMPTY_SIGNERS = "empty-signers"
    INVALID_IDENTITY = "invalid-identity"
    DOCUMENT_MISSING = "document-missing"
    DOCUMENT_INACTIVE = "document-inactive"
    NOT_AUTHORIZED = "not-authorized"
    ALREADY_SIGNED = "already-signed"
    NOT_CREATOR = "not-creator"
    OUT_OF_GAS = "out-of-gas"


class LedgerRejection(Exception):
    """A ledger call was rejected; no state was changed."""

    def __init__(self, reason: RejectReason, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message

    def __repr__(self) -> str:
        return f"LedgerRejection({self.reason.value}: {self.message})"
