from typing import List, NamedTuple


class SignatureRecord(NamedTuple):
    signed: bool
    signed_at: int
    metadata_ref: str
    # False for an identity that was never declared as a signer
    required: bool = True


class VerificationRecord(NamedTuple):
    is_valid: bool
    signed_at: int
    document_active: bool
    found: bool = True


class DocumentRecord(NamedTuple):
    document_hash: str
    creator: str
    created_at: int
    active: bool
    signers: List[str]
    position: int


class LedgerReceipt(NamedTuple):
    transaction_hash: str
    position: int
    gas_used: int
    timestamp: int


class LedgerEvent(NamedTuple):
    kind: str
    document_hash: str
    actor: str
    position: int
    transaction_hash: str
    timestamp: int

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "document_hash": self.document_hash,
            "actor": self.actor,
            "block_number": self.position,
            "transaction_hash": self.transaction_hash,
            "timestamp": self.timestamp,
        }
