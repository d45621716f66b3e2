from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class SignatureMetadata(BaseModel):
    """Free-form signing context; the listed fields are typed when present."""
    model_config = ConfigDict(extra="allow")

    reason: Optional[str] = None
    location: Optional[str] = None
    timestamp: Optional[str] = None


class SignatureData(BaseModel):
    r: str
    s: str
    v: int


class SignRequest(BaseModel):
    signature_metadata: Optional[SignatureMetadata] = None
    signature_data: Optional[SignatureData] = None

    def metadata_dict(self) -> Optional[Dict[str, Any]]:
        if self.signature_metadata is None:
            return None
        return self.signature_metadata.model_dump(exclude_none=True)

    def data_dict(self) -> Optional[Dict[str, Any]]:
        if self.signature_data is None:
            return None
        return self.signature_data.model_dump()


class SigningProgress(BaseModel):
    signed_count: int
    total_signers: int
    percent_complete: int


class CreateDocumentResponse(BaseModel):
    success: bool
    document_hash: str
    transaction_hash: str
    block_number: int
    gas_used: int
    created_at: Optional[str] = None
    creator: str
    signers: List[str]
    title: Optional[str] = None
    description: Optional[str] = None
    file_stored: bool


class SignDocumentResponse(BaseModel):
    success: bool
    state: str
    transaction_hash: str
    block_number: int
    gas_used: int
    signer: str
    signed_at: Optional[str] = None
    metadata_ref: Optional[str] = None
    is_document_complete: bool
    signing_progress: SigningProgress


class VerificationResult(BaseModel):
    signer: str
    is_valid: bool
    signed_at: Optional[str] = None
    document_active: bool
    error: Optional[str] = None


class VerifyDocumentResponse(BaseModel):
    document_hash: str
    is_fully_valid: bool
    valid_signatures: int
    total_signers: int
    verification_results: List[VerificationResult]
    verified_at: str


class RevokeDocumentResponse(BaseModel):
    success: bool
    document_hash: str
    active: bool
    transaction_hash: str
    block_number: int
    revoked_at: Optional[str] = None
