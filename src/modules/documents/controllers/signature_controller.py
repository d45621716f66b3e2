from typing import Optional

from fastapi import APIRouter, Depends

from modules.auth.dependencies import get_current_signer
from modules.documents.dependencies import get_document_service
from modules.documents.schemas import SignDocumentResponse, SignRequest, VerifyDocumentResponse
from modules.documents.services import DocumentService

router = APIRouter(
    prefix="/signatures",
    tags=["signatures"]
)


@router.post("/{document_hash}/sign", response_model=SignDocumentResponse)
def sign_document(
    document_hash: str,
    body: Optional[SignRequest] = None,
    signer: str = Depends(get_current_signer),
    service: DocumentService = Depends(get_document_service),
):
    """
    Record the authenticated wallet's signature.

    Optional metadata is stored off-ledger and referenced from the signature;
    if the metadata store is down the signature is recorded without it.
    """
    body = body or SignRequest()
    return service.sign_document(
        document_hash,
        signer,
        signature_metadata=body.metadata_dict(),
        signature_data=body.data_dict(),
    )


@router.get("/{document_hash}")
def get_signatures(document_hash: str, service: DocumentService = Depends(get_document_service)):
    return service.get_signatures(document_hash)


@router.get("/{document_hash}/{signer}")
def get_signature(document_hash: str, signer: str, service: DocumentService = Depends(get_document_service)):
    return service.get_signature(document_hash, signer)


@router.post("/{document_hash}/verify", response_model=VerifyDocumentResponse)
def verify_document(document_hash: str, service: DocumentService = Depends(get_document_service)):
    return service.verify_document(document_hash)
