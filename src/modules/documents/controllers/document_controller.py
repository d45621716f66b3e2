from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile, status

from modules.auth.dependencies import get_current_signer
from modules.documents.dependencies import get_document_service
from modules.documents.schemas import CreateDocumentResponse, RevokeDocumentResponse
from modules.documents.services import DocumentService
from modules.documents.services.validation import parse_signers

router = APIRouter(
    prefix="/documents",
    tags=["documents"]
)


@router.post("", response_model=CreateDocumentResponse, status_code=status.HTTP_201_CREATED)
def create_document(
    file: UploadFile = File(...),
    signers: str = Form(...),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    creator: str = Depends(get_current_signer),
    service: DocumentService = Depends(get_document_service),
):
    """Register an uploaded document and the ordered list of wallets that must sign it"""
    content = file.file.read()
    return service.create_document(
        content=content,
        filename=file.filename,
        content_type=file.content_type,
        signers=parse_signers(signers),
        creator=creator,
        title=title,
        description=description,
    )


@router.post("/estimate-cost")
def estimate_cost(
    file: UploadFile = File(...),
    signers: str = Form(...),
    service: DocumentService = Depends(get_document_service),
):
    return service.estimate_costs(file.file.read(), parse_signers(signers))


@router.get("/creators/{address}")
def list_creator_documents(address: str, service: DocumentService = Depends(get_document_service)):
    return service.get_user_documents(address)


@router.get("/{document_hash}")
def get_document(document_hash: str, service: DocumentService = Depends(get_document_service)):
    return service.get_document_status(document_hash)


@router.get("/{document_hash}/signers")
def get_document_signers(document_hash: str, service: DocumentService = Depends(get_document_service)):
    return service.get_required_signers(document_hash)


@router.get("/{document_hash}/download")
def download_document(document_hash: str, service: DocumentService = Depends(get_document_service)):
    """Return the stored file only if it still hashes to its ledger id"""
    content, info = service.download_document(document_hash)
    filename = info.get("filename") or f"{document_hash}.bin"
    return Response(
        content=content,
        media_type=info.get("content_type") or "application/octet-stream",
        headers={"Content-Disposition": _content_disposition(filename)},
    )


@router.post("/{document_hash}/revoke", response_model=RevokeDocumentResponse)
def revoke_document(
    document_hash: str,
    caller: str = Depends(get_current_signer),
    service: DocumentService = Depends(get_document_service),
):
    return service.revoke_document(document_hash, caller)


def _content_disposition(filename: str) -> str:
    """Quoted ASCII name, plus an RFC 5987 `filename*` when the original does not survive quoting."""
    fallback = "".join(
        c for c in filename.encode("ascii", "ignore").decode("ascii")
        if c.isprintable() and c not in '"\\;'
    ) or "document"
    if fallback == filename:
        return f'attachment; filename="{filename}"'
    return f"attachment; filename=\"{fallback}\"; filename*=utf-8''{quote(filename, safe='')}"
