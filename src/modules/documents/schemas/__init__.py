from .document_schemas import (
    CreateDocumentResponse, RevokeDocumentResponse, SignatureData, SignatureMetadata,
    SignDocumentResponse, SigningProgress, SignRequest, VerificationResult, VerifyDocumentResponse
)

__all__ = [
    'CreateDocumentResponse', 'RevokeDocumentResponse', 'SignatureData', 'SignatureMetadata',
    'SignDocumentResponse', 'SigningProgress', 'SignRequest', 'VerificationResult',
    'VerifyDocumentResponse',
]
