from .document_service import DocumentService
from .document_state_service import DocumentStateService, SigningAttempt, SigningRejected, SigningState
from .errors import DocumentServiceError, ErrorKind
from .file_store import DocumentFileStore
from .ledger_client import LedgerClient, LedgerResult, LedgerSubscription

__all__ = [
    'DocumentService', 'DocumentStateService', 'SigningAttempt', 'SigningRejected', 'SigningState',
    'DocumentServiceError', 'ErrorKind', 'DocumentFileStore', 'LedgerClient', 'LedgerResult',
    'LedgerSubscription',
]
