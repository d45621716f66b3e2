from functools import lru_cache

from fastapi import Depends

from config import Settings, get_settings
from database import SessionLocal
from modules.documents.services import DocumentFileStore, DocumentService, LedgerClient
from modules.metadata.services import MetadataStore, build_metadata_store


def get_session_factory():
    return SessionLocal


@lru_cache()
def get_metadata_store() -> MetadataStore:
    return build_metadata_store(get_settings())


def get_ledger_client(session_factory=Depends(get_session_factory),
                      settings: Settings = Depends(get_settings)) -> LedgerClient:
    return LedgerClient(session_factory, settings=settings)


def get_file_store(settings: Settings = Depends(get_settings)) -> DocumentFileStore:
    return DocumentFileStore(settings.upload_dir)


def get_document_service(ledger: LedgerClient = Depends(get_ledger_client),
                         metadata_store: MetadataStore = Depends(get_metadata_store),
                         file_store: DocumentFileStore = Depends(get_file_store),
                         settings: Settings = Depends(get_settings)) -> DocumentService:
    return DocumentService(ledger, metadata_store, file_store, settings)
