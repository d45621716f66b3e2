from .metadata_store import (
    InMemoryMetadataStore, IPFSMetadataStore, MetadataStore, MetadataStoreError, build_metadata_store
)

__all__ = [
    'InMemoryMetadataStore', 'IPFSMetadataStore', 'MetadataStore', 'MetadataStoreError',
    'build_metadata_store',
]
