# src/modules/metadata/services/metadata_store.py
import hashlib
import json
import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from config import Settings

logger = logging.getLogger(__name__)


class MetadataStoreError(Exception):
    """The off-ledger store could not be reached or refused the request."""
    pass


class MetadataStore(ABC):
    """Content-addressed put/get store for auxiliary signature metadata."""

    @abstractmethod
    def put(self, data: bytes, name: str = "metadata.json") -> str:
        ...

    @abstractmethod
    def get(self, ref: str) -> bytes:
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...

    def put_json(self, obj: Dict[str, Any], name: str = "metadata.json") -> str:
        data = json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return self.put(data, name=name)

    def get_json(self, ref: str) -> Dict[str, Any]:
        raw = self.get(ref)
        try:
            return json.loads(raw)
        except ValueError as e:
            raise MetadataStoreError(f"Stored object {ref} is not JSON: {e}")


class InMemoryMetadataStore(MetadataStore):
    """Process-local store addressed by the SHA-256 of the content."""

    def __init__(self):
        self._objects: Dict[str, bytes] = {}
        self._lock = threading.Lock()

    def put(self, data: bytes, name: str = "metadata.json") -> str:
        ref = "sha256:" + hashlib.sha256(data).hexdigest()
        with self._lock:
            self._objects[ref] = data
        return ref

    def get(self, ref: str) -> bytes:
        with self._lock:
            data = self._objects.get(ref)
        if data is None:
            raise MetadataStoreError(f"Unknown reference {ref}")
        return data

    def ping(self) -> bool:
        return True


class IPFSMetadataStore(MetadataStore):
    """
    IPFS-backed store, either through the Pinata pinning API or a local node.

    Reads go through an HTTP gateway. Every transport or protocol failure is
    reported as `MetadataStoreError`.
    """

    def __init__(self, provider: str, gateway_url: str, pinata_api_key: Optional[str] = None,
                 pinata_secret_key: Optional[str] = None,
                 pinata_base_url: str = "https://api.pinata.cloud",
                 node_url: str = "http://localhost:5001/api/v0",
                 timeout: float = 10.0, client: Optional[httpx.Client] = None):
        if provider not in ("pinata", "local"):
            raise ValueError(f"Unsupported IPFS provider: {provider}")
        self.provider = provider
        self.gateway_url = gateway_url.rstrip("/")
        self.pinata_api_key = pinata_api_key
        self.pinata_secret_key = pinata_secret_key
        self.pinata_base_url = pinata_base_url.rstrip("/")
        self.node_url = node_url.rstrip("/")
        self.client = client or httpx.Client(timeout=timeout)

    def _pinata_headers(self) -> Dict[str, str]:
        if not self.pinata_api_key or not self.pinata_secret_key:
            raise MetadataStoreError("Pinata API credentials not configured")
        return {
            "pinata_api_key": self.pinata_api_key,
            "pinata_secret_api_key": self.pinata_secret_key,
        }

    def put(self, data: bytes, name: str = "metadata.json") -> str:
        try:
            if self.provider == "pinata":
                response = self.client.post(
                    f"{self.pinata_base_url}/pinning/pinFileToIPFS",
                    files={"file": (name, data)},
                    data={"pinataMetadata": json.dumps({"name": name})},
                    headers=self._pinata_headers(),
                )
                response.raise_for_status()
                return self._content_id(response, "IpfsHash")

            response = self.client.post(f"{self.node_url}/add", files={"file": (name, data)})
            response.raise_for_status()
            return self._content_id(response, "Hash")
        except httpx.HTTPError as e:
            raise MetadataStoreError(f"Failed to upload to IPFS: {e}")

    @staticmethod
    def _content_id(response: httpx.Response, field: str) -> str:
        try:
            body = response.json()
        except ValueError as e:
            raise MetadataStoreError(f"Unexpected IPFS response: {e}")
        if not isinstance(body, dict) or not isinstance(body.get(field), str) or not body[field]:
            raise MetadataStoreError(f"Unexpected IPFS response: no {field} in {body!r}")
        return body[field]

    def get(self, ref: str) -> bytes:
        try:
            response = self.client.get(f"{self.gateway_url}/{ref}")
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise MetadataStoreError(f"Failed to fetch {ref} from IPFS: {e}")
        return response.content

    def ping(self) -> bool:
        try:
            if self.provider == "pinata":
                response = self.client.get(
                    f"{self.pinata_base_url}/data/testAuthentication",
                    headers=self._pinata_headers(),
                )
            else:
                response = self.client.post(f"{self.node_url}/version")
            return response.status_code == 200
        except (httpx.HTTPError, MetadataStoreError) as e:
            logger.warning("IPFS ping failed: %s", e)
            return False


def build_metadata_store(settings: Settings) -> MetadataStore:
    if settings.metadata_store == "memory":
        return InMemoryMetadataStore()
    return IPFSMetadataStore(
        provider=settings.metadata_store,
        gateway_url=settings.ipfs_gateway_url,
        pinata_api_key=settings.pinata_api_key,
        pinata_secret_key=settings.pinata_secret_key,
        pinata_base_url=settings.pinata_base_url,
        node_url=settings.ipfs_node_url,
        timeout=settings.metadata_timeout_seconds,
    )
