import json

import httpx
import pytest

from modules.metadata.services import (
    InMemoryMetadataStore, IPFSMetadataStore, MetadataStore, MetadataStoreError
)


def make_store(handler, provider="pinata", **kwargs):
    client = httpx.Client(transport=httpx.MockTransport(handler))
    kwargs.setdefault("pinata_api_key", "key")
    kwargs.setdefault("pinata_secret_key", "secret")
    return IPFSMetadataStore(provider, gateway_url="https://gateway.test/ipfs", client=client, **kwargs)


def test_in_memory_store_is_content_addressed():
    store = InMemoryMetadataStore()
    ref = store.put_json({"b": 1, "a": 2})
    assert ref == store.put_json({"a": 2, "b": 1})
    assert store.get_json(ref) == {"a": 2, "b": 1}
    with pytest.raises(MetadataStoreError):
        store.get("sha256:unknown")


def test_pinata_upload_and_gateway_read():
    seen = []

    def handler(request: httpx.Request):
        seen.append(request)
        if request.url.path == "/pinning/pinFileToIPFS":
            return httpx.Response(200, json={"IpfsHash": "QmTest"})
        if request.url.path == "/ipfs/QmTest":
            return httpx.Response(200, content=json.dumps({"reason": "ok"}).encode())
        return httpx.Response(404)

    store = make_store(handler)
    assert store.put_json({"reason": "ok"}) == "QmTest"
    assert seen[0].headers["pinata_api_key"] == "key"
    assert store.get_json("QmTest") == {"reason": "ok"}


def test_local_node_upload():
    def handler(request: httpx.Request):
        assert request.url.path == "/api/v0/add"
        return httpx.Response(200, json={"Hash": "QmLocal"})

    store = make_store(handler, provider="local", node_url="http://ipfs.test:5001/api/v0")
    assert store.put(b"data") == "QmLocal"


def test_failures_raise_store_error():
    store = make_store(lambda request: httpx.Response(500))
    with pytest.raises(MetadataStoreError):
        store.put(b"data")
    with pytest.raises(MetadataStoreError):
        store.get("QmMissing")
    assert store.ping() is False


def test_missing_credentials():
    store = make_store(lambda request: httpx.Response(200), pinata_api_key=None)
    with pytest.raises(MetadataStoreError):
        store.put(b"data")


def test_unsupported_provider():
    with pytest.raises(ValueError):
        IPFSMetadataStore("filecoin", gateway_url="https://gateway.test")


@pytest.mark.parametrize("body", [["unexpected"], "ok", {"IpfsHash": None}, {}])
def test_malformed_upload_response_raises_store_error(body):
    store = make_store(lambda request: httpx.Response(200, json=body))
    with pytest.raises(MetadataStoreError):
        store.put(b"data")


def test_incomplete_backend_cannot_be_instantiated():
    class WriteOnlyStore(MetadataStore):
        def put(self, data, name="metadata.json"):
            return "ref"

    with pytest.raises(TypeError):
        WriteOnlyStore()
