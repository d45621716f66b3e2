import time
from datetime import timedelta

from eth_account import Account
from eth_account.messages import encode_defunct

from modules.auth.models import AuthNonce
from modules.auth.services.auth_service import AuthService


def sign(account, message):
    return "0x" + bytes(account.sign_message(encode_defunct(text=message)).signature).hex()


def test_wallet_login_flow(client):
    account = Account.create()
    resp = client.post("/auth/nonce", json={"address": account.address.lower()})
    assert resp.status_code == 200
    challenge = resp.json()
    assert challenge["address"] == account.address
    assert challenge["nonce"] in challenge["message"]

    resp = client.post("/auth/login", json={
        "address": account.address,
        "signature": sign(account, challenge["message"]),
        "nonce": challenge["nonce"],
    })
    assert resp.status_code == 200, resp.text
    token = resp.json()["access_token"]

    me = client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.json()["address"] == account.address

    refreshed = client.post("/auth/refresh", headers={"Authorization": f"Bearer {token}"})
    assert refreshed.status_code == 200
    assert AuthService.verify_token(refreshed.json()["access_token"]) == account.address


def test_nonce_is_single_use(client):
    account = Account.create()
    challenge = client.post("/auth/nonce", json={"address": account.address}).json()
    body = {
        "address": account.address,
        "signature": sign(account, challenge["message"]),
        "nonce": challenge["nonce"],
    }
    assert client.post("/auth/login", json=body).status_code == 200
    assert client.post("/auth/login", json=body).status_code == 401


def test_signature_from_other_wallet_rejected(client):
    account, impostor = Account.create(), Account.create()
    challenge = client.post("/auth/nonce", json={"address": account.address}).json()
    resp = client.post("/auth/login", json={
        "address": account.address,
        "signature": sign(impostor, challenge["message"]),
        "nonce": challenge["nonce"],
    })
    assert resp.status_code == 401


def test_malformed_signature_rejected(client):
    account = Account.create()
    challenge = client.post("/auth/nonce", json={"address": account.address}).json()
    resp = client.post("/auth/login", json={
        "address": account.address, "signature": "0xdead", "nonce": challenge["nonce"],
    })
    assert resp.status_code == 401


def test_nonce_for_invalid_address(client):
    assert client.post("/auth/nonce", json={"address": "0x12"}).status_code == 400


def test_me_requires_token(client):
    assert client.get("/auth/me").status_code == 401


def test_expired_nonce_rejected_and_purged(session):
    account = Account.create()
    row = AuthService.create_nonce(session, account.address)
    message = AuthService.build_message(row.address, row.nonce, row.issued_at)
    row.expires_at = int(time.time()) - 1
    session.commit()

    assert AuthService.authenticate_wallet(session, account.address, sign(account, message), row.nonce) is None
    assert session.query(AuthNonce).count() == 0


def test_purge_expired_nonces(session):
    fresh = AuthService.create_nonce(session, Account.create().address)
    stale = AuthService.create_nonce(session, Account.create().address)
    stale.expires_at = int(time.time()) - 10
    session.commit()

    assert AuthService.purge_expired_nonces(session) == 1
    remaining = session.query(AuthNonce).all()
    assert [r.address for r in remaining] == [fresh.address]


def test_expired_token_rejected():
    token = AuthService.create_access_token(Account.create().address, expires_delta=timedelta(seconds=-1))
    assert AuthService.verify_token(token) is None
