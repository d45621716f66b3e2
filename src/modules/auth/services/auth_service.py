import logging
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from config import settings
from modules.auth.models import AuthNonce
from modules.ledger.services.identity import normalize_identity

logger = logging.getLogger(__name__)

TOKEN_TYPE = "wallet_auth"


class AuthService:

    @staticmethod
    def build_message(address: str, nonce: str, issued_at: int) -> str:
        """Text the wallet signs; rebuilt from the stored nonce row at login."""
        issued = datetime.fromtimestamp(issued_at, tz=timezone.utc).isoformat()
        return (
            "Sign this message to authenticate with the document signing service.\n\n"
            f"Address: {address}\n"
            f"Nonce: {nonce}\n"
            f"Issued At: {issued}"
        )

    @staticmethod
    def create_nonce(db: Session, address: str) -> AuthNonce:
        """Issue a fresh nonce for `address`, replacing any outstanding one."""
        address = normalize_identity(address)
        now = int(time.time())

        db.query(AuthNonce).filter(AuthNonce.address == address).delete(synchronize_session=False)
        row = AuthNonce(
            address=address,
            nonce=secrets.token_hex(16),
            issued_at=now,
            expires_at=now + settings.nonce_ttl_seconds,
        )
        db.add(row)
        db.commit()
        db.refresh(row)
        return row

    @staticmethod
    def recover_signer(message: str, signature: str) -> Optional[str]:
        try:
            recovered = Account.recover_message(encode_defunct(text=message), signature=signature)
        except Exception as e:
            logger.info("Could not recover signer from signature: %s", e)
            return None
        return normalize_identity(recovered)

    @staticmethod
    def authenticate_wallet(db: Session, address: str, signature: str, nonce: str) -> Optional[str]:
        """
        Check a signed login message.

        The nonce must be the one issued to `address` and still unexpired, and
        the signature must recover to `address`. On success the nonce is
        consumed and the checksum address is returned.
        """
        try:
            address = normalize_identity(address)
        except ValueError:
            return None

        row = db.query(AuthNonce).filter(AuthNonce.address == address).first()
        if row is None or row.nonce != nonce:
            logger.info("Login rejected for %s: unknown nonce", address)
            return None
        if row.expires_at < int(time.time()):
            logger.info("Login rejected for %s: nonce expired", address)
            db.delete(row)
            db.commit()
            return None

        message = AuthService.build_message(row.address, row.nonce, row.issued_at)
        recovered = AuthService.recover_signer(message, signature)
        if recovered != address:
            logger.info("Login rejected for %s: signature does not match", address)
            return None

        db.delete(row)
        db.commit()
        return address

    @staticmethod
    def purge_expired_nonces(db: Session) -> int:
        now = int(time.time())
        deleted = db.query(AuthNonce).filter(AuthNonce.expires_at < now).delete(synchronize_session=False)
        db.commit()
        if deleted:
            logger.info("Purged %d expired login nonces", deleted)
        return deleted

    @staticmethod
    def create_access_token(address: str, expires_delta: Optional[timedelta] = None) -> str:
        """Create a signed JWT for a wallet address."""
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
        )
        to_encode = {"sub": address, "type": TOKEN_TYPE, "exp": expire}
        return jwt.encode(to_encode, settings.jwt_secret, algorithm=settings.jwt_algorithm)

    @staticmethod
    def verify_token(token: str) -> Optional[str]:
        """Verify a JWT and return the checksum address it was issued to."""
        try:
            payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
        except JWTError:
            return None
        if payload.get("type") != TOKEN_TYPE:
            return None
        address = payload.get("sub")
        if address is None:
            return None
        try:
            return normalize_identity(address)
        except ValueError:
            return None
