import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from config import settings
from database import get_db
from modules.auth.dependencies import get_current_signer
from modules.auth.schemas import LoginRequest, NonceRequest, NonceResponse, SignerResponse, TokenResponse
from modules.auth.services.auth_service import TOKEN_TYPE, AuthService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["authentication"])


def _token_response(address: str) -> TokenResponse:
    expires = timedelta(minutes=settings.access_token_expire_minutes)
    return TokenResponse(
        access_token=AuthService.create_access_token(address, expires_delta=expires),
        token_type="bearer",
        address=address,
        expires_in=int(expires.total_seconds()),
    )


@router.post("/nonce", response_model=NonceResponse)
def request_nonce(body: NonceRequest, db: Session = Depends(get_db)):
    """Issue a one-time nonce and the exact message the wallet must sign"""
    try:
        row = AuthService.create_nonce(db, body.address)
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Ethereum address format")

    return NonceResponse(
        address=row.address,
        nonce=row.nonce,
        message=AuthService.build_message(row.address, row.nonce, row.issued_at),
        expires_at=row.expires_at,
    )


@router.post("/login", response_model=TokenResponse)
def login(body: LoginRequest, db: Session = Depends(get_db)):
    """Exchange a signed nonce message for a bearer token"""
    address = AuthService.authenticate_wallet(db, body.address, body.signature, body.nonce)
    if address is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid signature or nonce",
            headers={"WWW-Authenticate": "Bearer"},
        )
    logger.info("Wallet %s authenticated", address)
    return _token_response(address)


@router.post("/refresh", response_model=TokenResponse)
def refresh(address: str = Depends(get_current_signer)):
    return _token_response(address)


@router.get("/me", response_model=SignerResponse)
def me(address: str = Depends(get_current_signer)):
    return SignerResponse(address=address, token_type=TOKEN_TYPE)
