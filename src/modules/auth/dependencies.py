from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from modules.auth.services.auth_service import AuthService

security = HTTPBearer(auto_error=False)


def get_current_signer(credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)) -> str:
    """Dependency returning the checksum address of the authenticated wallet"""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    address = AuthService.verify_token(credentials.credentials)
    if address is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return address


def get_token_subject(request: Request) -> Optional[str]:
    """Address from a valid bearer token on the request, if there is one."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return AuthService.verify_token(token)
