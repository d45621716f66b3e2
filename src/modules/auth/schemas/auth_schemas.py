from typing import Optional

from pydantic import BaseModel, Field


class NonceRequest(BaseModel):
    address: str


class NonceResponse(BaseModel):
    address: str
    nonce: str
    message: str
    expires_at: int


class LoginRequest(BaseModel):
    address: str
    signature: str
    nonce: str


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    address: str
    expires_in: int = Field(description="Token lifetime in seconds")


class SignerResponse(BaseModel):
    address: str
    token_type: Optional[str] = None
