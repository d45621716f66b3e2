from sqlalchemy import Column, Integer, String

from database import Base


class AuthNonce(Base):
    __tablename__ = "auth_nonces"

    id = Column(Integer, primary_key=True, index=True)
    address = Column(String(42), unique=True, index=True, nullable=False)
    nonce = Column(String(64), nullable=False)
    issued_at = Column(Integer, nullable=False)
    expires_at = Column(Integer, nullable=False, index=True)
