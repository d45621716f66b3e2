# src/modules/ledger/models/ledger_event.py
from enum import Enum as PyEnum

from sqlalchemy import Column, Enum, Integer, String

from database import Base


class LedgerEventKind(PyEnum):
    DOCUMENT_CREATED = "DocumentCreated"
    DOCUMENT_SIGNED = "DocumentSigned"
    DOCUMENT_REVOKED = "DocumentRevoked"


class LedgerEntry(Base):
    """Append log of the ledger; the id is the ledger position, assigned from `LedgerHead`."""

    __tablename__ = "ledger_events"

    id = Column(Integer, primary_key=True, autoincrement=False)
    kind = Column(Enum(LedgerEventKind), nullable=False)
    document_hash = Column(String(64), nullable=False, index=True)
    actor = Column(String(42), nullable=False)
    transaction_hash = Column(String(66), nullable=False, unique=True)
    gas_used = Column(Integer, nullable=False)
    timestamp = Column(Integer, nullable=False)


class LedgerHead(Base):
    """
    Single row holding the last assigned position.

    Every mutation locks this row before it appends, so entries commit in
    position order and a reader never sees position N+1 before N.
    """

    __tablename__ = "ledger_head"

    HEAD_ID = 1

    id = Column(Integer, primary_key=True, autoincrement=False)
    position = Column(Integer, nullable=False, default=0)
