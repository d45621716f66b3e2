# src/modules/ledger/models/ledger_document.py
from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import relationship

from database import Base


class LedgerDocument(Base):
    __tablename__ = "ledger_documents"

    id = Column(Integer, primary_key=True)
    document_hash = Column(String(64), unique=True, nullable=False, index=True)
    creator = Column(String(42), nullable=False, index=True)
    created_at = Column(Integer, nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    position = Column(Integer, nullable=False)

    # Declared signers, in the order given at creation
    signers = relationship(
        "LedgerSigner",
        back_populates="document",
        order_by="LedgerSigner.slot",
        cascade="all, delete-orphan",
    )


class LedgerSigner(Base):
    """One declared signer of a document together with its signature state."""

    __tablename__ = "ledger_signers"
    __table_args__ = (
        UniqueConstraint("document_id", "slot", name="uq_ledger_signer_slot"),
    )

    id = Column(Integer, primary_key=True)
    document_id = Column(Integer, ForeignKey("ledger_documents.id"), nullable=False)
    slot = Column(Integer, nullable=False)
    address = Column(String(42), nullable=False)
    signed = Column(Boolean, nullable=False, default=False)
    signed_at = Column(Integer, nullable=False, default=0)
    metadata_ref = Column(String(255), nullable=False, default="")

    document = relationship("LedgerDocument", back_populates="signers")
