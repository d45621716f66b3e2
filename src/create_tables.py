# create_tables.py
import logging

from database import Base, engine
# Import every model so it registers with Base
from modules.auth.models import AuthNonce  # noqa: F401
from modules.ledger.models import LedgerDocument, LedgerEntry, LedgerHead, LedgerSigner  # noqa: F401

logger = logging.getLogger(__name__)


def create_tables(bind=None):
    """Create every table that does not exist yet"""
    logger.info("Tables: %s", list(Base.metadata.tables.keys()))
    Base.metadata.create_all(bind=bind or engine)


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
