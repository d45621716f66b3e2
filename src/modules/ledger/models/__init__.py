from .ledger_document import LedgerDocument, LedgerSigner
from .ledger_event import LedgerEntry, LedgerEventKind, LedgerHead

__all__ = ['LedgerDocument', 'LedgerSigner', 'LedgerEntry', 'LedgerEventKind', 'LedgerHead']
