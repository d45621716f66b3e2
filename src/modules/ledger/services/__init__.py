from .errors import LedgerRejection, RejectReason
from .gas import GasSchedule, format_ether
from .ledger_service import SignatureLedger
from .records import DocumentRecord, LedgerEvent, LedgerReceipt, SignatureRecord, VerificationRecord

__all__ = [
    'LedgerRejection', 'RejectReason', 'GasSchedule', 'format_ether', 'SignatureLedger',
    'DocumentRecord', 'LedgerEvent', 'LedgerReceipt', 'SignatureRecord', 'VerificationRecord',
]
