"""
Projected resource cost of ledger mutations.

Costs are expressed in gas units and priced the way an EVM contract storing
the same records would be: a fixed per-call base, calldata bytes, newly
written storage words, slot reads done by the signer scan, and one log entry
per mutation.
"""
from decimal import Decimal
from typing import Iterable, List

WEI_PER_GWEI = Decimal(10) ** 9
WEI_PER_ETHER = Decimal(10) ** 18


class GasSchedule:
    TX_BASE = 21_000
    CALLDATA_ZERO_BYTE = 4
    CALLDATA_NONZERO_BYTE = 16
    STORAGE_WORD = 20_000
    STORAGE_UPDATE = 5_000
    SLOT_READ = 2_100
    LOG_BASE = 375
    LOG_TOPIC = 375
    LOG_BYTE = 8

    def calldata_cost(self, payload: bytes) -> int:
        zeros = payload.count(0)
        return zeros * self.CALLDATA_ZERO_BYTE + (len(payload) - zeros) * self.CALLDATA_NONZERO_BYTE

    @staticmethod
    def string_words(value: str) -> int:
        """Storage words taken by a string: one length word plus its data words."""
        size = len(value.encode("utf-8"))
        return 1 + (size + 31) // 32

    @staticmethod
    def encode_addresses(addresses: Iterable[str]) -> bytes:
        # ABI encoding left-pads each 20-byte address to a 32-byte word
        return b"".join(b"\x00" * 12 + bytes.fromhex(a[2:]) for a in addresses)

    def log_cost(self, topics: int, data_bytes: int) -> int:
        return self.LOG_BASE + topics * self.LOG_TOPIC + data_bytes * self.LOG_BYTE

    def create_document_cost(self, document_hash: str, signers: List[str]) -> int:
        calldata = document_hash.encode("utf-8") + self.encode_addresses(signers)
        # hash string, creator, createdAt, active flag, signer array length,
        # one slot per signer, one push onto the creator index
        words = self.string_words(document_hash) + 4 + len(signers) + 1
        return (
            self.TX_BASE
            + self.calldata_cost(calldata)
            + words * self.STORAGE_WORD
            + self.log_cost(topics=2, data_bytes=32)
        )

    def sign_document_cost(self, document_hash: str, metadata_ref: str, slot: int) -> int:
        calldata = document_hash.encode("utf-8") + metadata_ref.encode("utf-8")
        # existence + active check, then the scan up to and including the match
        reads = 1 + slot + 1
        words = 2  # signed flag, timestamp
        if metadata_ref:
            words += self.string_words(metadata_ref)
        return (
            self.TX_BASE
            + self.calldata_cost(calldata)
            + reads * self.SLOT_READ
            + words * self.STORAGE_WORD
            + self.log_cost(topics=2, data_bytes=32)
        )

    def revoke_document_cost(self, document_hash: str) -> int:
        return (
            self.TX_BASE
            + self.calldata_cost(document_hash.encode("utf-8"))
            + 2 * self.SLOT_READ
            + self.STORAGE_UPDATE
            + self.log_cost(topics=2, data_bytes=32)
        )


def format_ether(gas: int, gas_price_gwei: float) -> str:
    """Price `gas` units at `gas_price_gwei` and render the total in ether."""
    wei = Decimal(gas) * Decimal(str(gas_price_gwei)) * WEI_PER_GWEI
    ether = wei / WEI_PER_ETHER
    return format(ether.normalize(), "f")
