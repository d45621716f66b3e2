from eth_utils import is_address, to_checksum_address


def is_valid_identity(value) -> bool:
    return isinstance(value, str) and value.startswith("0x") and is_address(value)


def normalize_identity(value: str) -> str:
    """Return the EIP-55 checksum form of an address; raises ValueError if malformed."""
    if not is_valid_identity(value):
        raise ValueError(f"Invalid address: {value!r}")
    return to_checksum_address(value)
