import json
import re
from typing import Any, List, Optional

from modules.documents.services.errors import DocumentServiceError, ErrorKind
from modules.ledger.services.identity import is_valid_identity, normalize_identity

DOCUMENT_HASH_RE = re.compile(r"^[a-fA-F0-9]{64}$")

MAX_FILENAME_LENGTH = 255
MAX_TITLE_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 1000


def is_valid_document_hash(value: Any) -> bool:
    return isinstance(value, str) and DOCUMENT_HASH_RE.match(value) is not None


def require_document_hash(value: str) -> str:
    if not is_valid_document_hash(value):
        raise DocumentServiceError(
            ErrorKind.INVALID_INPUT,
            "Invalid document hash format (must be 64-character hex string)",
            {"value": value},
        )
    return value.lower()


def require_address(value: str, field: str = "address") -> str:
    if not is_valid_identity(value):
        raise DocumentServiceError(
            ErrorKind.INVALID_INPUT, "Invalid Ethereum address format", {field: value}
        )
    return normalize_identity(value)


def parse_signers(raw: Optional[str]) -> List[Any]:
    """Decode the JSON array of signers sent as a multipart form field."""
    if raw is None or raw == "":
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "Signers array is required")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "Signers must be valid JSON array")
    if not isinstance(value, list):
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "Signers must be an array")
    return value


def validate_signers(signers: List[Any], max_signers: int) -> List[str]:
    """
    Check the shape of a signer list before it reaches the ledger.

    The list must be non-empty, at most `max_signers` long, contain only
    well-formed addresses and no duplicates (compared case-insensitively).
    Returns the checksum addresses in the given order.
    """
    if len(signers) == 0:
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "At least one signer is required")
    if len(signers) > max_signers:
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, f"Maximum {max_signers} signers allowed")

    errors = []
    invalid = []
    duplicates = []
    seen = set()
    normalized = []
    for i, address in enumerate(signers):
        if not isinstance(address, str):
            invalid.append(f"Index {i}: must be a string")
            continue
        if not is_valid_identity(address):
            invalid.append(f"Index {i}: invalid Ethereum address format")
            continue
        checksum = normalize_identity(address)
        if checksum in seen:
            duplicates.append(address)
        seen.add(checksum)
        normalized.append(checksum)

    if invalid:
        errors.append(f"Invalid signer addresses: {', '.join(invalid)}")
    if duplicates:
        errors.append(f"Duplicate signers found: {', '.join(duplicates)}")
    if errors:
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "Validation failed", {"errors": errors})
    return normalized


def validate_document_upload(content: bytes, filename: Optional[str], max_file_size: int,
                             title: Optional[str] = None, description: Optional[str] = None):
    errors = []
    if not content:
        errors.append("Document file is required")
    elif len(content) > max_file_size:
        errors.append(f"File size must be {max_file_size // (1024 * 1024)}MB or less")
    if filename and len(filename) > MAX_FILENAME_LENGTH:
        errors.append(f"Filename must be {MAX_FILENAME_LENGTH} characters or less")
    if title is not None and len(title) > MAX_TITLE_LENGTH:
        errors.append(f"Title must be {MAX_TITLE_LENGTH} characters or less")
    if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
        errors.append(f"Description must be {MAX_DESCRIPTION_LENGTH} characters or less")
    if errors:
        raise DocumentServiceError(ErrorKind.INVALID_INPUT, "Validation failed", {"errors": errors})


def validate_signature_metadata(metadata: Optional[dict], max_bytes: int):
    """Serialized signature metadata must fit in `max_bytes`."""
    if not metadata:
        return
    size = len(json.dumps(metadata).encode("utf-8"))
    if size > max_bytes:
        raise DocumentServiceError(
            ErrorKind.INVALID_INPUT,
            f"Signature metadata too large (max {max_bytes} bytes)",
            {"size": size},
        )
