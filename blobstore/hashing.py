"""Content addressing for stored files.

A file's address is the SHA-256 digest of its exact bytes, hex encoded in
lowercase. Identical bytes always produce the same address.
"""

import hashlib
import re

HASH_LENGTH = 64

_ADDRESS_RE = re.compile(rf"[0-9a-f]{{{HASH_LENGTH}}}")


def content_address(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def is_content_address(value: str) -> bool:
    return bool(_ADDRESS_RE.fullmatch(value))
