"""Address and pagination helpers shared by the API and services."""

import re
from typing import Optional

_HEX_RE = re.compile(r"^[0-9a-f]*$")


def normalize_address(address: Optional[str]) -> str:
    """Return the storage form of a hex address: lowercase, no 0x prefix.

    Both EVM (20 byte) and Sui (32 byte) addresses are kept in this form in the
    database so that lookups don't depend on how a client cased or prefixed them.
    """
    if not address:
        return ""
    value = address.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    return value


def is_hex_address(address: Optional[str], length: Optional[int] = None) -> bool:
    """Check that an address is hex, optionally with an exact byte length."""
    value = normalize_address(address)
    if not value or not _HEX_RE.match(value):
        return False
    if length is not None and len(value) != length * 2:
        return False
    return True


def to_prefixed_address(address: str) -> str:
    """Return the 0x-prefixed lowercase form of an address."""
    return "0x" + normalize_address(address)


def page_offset(page: int, page_size: int) -> int:
    """Zero-based row offset for a 1-based page number."""
    return (page - 1) * page_size
