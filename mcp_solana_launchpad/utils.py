"""
Checked arithmetic and small shared helpers.

All reserve and balance arithmetic goes through these helpers: values are u64 on
the ledger and products are computed in a u128-wide intermediate. Any result that
leaves its range raises MathOverflowError instead of wrapping.
"""
from typing import Iterable, List, Optional

from solders.pubkey import Pubkey

from mcp_solana_launchpad.errors import MathOverflowError, NotAuthorizedError

U16_MAX = 2**16 - 1
U64_MAX = 2**64 - 1
U128_MAX = 2**128 - 1


def checked_add(a: int, b: int, limit: int = U64_MAX) -> int:
    result = a + b
    if result > limit:
        raise MathOverflowError(f"Mathematical operation overflow: {a} + {b}")
    return result


def checked_sub(a: int, b: int) -> int:
    if b > a:
        raise MathOverflowError(f"Mathematical operation underflow: {a} - {b}")
    return a - b


def checked_mul(a: int, b: int, limit: int = U128_MAX) -> int:
    result = a * b
    if result > limit:
        raise MathOverflowError(f"Mathematical operation overflow: {a} * {b}")
    return result


def checked_div(a: int, b: int) -> int:
    """Floor (truncating) division of non-negative integers."""
    if b == 0:
        raise MathOverflowError("Division by zero")
    return a // b


def to_u64(value: int) -> int:
    if value < 0 or value > U64_MAX:
        raise MathOverflowError(f"Value {value} does not fit in u64")
    return value


def checked_sum(values: Iterable[int], limit: int = U64_MAX) -> int:
    total = 0
    for value in values:
        total = checked_add(total, value, limit)
    return total


def check_authority(caller: Pubkey, required: Pubkey) -> None:
    """
    Capability check invoked at the top of every privileged instruction.

    Raises:
        NotAuthorizedError: If the caller is not the required identity.
    """
    if caller != required:
        raise NotAuthorizedError(f"{caller} is not authorized, expected {required}")


def parse_pubkey(value: str, name: str = "address") -> Pubkey:
    """Parse a base58 public key, raising ValueError with the field name."""
    if not value or not isinstance(value, str):
        raise ValueError(f"{name} must be a non-empty string")
    try:
        return Pubkey.from_string(value.strip())
    except Exception as e:
        raise ValueError(f"Invalid {name}: {value} ({e})")


def parse_hash32(value: str, name: str = "hash") -> bytes:
    """Parse a 32-byte value given as a hex string (optionally 0x-prefixed)."""
    text = value[2:] if value.startswith("0x") else value
    try:
        raw = bytes.fromhex(text)
    except ValueError:
        raise ValueError(f"{name} must be a hex string")
    if len(raw) != 32:
        raise ValueError(f"{name} must be exactly 32 bytes, got {len(raw)}")
    return raw


def parse_proof(nodes: Optional[List[str]]) -> Optional[List[bytes]]:
    if nodes is None:
        return None
    return [parse_hash32(node, "proof node") for node in nodes]
