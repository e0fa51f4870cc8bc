"""Shared type definitions for API and profile models."""

from typing import Annotated, Any

from pydantic import BeforeValidator, Field

from settler.chain.pubkey import is_valid_address
from settler.safe_int import U64_MAX


def validate_address(value: Any) -> str:
    """Validate a base58 account address.

    Raises:
        ValueError: If value is not a base58 string decoding to 32 bytes
    """
    if not isinstance(value, str):
        raise ValueError(f"Address must be a string, got {type(value).__name__}")
    if not is_valid_address(value):
        raise ValueError(f"Invalid address: '{value}'")
    return value


def validate_u64(value: Any) -> str:
    """Validate that a value is a u64 decimal string (ints are accepted and converted).

    Raises:
        ValueError: If value is not a non-negative integer within u64 range
    """
    if isinstance(value, bool):
        raise ValueError("U64 cannot be a boolean")
    if isinstance(value, int):
        int_value = value
    elif isinstance(value, str):
        if not value.isdigit():
            raise ValueError(f"U64 must be a decimal integer string: '{value}'")
        int_value = int(value)
    else:
        raise ValueError(f"U64 must be string or int, got {type(value).__name__}")

    if int_value < 0:
        raise ValueError(f"U64 cannot be negative: {value}")
    if int_value > U64_MAX:
        raise ValueError(f"U64 overflow: {value} > 2^64-1")
    return str(int_value)


# Base58-encoded 32-byte account address
Address = Annotated[
    str,
    BeforeValidator(validate_address),
    Field(description="Base58-encoded account address"),
]

# 64-bit unsigned integer as decimal string (validated)
U64 = Annotated[
    str,
    BeforeValidator(validate_u64),
    Field(description="64-bit unsigned integer as decimal string"),
]

# Basis points, 0..=10000
Bps = Annotated[int, Field(ge=0, le=10_000)]
