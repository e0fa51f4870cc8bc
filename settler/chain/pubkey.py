"""32-byte account address with base58 text form."""

from __future__ import annotations

import base58

from settler.errors import InvalidAddress

PUBKEY_LENGTH = 32

# Curve25519 field prime and the twisted Edwards constant d = -121665/121666
_P = 2**255 - 19
_D = (-121665 * pow(121666, _P - 2, _P)) % _P


class Pubkey:
    """An account address.

    Immutable, hashable and ordered by raw bytes. Construct from raw bytes
    or with ``Pubkey.from_string`` for base58 text.
    """

    __slots__ = ("_raw",)
    _raw: bytes

    def __init__(self, raw: bytes) -> None:
        if not isinstance(raw, (bytes, bytearray)):
            raise InvalidAddress(f"Address must be bytes, got {type(raw).__name__}")
        if len(raw) != PUBKEY_LENGTH:
            raise InvalidAddress(f"Address must be {PUBKEY_LENGTH} bytes, got {len(raw)}")
        self._raw = bytes(raw)

    @classmethod
    def from_string(cls, text: str) -> Pubkey:
        """Parse a base58 address.

        Raises:
            InvalidAddress: If the text is not base58 or not 32 bytes long
        """
        if not isinstance(text, str) or not text:
            raise InvalidAddress(f"Invalid address: {text!r}")
        try:
            raw = base58.b58decode(text)
        except ValueError as err:
            raise InvalidAddress(f"Invalid base58 address: {text}") from err
        if len(raw) != PUBKEY_LENGTH:
            raise InvalidAddress(f"Invalid address length for {text}: {len(raw)} bytes")
        return cls(raw)

    @classmethod
    def coerce(cls, value: Pubkey | str | bytes) -> Pubkey:
        """Accept a Pubkey, base58 string, or raw bytes."""
        if isinstance(value, Pubkey):
            return value
        if isinstance(value, str):
            return cls.from_string(value)
        return cls(value)

    @classmethod
    def default(cls) -> Pubkey:
        """The all-zero address (also the system program id)."""
        return cls(bytes(PUBKEY_LENGTH))

    def __bytes__(self) -> bytes:
        return self._raw

    def __str__(self) -> str:
        return base58.b58encode(self._raw).decode("ascii")

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def __hash__(self) -> int:
        return hash(self._raw)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Pubkey):
            return self._raw == other._raw
        return NotImplemented

    def __lt__(self, other: Pubkey) -> bool:
        return self._raw < other._raw

    def is_on_curve(self) -> bool:
        """True if these bytes decompress to an ed25519 point.

        Program-derived addresses must be off the curve so that no private
        key can exist for them.
        """
        return is_on_curve(self._raw)


def is_on_curve(raw: bytes) -> bool:
    """Check whether a compressed Edwards-y encoding decompresses.

    Solves x^2 = (y^2 - 1) / (d*y^2 + 1) and tests that the right-hand side
    is zero or a quadratic residue mod p. The sign bit is ignored.
    """
    y = int.from_bytes(raw, "little") & ((1 << 255) - 1)
    y %= _P
    y2 = y * y % _P
    u = (y2 - 1) % _P
    v = (_D * y2 + 1) % _P
    x2 = u * pow(v, _P - 2, _P) % _P
    if x2 == 0:
        return True
    return pow(x2, (_P - 1) // 2, _P) == 1


def is_valid_address(text: str) -> bool:
    """Check if a string is a base58-encoded 32-byte address."""
    try:
        Pubkey.from_string(text)
    except InvalidAddress:
        return False
    return True


__all__ = ["PUBKEY_LENGTH", "Pubkey", "is_on_curve", "is_valid_address"]
