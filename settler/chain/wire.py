"""Transaction wire format: decode (legacy and v0) and v0 encode.

Layout of a transaction:
    shortvec(signature count) || 64-byte signatures || message

Layout of a message:
    [0x80 | version]            (v0 only; legacy messages have no prefix)
    header                      3 bytes: required signatures, readonly signed,
                                readonly unsigned
    shortvec(key count) || 32-byte keys
    recent blockhash            32 bytes
    shortvec(instruction count) || instructions
    shortvec(lookup count) || lookups   (v0 only)

Decoding never raises on bad input: it returns a ``Malformed`` result that
names the problem, so callers must handle the failure explicitly.
"""

from __future__ import annotations

import base64
import binascii
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

import base58

from settler.chain.instructions import Instruction
from settler.chain.pubkey import PUBKEY_LENGTH, Pubkey

SIGNATURE_LENGTH = 64
BLOCKHASH_LENGTH = 32
VERSION_PREFIX_MASK = 0x80
SUPPORTED_VERSIONS = (0,)
MAX_LOOKUP_INDEX = 255
PACKET_DATA_SIZE = 1232


# --- Short vector encoding ---


def encode_shortvec(value: int) -> bytes:
    """Encode a length as a little-endian base-128 varint (max 3 bytes)."""
    if not 0 <= value <= 0xFFFF:
        raise ValueError(f"shortvec length out of range: {value}")
    out = bytearray()
    while True:
        byte = value & 0x7F
        value >>= 7
        if value:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


class _Truncated(Exception):
    pass


class _Invalid(Exception):
    pass


class _Reader:
    """Cursor over raw bytes; raises _Truncated past the end."""

    def __init__(self, data: bytes) -> None:
        self.data = data
        self.offset = 0

    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int) -> bytes:
        if self.remaining() < n:
            raise _Truncated(f"need {n} bytes at offset {self.offset}, have {self.remaining()}")
        chunk = self.data[self.offset : self.offset + n]
        self.offset += n
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def peek(self) -> int:
        if self.remaining() < 1:
            raise _Truncated(f"need 1 byte at offset {self.offset}")
        return self.data[self.offset]

    def shortvec(self) -> int:
        value = 0
        for position in range(3):
            byte = self.u8()
            if position > 0 and byte == 0:
                raise _Invalid("non-canonical shortvec encoding")
            value |= (byte & 0x7F) << (7 * position)
            if not byte & 0x80:
                if value > 0xFFFF:
                    raise _Invalid("shortvec overflow")
                return value
        raise _Invalid("shortvec longer than 3 bytes")

    def pubkeys(self, count: int) -> tuple[Pubkey, ...]:
        return tuple(Pubkey(self.take(PUBKEY_LENGTH)) for _ in range(count))

    def index_list(self) -> tuple[int, ...]:
        return tuple(self.take(self.shortvec()))


# --- Message model ---


@dataclass(frozen=True)
class MessageHeader:
    num_required_signatures: int
    num_readonly_signed: int
    num_readonly_unsigned: int


@dataclass(frozen=True)
class CompiledInstruction:
    """An instruction whose program and accounts are indexes into the key list."""

    program_id_index: int
    account_indexes: tuple[int, ...]
    data: bytes


@dataclass(frozen=True)
class LookupTableRef:
    """Accounts a v0 message loads from an address lookup table."""

    table: Pubkey
    writable_indexes: tuple[int, ...]
    readonly_indexes: tuple[int, ...]


@dataclass(frozen=True)
class Message:
    """A decoded message. ``version`` is None for legacy messages."""

    version: int | None
    header: MessageHeader
    account_keys: tuple[Pubkey, ...]
    recent_blockhash: bytes
    instructions: tuple[CompiledInstruction, ...]
    lookups: tuple[LookupTableRef, ...] = ()

    @property
    def payer(self) -> Pubkey:
        return self.account_keys[0]

    @property
    def num_loaded(self) -> int:
        return sum(len(t.writable_indexes) + len(t.readonly_indexes) for t in self.lookups)

    @property
    def total_accounts(self) -> int:
        return len(self.account_keys) + self.num_loaded

    def is_signer(self, index: int) -> bool:
        return index < self.header.num_required_signatures

    def is_writable(self, index: int) -> bool:
        """Writability of a key by its combined index (static keys, then loaded)."""
        h = self.header
        num_static = len(self.account_keys)
        if index < h.num_required_signatures:
            return index < h.num_required_signatures - h.num_readonly_signed
        if index < num_static:
            return index < num_static - h.num_readonly_unsigned
        num_loaded_writable = sum(len(t.writable_indexes) for t in self.lookups)
        return index - num_static < num_loaded_writable

    def resolve_keys(self, tables: Mapping[Pubkey, Sequence[Pubkey]]) -> tuple[Pubkey, ...]:
        """Full key list: static keys, then loaded writable keys, then loaded readonly keys.

        Raises:
            KeyError: If a referenced lookup table is missing from ``tables``
            IndexError: If a lookup index is past the end of its table
        """
        writable: list[Pubkey] = []
        readonly: list[Pubkey] = []
        for ref in self.lookups:
            entries = tables[ref.table]
            writable.extend(entries[i] for i in ref.writable_indexes)
            readonly.extend(entries[i] for i in ref.readonly_indexes)
        return (*self.account_keys, *writable, *readonly)


@dataclass(frozen=True)
class Transaction:
    signatures: tuple[bytes, ...]
    message: Message


# --- Decode result ---


@dataclass(frozen=True)
class Decoded:
    transaction: Transaction

    ok = True


@dataclass(frozen=True)
class Malformed:
    reason: str

    ok = False


DecodeResult = Decoded | Malformed


def _read_message(reader: _Reader) -> Message:
    version: int | None = None
    if reader.peek() & VERSION_PREFIX_MASK:
        version = reader.u8() & 0x7F
        if version not in SUPPORTED_VERSIONS:
            raise _Invalid(f"unsupported message version {version}")

    header = MessageHeader(reader.u8(), reader.u8(), reader.u8())
    account_keys = reader.pubkeys(reader.shortvec())
    blockhash = reader.take(BLOCKHASH_LENGTH)

    instructions = []
    for _ in range(reader.shortvec()):
        program_id_index = reader.u8()
        account_indexes = reader.index_list()
        data = reader.take(reader.shortvec())
        instructions.append(CompiledInstruction(program_id_index, account_indexes, data))

    lookups = []
    if version is not None:
        for _ in range(reader.shortvec()):
            table = Pubkey(reader.take(PUBKEY_LENGTH))
            writable = reader.index_list()
            readonly = reader.index_list()
            lookups.append(LookupTableRef(table, writable, readonly))

    return Message(
        version=version,
        header=header,
        account_keys=account_keys,
        recent_blockhash=blockhash,
        instructions=tuple(instructions),
        lookups=tuple(lookups),
    )


def _sanity_check(tx: Transaction) -> None:
    message = tx.message
    h = message.header
    num_static = len(message.account_keys)
    if num_static == 0:
        raise _Invalid("message has no account keys")
    if h.num_required_signatures == 0 or h.num_required_signatures > num_static:
        raise _Invalid(f"bad required signature count {h.num_required_signatures}")
    if h.num_readonly_signed >= h.num_required_signatures:
        raise _Invalid("fee payer cannot be readonly")
    if h.num_readonly_unsigned > num_static - h.num_required_signatures:
        raise _Invalid("readonly unsigned count exceeds unsigned keys")
    if len(tx.signatures) != h.num_required_signatures:
        raise _Invalid(
            f"signature count {len(tx.signatures)} != required {h.num_required_signatures}"
        )
    total = message.total_accounts
    for position, ix in enumerate(message.instructions):
        if not 0 < ix.program_id_index < num_static:
            raise _Invalid(f"instruction {position} program index {ix.program_id_index} invalid")
        for idx in ix.account_indexes:
            if idx >= total:
                raise _Invalid(f"instruction {position} account index {idx} >= {total}")


def decode_transaction(raw: bytes) -> DecodeResult:
    """Decode a serialized transaction into a tagged result."""
    reader = _Reader(raw)
    try:
        signatures = tuple(reader.take(SIGNATURE_LENGTH) for _ in range(reader.shortvec()))
        message = _read_message(reader)
        if reader.remaining():
            raise _Invalid(f"{reader.remaining()} trailing bytes")
        tx = Transaction(signatures=signatures, message=message)
        _sanity_check(tx)
    except _Truncated as err:
        return Malformed(f"truncated: {err}")
    except _Invalid as err:
        return Malformed(str(err))
    return Decoded(tx)


def decode_transaction_base64(encoded: str) -> DecodeResult:
    """Decode a base64 transaction string."""
    try:
        raw = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as err:
        return Malformed(f"invalid base64: {err}")
    if not raw:
        return Malformed("empty transaction")
    return decode_transaction(raw)


# --- Encode (v0) ---


@dataclass
class _KeyMeta:
    is_signer: bool = False
    is_writable: bool = False
    is_invoked: bool = False


@dataclass
class CompiledKeys:
    """Ordered key set for a message, first-seen order with payer first."""

    payer: Pubkey
    metas: dict[Pubkey, _KeyMeta] = field(default_factory=dict)

    @classmethod
    def compile(cls, instructions: Sequence[Instruction], payer: Pubkey) -> CompiledKeys:
        keys = cls(payer=payer)
        keys.metas[payer] = _KeyMeta(is_signer=True, is_writable=True)
        for ix in instructions:
            keys.metas.setdefault(ix.program_id, _KeyMeta()).is_invoked = True
            for account in ix.accounts:
                meta = keys.metas.setdefault(account.pubkey, _KeyMeta())
                meta.is_signer = meta.is_signer or account.is_signer
                meta.is_writable = meta.is_writable or account.is_writable
        return keys

    def ordered(self) -> tuple[MessageHeader, list[Pubkey]]:
        groups: tuple[list[Pubkey], ...] = ([], [], [], [])
        for key, meta in self.metas.items():
            if meta.is_signer:
                groups[0 if meta.is_writable else 1].append(key)
            else:
                groups[2 if meta.is_writable else 3].append(key)
        header = MessageHeader(
            num_required_signatures=len(groups[0]) + len(groups[1]),
            num_readonly_signed=len(groups[1]),
            num_readonly_unsigned=len(groups[3]),
        )
        return header, [key for group in groups for key in group]

    def extract_table_lookup(
        self,
        table: Pubkey,
        entries: Sequence[Pubkey],
    ) -> tuple[LookupTableRef, list[Pubkey], list[Pubkey]] | None:
        """Move keys found in ``entries`` out of the static set.

        Signers and invoked programs always stay static. Returns None when the
        table covers none of the remaining keys.
        """
        position: dict[Pubkey, int] = {}
        for i, key in enumerate(entries[:MAX_LOOKUP_INDEX + 1]):
            position.setdefault(key, i)
        writable: list[Pubkey] = []
        readonly: list[Pubkey] = []
        for key, meta in list(self.metas.items()):
            if meta.is_signer or meta.is_invoked or key not in position:
                continue
            (writable if meta.is_writable else readonly).append(key)
            del self.metas[key]
        if not writable and not readonly:
            return None
        ref = LookupTableRef(
            table=table,
            writable_indexes=tuple(position[k] for k in writable),
            readonly_indexes=tuple(position[k] for k in readonly),
        )
        return ref, writable, readonly


def compile_message_v0(
    payer: Pubkey,
    instructions: Sequence[Instruction],
    recent_blockhash: bytes,
    lookup_tables: Mapping[Pubkey, Sequence[Pubkey]] | None = None,
) -> Message:
    """Compile instructions into a v0 message.

    Non-signer accounts present in ``lookup_tables`` are loaded through the
    table instead of being listed as static keys.
    """
    if len(recent_blockhash) != BLOCKHASH_LENGTH:
        raise ValueError(f"Blockhash must be {BLOCKHASH_LENGTH} bytes")
    compiled_keys = CompiledKeys.compile(instructions, payer)
    lookups: list[LookupTableRef] = []
    loaded_writable: list[Pubkey] = []
    loaded_readonly: list[Pubkey] = []
    for table, entries in (lookup_tables or {}).items():
        extracted = compiled_keys.extract_table_lookup(table, entries)
        if extracted is None:
            continue
        ref, writable, readonly = extracted
        lookups.append(ref)
        loaded_writable.extend(writable)
        loaded_readonly.extend(readonly)
    header, keys = compiled_keys.ordered()
    index_of = {key: i for i, key in enumerate(keys + loaded_writable + loaded_readonly)}
    if len(index_of) > MAX_LOOKUP_INDEX + 1:
        raise ValueError(f"Message references {len(index_of)} accounts, limit is 256")
    compiled = tuple(
        CompiledInstruction(
            program_id_index=index_of[ix.program_id],
            account_indexes=tuple(index_of[a.pubkey] for a in ix.accounts),
            data=ix.data,
        )
        for ix in instructions
    )
    return Message(
        version=0,
        header=header,
        account_keys=tuple(keys),
        recent_blockhash=bytes(recent_blockhash),
        instructions=compiled,
        lookups=tuple(lookups),
    )


def encode_message(message: Message) -> bytes:
    out = bytearray()
    if message.version is not None:
        out.append(VERSION_PREFIX_MASK | message.version)
    h = message.header
    out += bytes([h.num_required_signatures, h.num_readonly_signed, h.num_readonly_unsigned])
    out += encode_shortvec(len(message.account_keys))
    for key in message.account_keys:
        out += bytes(key)
    out += message.recent_blockhash
    out += encode_shortvec(len(message.instructions))
    for ix in message.instructions:
        out.append(ix.program_id_index)
        out += encode_shortvec(len(ix.account_indexes))
        out += bytes(ix.account_indexes)
        out += encode_shortvec(len(ix.data))
        out += ix.data
    if message.version is not None:
        out += encode_shortvec(len(message.lookups))
        for ref in message.lookups:
            out += bytes(ref.table)
            out += encode_shortvec(len(ref.writable_indexes))
            out += bytes(ref.writable_indexes)
            out += encode_shortvec(len(ref.readonly_indexes))
            out += bytes(ref.readonly_indexes)
    return bytes(out)


def encode_transaction(tx: Transaction) -> bytes:
    out = bytearray(encode_shortvec(len(tx.signatures)))
    for signature in tx.signatures:
        out += signature
    out += encode_message(tx.message)
    return bytes(out)


def unsigned_transaction(message: Message) -> Transaction:
    """Wrap a message with one zeroed signature slot per required signer."""
    empty = bytes(SIGNATURE_LENGTH)
    return Transaction(
        signatures=tuple(empty for _ in range(message.header.num_required_signatures)),
        message=message,
    )


def blockhash_from_string(text: str) -> bytes:
    raw = base58.b58decode(text)
    if len(raw) != BLOCKHASH_LENGTH:
        raise ValueError(f"Blockhash must decode to {BLOCKHASH_LENGTH} bytes: {text}")
    return raw


__all__ = [
    "encode_shortvec",
    "MessageHeader",
    "CompiledInstruction",
    "LookupTableRef",
    "Message",
    "Transaction",
    "Decoded",
    "Malformed",
    "DecodeResult",
    "decode_transaction",
    "decode_transaction_base64",
    "CompiledKeys",
    "compile_message_v0",
    "encode_message",
    "encode_transaction",
    "unsigned_transaction",
    "blockhash_from_string",
    "PACKET_DATA_SIZE",
]
