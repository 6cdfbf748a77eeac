"""Instruction codec

Wire format is ``[1-byte opcode][payload]``. Each opcode has a field schema
describing how its payload is laid out; decoding walks the schema, so a command
is either fully decoded or rejected.
"""
from dataclasses import dataclass, fields as dataclass_fields
from enum import Enum, IntEnum
from typing import ClassVar, Dict, Optional, Tuple, Type, Union

from solders.pubkey import Pubkey

from fund_program.errors import DecodeError, InvalidInstruction, LengthMismatch

SEED_LEN = 32
PUBKEY_LEN = 32

U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


class Opcode(IntEnum):
    CREATE_FUND = 0
    DEPOSIT = 1
    CREATE_PROPOSAL = 2
    CAST_VOTE = 3
    EXECUTE = 4


class FieldKind(str, Enum):
    U8 = "u8"
    BOOL = "bool"
    U64 = "u64"
    I64 = "i64"
    SEED = "seed"
    PUBKEY = "pubkey"
    U64_LIST = "u64[]"
    U8_LIST = "u8[]"
    TEXT = "text"


@dataclass(frozen=True)
class Field:
    """One positional payload field"""
    name: str
    kind: FieldKind
    count_field: Optional[str] = None  # list length comes from this earlier field


@dataclass(frozen=True)
class CreateFund:
    member_count: int
    seed: bytes
    is_private: bool = False
    name: str = ""

    opcode: ClassVar[Opcode] = Opcode.CREATE_FUND


@dataclass(frozen=True)
class Deposit:
    amount: int
    seed: bytes

    opcode: ClassVar[Opcode] = Opcode.DEPOSIT


@dataclass(frozen=True)
class CreateProposal:
    leg_count: int
    amounts: Tuple[int, ...]
    routing_tags: Tuple[int, ...]
    deadline: int
    seed: bytes

    opcode: ClassVar[Opcode] = Opcode.CREATE_PROPOSAL

    def __post_init__(self):
        # lists are accepted for convenience but stored as tuples
        object.__setattr__(self, "amounts", tuple(self.amounts))
        object.__setattr__(self, "routing_tags", tuple(self.routing_tags))


@dataclass(frozen=True)
class CastVote:
    choice: bool
    seed: bytes

    opcode: ClassVar[Opcode] = Opcode.CAST_VOTE


@dataclass(frozen=True)
class Execute:
    target: Pubkey

    opcode: ClassVar[Opcode] = Opcode.EXECUTE


Command = Union[CreateFund, Deposit, CreateProposal, CastVote, Execute]


SCHEMAS: Dict[Opcode, Tuple[Type, Tuple[Field, ...]]] = {
    Opcode.CREATE_FUND: (CreateFund, (
        Field("member_count", FieldKind.U8),
        Field("seed", FieldKind.SEED),
        Field("is_private", FieldKind.BOOL),
        Field("name", FieldKind.TEXT),
    )),
    Opcode.DEPOSIT: (Deposit, (
        Field("amount", FieldKind.U64),
        Field("seed", FieldKind.SEED),
    )),
    Opcode.CREATE_PROPOSAL: (CreateProposal, (
        Field("leg_count", FieldKind.U8),
        Field("amounts", FieldKind.U64_LIST, count_field="leg_count"),
        Field("routing_tags", FieldKind.U8_LIST, count_field="leg_count"),
        Field("deadline", FieldKind.I64),
        Field("seed", FieldKind.SEED),
    )),
    Opcode.CAST_VOTE: (CastVote, (
        Field("choice", FieldKind.BOOL),
        Field("seed", FieldKind.SEED),
    )),
    Opcode.EXECUTE: (Execute, (
        Field("target", FieldKind.PUBKEY),
    )),
}


def _take(data: bytes, offset: int, size: int, field: Field) -> Tuple[bytes, int]:
    end = offset + size
    if end > len(data):
        raise DecodeError(
            f"Truncated field '{field.name}': need {size} bytes at offset {offset}, "
            f"have {len(data) - offset}"
        )
    return data[offset:end], end


def _read_field(field: Field, data: bytes, offset: int, values: Dict[str, object]):
    kind = field.kind
    if kind == FieldKind.U8:
        raw, offset = _take(data, offset, 1, field)
        return raw[0], offset
    if kind == FieldKind.BOOL:
        raw, offset = _take(data, offset, 1, field)
        if raw[0] > 1:
            raise DecodeError(f"Field '{field.name}' is not a boolean: {raw[0]}")
        return raw[0] == 1, offset
    if kind == FieldKind.U64:
        raw, offset = _take(data, offset, 8, field)
        return int.from_bytes(raw, "little"), offset
    if kind == FieldKind.I64:
        raw, offset = _take(data, offset, 8, field)
        return int.from_bytes(raw, "little", signed=True), offset
    if kind == FieldKind.SEED:
        raw, offset = _take(data, offset, SEED_LEN, field)
        return bytes(raw), offset
    if kind == FieldKind.PUBKEY:
        raw, offset = _take(data, offset, PUBKEY_LEN, field)
        return Pubkey(bytes(raw)), offset
    if kind == FieldKind.U64_LIST:
        count = values[field.count_field]
        raw, offset = _take(data, offset, 8 * count, field)
        return tuple(
            int.from_bytes(raw[i:i + 8], "little") for i in range(0, 8 * count, 8)
        ), offset
    if kind == FieldKind.U8_LIST:
        count = values[field.count_field]
        raw, offset = _take(data, offset, count, field)
        return tuple(raw), offset
    if kind == FieldKind.TEXT:
        try:
            return data[offset:].decode("utf-8"), len(data)
        except UnicodeDecodeError as e:
            raise DecodeError(f"Field '{field.name}' is not valid UTF-8: {e}") from e
    raise DecodeError(f"Unsupported field kind {kind}")


def decode(data: bytes) -> Command:
    """Decode raw instruction data into a typed command"""
    if not data:
        raise DecodeError("Empty instruction data")

    tag = data[0]
    try:
        opcode = Opcode(tag)
    except ValueError:
        raise InvalidInstruction(f"Unknown opcode {tag}") from None

    command_cls, schema = SCHEMAS[opcode]
    values: Dict[str, object] = {}
    offset = 1
    for field in schema:
        values[field.name], offset = _read_field(field, data, offset, values)

    if offset != len(data):
        raise DecodeError(
            f"{len(data) - offset} unexpected trailing bytes after {command_cls.__name__}"
        )
    return command_cls(**values)


def _check_range(field: Field, value: int, low: int, high: int) -> None:
    if not low <= value <= high:
        raise ValueError(f"Field '{field.name}' out of range: {value}")


def _write_field(field: Field, value, values: Dict[str, object]) -> bytes:
    kind = field.kind
    if kind == FieldKind.U8:
        _check_range(field, value, 0, 255)
        return bytes([value])
    if kind == FieldKind.BOOL:
        return b"\x01" if value else b"\x00"
    if kind == FieldKind.U64:
        _check_range(field, value, 0, U64_MAX)
        return value.to_bytes(8, "little")
    if kind == FieldKind.I64:
        _check_range(field, value, I64_MIN, I64_MAX)
        return value.to_bytes(8, "little", signed=True)
    if kind in (FieldKind.SEED, FieldKind.PUBKEY):
        raw = bytes(value)
        if len(raw) != SEED_LEN:
            raise ValueError(f"Field '{field.name}' must be {SEED_LEN} bytes, got {len(raw)}")
        return raw
    if kind in (FieldKind.U64_LIST, FieldKind.U8_LIST):
        count = values[field.count_field]
        if len(value) != count:
            raise LengthMismatch(
                f"Field '{field.name}' has {len(value)} entries, "
                f"'{field.count_field}' declares {count}"
            )
        if kind == FieldKind.U8_LIST:
            for item in value:
                _check_range(field, item, 0, 255)
            return bytes(value)
        out = bytearray()
        for item in value:
            _check_range(field, item, 0, U64_MAX)
            out += item.to_bytes(8, "little")
        return bytes(out)
    if kind == FieldKind.TEXT:
        return value.encode("utf-8")
    raise ValueError(f"Unsupported field kind {kind}")


def encode(command: Command) -> bytes:
    """Encode a typed command into instruction data"""
    _, schema = SCHEMAS[command.opcode]
    values = {f.name: getattr(command, f.name) for f in dataclass_fields(command)}
    out = bytearray([command.opcode])
    for field in schema:
        out += _write_field(field, values[field.name], values)
    return bytes(out)
