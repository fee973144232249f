"""Reading and writing of object data files (w3u, w3t, w3b, w3a, w3d, w3h, w3q)."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field
from typing import Union

from .errors import InvalidFormatError, ParseError

SUPPORTED_VERSION = 2

_INT32 = struct.Struct("<i")
_FLOAT = struct.Struct("<f")
_STRING_ENCODING = "utf-8"
_STRING_ERRORS = "surrogateescape"

ModificationValue = Union[int, float, str]


class ModificationType(enum.IntEnum):
    """The type of a modification's value."""

    INTEGER = 0
    REAL = 1
    UNREAL = 2
    STRING = 3


class ObjectFileKind(enum.Enum):
    """Whether modifications carry level and data-pointer fields."""

    SIMPLE = "simple"  # w3u, w3t, w3b
    COMPLEX = "complex"  # w3a, w3d, w3h, w3q


@dataclass
class Modification:
    """One field change within an object definition."""

    field_id: str = ""
    type: ModificationType = ModificationType.INTEGER
    level: int = 0
    data_pointer: int = 0
    value: ModificationValue = 0


@dataclass
class ObjectDef:
    """One stock or custom object and its modifications."""

    original_id: str = ""
    custom_id: str = ""
    modifications: list[Modification] = field(default_factory=list)


@dataclass
class ObjectData:
    """All objects from one object data file."""

    version: int = 0
    original_objects: list[ObjectDef] = field(default_factory=list)
    custom_objects: list[ObjectDef] = field(default_factory=list)


class _Reader:
    """Little-endian reader that raises ParseError when data runs out."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self._pos

    def require(self, count: int, message: str) -> None:
        if self.remaining < count:
            raise ParseError(message)

    def int32(self) -> int:
        (value,) = _INT32.unpack_from(self._data, self._pos)
        self._pos += 4
        return value

    def float32(self) -> float:
        (value,) = _FLOAT.unpack_from(self._data, self._pos)
        self._pos += 4
        return value

    def rawcode(self) -> str:
        chunk = self._data[self._pos:self._pos + 4]
        self._pos += 4
        return chunk.rstrip(b"\0").decode("latin-1")

    def string(self) -> str:
        end = self._data.find(b"\0", self._pos)
        if end < 0:
            chunk = self._data[self._pos:]
            self._pos = len(self._data)
        else:
            chunk = self._data[self._pos:end]
            self._pos = end + 1
        return chunk.decode(_STRING_ENCODING, _STRING_ERRORS)

    def skip(self, count: int) -> None:
        self._pos = min(self._pos + count, len(self._data))


def _read_modification(reader: _Reader, kind: ObjectFileKind) -> Modification:
    mod = Modification()
    reader.require(4, "Unexpected end of data reading field ID")
    mod.field_id = reader.rawcode()
    reader.require(4, "Unexpected end of data reading value type")
    value_type = reader.int32()

    if kind is ObjectFileKind.COMPLEX:
        reader.require(8, "Unexpected end of data reading level/data_pointer")
        mod.level = reader.int32()
        mod.data_pointer = reader.int32()

    try:
        mod.type = ModificationType(value_type)
    except ValueError:
        raise InvalidFormatError(f"Unknown modification value type: {value_type}") from None

    if mod.type is ModificationType.INTEGER:
        reader.require(4, "Unexpected end reading integer value")
        mod.value = reader.int32()
    elif mod.type in (ModificationType.REAL, ModificationType.UNREAL):
        reader.require(4, "Unexpected end reading float value")
        mod.value = reader.float32()
    else:
        mod.value = reader.string()

    reader.require(4, "Unexpected end reading modification trailer")
    reader.skip(4)
    return mod


def _read_object(reader: _Reader, kind: ObjectFileKind) -> ObjectDef:
    reader.require(8, "Unexpected end of data reading object IDs")
    obj = ObjectDef(original_id=reader.rawcode(), custom_id=reader.rawcode())
    reader.require(4, "Unexpected end of data reading modification count")
    count = reader.int32()
    obj.modifications = [_read_modification(reader, kind) for _ in range(count)]
    return obj


def _read_chunk(reader: _Reader, kind: ObjectFileKind) -> list[ObjectDef]:
    if reader.remaining < 4:
        return []
    count = reader.int32()
    return [_read_object(reader, kind) for _ in range(count)]


def parse_object_file(data: bytes, kind: ObjectFileKind) -> ObjectData:
    """Parse an object data file; kind says whether level info is present."""
    if data is None or len(data) < 4:
        raise ParseError("Object data is too small or null")
    reader = _Reader(bytes(data))
    result = ObjectData(version=reader.int32())
    if result.version != SUPPORTED_VERSION:
        raise InvalidFormatError(
            f"Unsupported object data version: {result.version} (expected {SUPPORTED_VERSION})"
        )
    result.original_objects = _read_chunk(reader, kind)
    result.custom_objects = _read_chunk(reader, kind)
    return result


def _pack_int32(value: object, what: str) -> bytes:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidFormatError(f"{what} must be an integer")
    try:
        return _INT32.pack(value)
    except struct.error as exc:
        raise InvalidFormatError(f"{what} does not fit in 32 bits: {value}") from exc


def _rawcode_bytes(rawcode: str, label: str) -> bytes:
    try:
        encoded = rawcode.encode("latin-1")
    except UnicodeEncodeError as exc:
        raise InvalidFormatError(f"{label} rawcode is not a byte string: {rawcode}") from exc
    if len(encoded) > 4:
        raise InvalidFormatError(f"{label} rawcode is longer than 4 bytes: {rawcode}")
    return encoded.ljust(4, b"\0")


def _modification_bytes(mod: Modification, kind: ObjectFileKind) -> bytes:
    try:
        mod_type = ModificationType(mod.type)
    except ValueError:
        raise InvalidFormatError(f"Unknown modification value type: {mod.type}") from None

    parts = [_rawcode_bytes(mod.field_id, "Modification field"), _INT32.pack(mod_type)]
    if kind is ObjectFileKind.COMPLEX:
        parts.append(_pack_int32(mod.level, "Modification level"))
        parts.append(_pack_int32(mod.data_pointer, "Modification data pointer"))

    value = mod.value
    if mod_type is ModificationType.INTEGER:
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidFormatError("Integer modification does not contain an integer value")
        parts.append(_pack_int32(value, "Integer modification value"))
    elif mod_type in (ModificationType.REAL, ModificationType.UNREAL):
        if not isinstance(value, float):
            raise InvalidFormatError("Float modification does not contain a float value")
        try:
            parts.append(_FLOAT.pack(value))
        except OverflowError as exc:
            raise InvalidFormatError(f"Float modification value out of range: {value}") from exc
    else:
        if not isinstance(value, str):
            raise InvalidFormatError("String modification does not contain a string value")
        parts.append(value.encode(_STRING_ENCODING, _STRING_ERRORS) + b"\0")

    parts.append(b"\0\0\0\0")
    return b"".join(parts)


def _chunk_bytes(objects: list[ObjectDef], kind: ObjectFileKind, custom_chunk: bool) -> bytes:
    parts = [_INT32.pack(len(objects))]
    for obj in objects:
        custom_id = obj.custom_id if custom_chunk else ""
        parts.append(_rawcode_bytes(obj.original_id, "Object original"))
        parts.append(_rawcode_bytes(custom_id, "Object custom"))
        parts.append(_INT32.pack(len(obj.modifications)))
        parts.extend(_modification_bytes(mod, kind) for mod in obj.modifications)
    return b"".join(parts)


def serialize_object_file(data: ObjectData, kind: ObjectFileKind) -> bytes:
    """Serialize object data; only version 2 is supported."""
    if data.version != SUPPORTED_VERSION:
        raise InvalidFormatError("Only version 2 object files are supported for serialization")
    return b"".join((
        _INT32.pack(data.version),
        _chunk_bytes(data.original_objects, kind, False),
        _chunk_bytes(data.custom_objects, kind, True),
    ))


def parse_w3u(data: bytes) -> ObjectData:
    """Parse a unit object file."""
    return parse_object_file(data, ObjectFileKind.SIMPLE)


def parse_w3t(data: bytes) -> ObjectData:
    """Parse an item object file."""
    return parse_object_file(data, ObjectFileKind.SIMPLE)


def parse_w3b(data: bytes) -> ObjectData:
    """Parse a destructable object file."""
    return parse_object_file(data, ObjectFileKind.SIMPLE)


def parse_w3a(data: bytes) -> ObjectData:
    """Parse an ability object file."""
    return parse_object_file(data, ObjectFileKind.COMPLEX)


def parse_w3d(data: bytes) -> ObjectData:
    """Parse a doodad object file."""
    return parse_object_file(data, ObjectFileKind.COMPLEX)


def parse_w3h(data: bytes) -> ObjectData:
    """Parse a buff object file."""
    return parse_object_file(data, ObjectFileKind.COMPLEX)


def parse_w3q(data: bytes) -> ObjectData:
    """Parse an upgrade object file."""
    return parse_object_file(data, ObjectFileKind.COMPLEX)