import struct

import pytest

from w3xkit.errors import InvalidFormatError, ParseError
from w3xkit.objects import (
    Modification,
    ModificationType,
    ObjectData,
    ObjectDef,
    ObjectFileKind,
    parse_object_file,
    parse_w3a,
    parse_w3u,
    serialize_object_file,
)


def _sample(kind_complex: bool) -> ObjectData:
    level = 2 if kind_complex else 0
    pointer = 1 if kind_complex else 0
    return ObjectData(
        version=2,
        original_objects=[
            ObjectDef(
                original_id="hfoo",
                custom_id="",
                modifications=[
                    Modification("uhpm", ModificationType.INTEGER, level, pointer, 500),
                ],
            )
        ],
        custom_objects=[
            ObjectDef(
                original_id="hfoo",
                custom_id="h000",
                modifications=[
                    Modification("umvs", ModificationType.REAL, level, pointer, 1.5),
                    Modification("unam", ModificationType.STRING, level, pointer, "Knight"),
                    Modification("uaen", ModificationType.UNREAL, level, pointer, 0.25),
                ],
            )
        ],
    )


@pytest.mark.parametrize("kind", [ObjectFileKind.SIMPLE, ObjectFileKind.COMPLEX])
def test_round_trip(kind):
    data = _sample(kind is ObjectFileKind.COMPLEX)
    assert parse_object_file(serialize_object_file(data, kind), kind) == data


def test_empty_file_bytes():
    assert serialize_object_file(ObjectData(version=2), ObjectFileKind.SIMPLE) == (
        b"\x02\x00\x00\x00" + b"\x00" * 8
    )


def test_parse_hand_built_simple():
    raw = (
        struct.pack("<i", 2)
        + struct.pack("<i", 0)
        + struct.pack("<i", 1)
        + b"hfoo" + b"h000"
        + struct.pack("<i", 1)
        + b"unam" + struct.pack("<i", 3) + b"Knight\0" + b"\0\0\0\0"
    )
    parsed = parse_w3u(raw)
    assert parsed.original_objects == []
    obj = parsed.custom_objects[0]
    assert (obj.original_id, obj.custom_id) == ("hfoo", "h000")
    assert obj.modifications[0].value == "Knight"
    assert obj.modifications[0].type is ModificationType.STRING


def test_parse_complex_reads_level_and_pointer():
    raw = (
        struct.pack("<i", 2)
        + struct.pack("<i", 1)
        + b"AHbz" + b"\0\0\0\0"
        + struct.pack("<i", 1)
        + b"Hbz1" + struct.pack("<iiii", 0, 3, 1, 77) + b"\0\0\0\0"
    )
    mod = parse_w3a(raw).original_objects[0].modifications[0]
    assert (mod.level, mod.data_pointer, mod.value) == (3, 1, 77)


def test_version_only_gives_empty_tables():
    parsed = parse_w3u(struct.pack("<i", 2))
    assert parsed.version == 2
    assert parsed.original_objects == [] and parsed.custom_objects == []


def test_too_small_raises_parse_error():
    with pytest.raises(ParseError):
        parse_w3u(b"\x02\x00")


def test_wrong_version_raises():
    with pytest.raises(InvalidFormatError):
        parse_w3u(struct.pack("<i", 1))


def test_unknown_value_type_raises():
    raw = (
        struct.pack("<ii", 2, 1) + b"hfoo\0\0\0\0" + struct.pack("<i", 1)
        + b"uhpm" + struct.pack("<i", 7) + struct.pack("<i", 0) + b"\0\0\0\0"
    )
    with pytest.raises(InvalidFormatError):
        parse_w3u(raw)


def test_truncated_trailer_raises_parse_error():
    raw = (
        struct.pack("<ii", 2, 1) + b"hfoo\0\0\0\0" + struct.pack("<i", 1)
        + b"uhpm" + struct.pack("<i", 0) + struct.pack("<i", 5)
    )
    with pytest.raises(ParseError):
        parse_w3u(raw)


def test_custom_id_dropped_in_original_chunk():
    data = ObjectData(version=2, original_objects=[ObjectDef("hfoo", "h999", [])])
    parsed = parse_w3u(serialize_object_file(data, ObjectFileKind.SIMPLE))
    assert parsed.original_objects[0].custom_id == ""


def test_serialize_wrong_version_raises():
    with pytest.raises(InvalidFormatError):
        serialize_object_file(ObjectData(version=3), ObjectFileKind.SIMPLE)


def test_serialize_long_rawcode_raises():
    data = ObjectData(version=2, original_objects=[ObjectDef("hfooo", "", [])])
    with pytest.raises(InvalidFormatError):
        serialize_object_file(data, ObjectFileKind.SIMPLE)


@pytest.mark.parametrize(
    "mod_type, value",
    [
        (ModificationType.INTEGER, "text"),
        (ModificationType.REAL, 3),
        (ModificationType.STRING, 1.0),
    ],
)
def test_serialize_mismatched_value_raises(mod_type, value):
    data = ObjectData(
        version=2,
        custom_objects=[ObjectDef("hfoo", "h000", [Modification("uhpm", mod_type, 0, 0, value)])],
    )
    with pytest.raises(InvalidFormatError):
        serialize_object_file(data, ObjectFileKind.SIMPLE)