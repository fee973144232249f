import struct
from pathlib import Path

import pytest

from w3xkit.errors import InvalidFormatError, ParseError
from w3xkit.ini import parse_ini_document
from w3xkit.rules import FieldMetadata, LoadedDocument, SearchEntry
from w3xkit.unused import (
    DooSearchResult,
    JassSearchResult,
    cleanup_txt_keys,
    load_doo_search_result,
    load_jass_search_result,
    load_map_main_ground,
    rawcode_from_uint32,
    remove_unused_objects,
    scan_doo,
    scan_jass,
)


def make_doc(type_name, text):
    return LoadedDocument(
        type=type_name,
        path=Path(f"{type_name}.ini"),
        document=parse_ini_document(text),
        exists=True,
    )


def live_names(document):
    return [s.name for s in document.document.sections if not s.removed]


def doo_header(version, count):
    return struct.pack("<4siii", b"W3do", version, 11, count)


def doo_destructable(rawcode, variation=False, item_sets=b"\x00\x00\x00\x00"):
    block = rawcode + bytes(32)
    if variation:
        block += rawcode
    return block + bytes([100, 0]) + item_sets + struct.pack("<i", 7)


def doo_doodads(*rawcodes):
    return struct.pack("<ii", 0, len(rawcodes)) + b"".join(r + bytes(12) for r in rawcodes)


def test_rawcode_from_uint32_minimum():
    assert rawcode_from_uint32(0x41303030) == "A000"


def test_scan_jass_quoted_rawcode():
    result = scan_jass("call CreateUnit(p, 'hfoo', 0, 0, 0)")
    assert result.ids == {"hfoo"}


def test_scan_jass_ignores_comments_and_strings():
    result = scan_jass("// 'hpea'\nset s = \"'Hamg'\"\n")
    assert result.ids == set()


def test_scan_jass_hex_integers():
    assert scan_jass("set x = $41303030").ids == {"a000"}
    assert scan_jass("set x = 0x41303030").ids == {"a000"}
    assert scan_jass("set x = $10 + 12").ids == set()


def test_scan_jass_overflow_is_ignored():
    assert scan_jass("set x = 99999999999").ids == set()


def test_scan_jass_function_flags():
    result = scan_jass("call ChooseRandomCreep(1)\ncall InitBlizzard()")
    assert result.creeps is True
    assert result.marketplace is True
    assert result.item is False
    assert result.building is False


def test_scan_jass_melee_functions_add_ids():
    result = scan_jass("call MeleeStartingUnitsHuman()")
    assert {"hpea", "hamg", "stwp"} <= result.ids
    assert "opeo" not in result.ids


def test_scan_jass_accepts_bytes():
    assert scan_jass(b"call Foo('Hpal')").ids == {"hpal"}


def test_load_jass_search_result_finds_nested_script(tmp_path):
    scripts = tmp_path / "map" / "scripts"
    scripts.mkdir(parents=True)
    (scripts / "war3map.j").write_text("call X('h000')")
    assert load_jass_search_result(tmp_path).ids == {"h000"}


def test_load_jass_search_result_without_script(tmp_path):
    assert load_jass_search_result(tmp_path) == JassSearchResult()


def test_scan_doo_reads_destructables_and_doodads():
    data = doo_header(8, 1) + doo_destructable(b"LTlt") + doo_doodads(b"YOlb")
    result = scan_doo(data)
    assert result.destructable_ids == {"ltlt"}
    assert result.doodad_ids == {"yolb"}


def test_scan_doo_variation_and_item_sets():
    sets = struct.pack("<i", 1) + struct.pack("<i", 2) + bytes(16)
    data = (
        doo_header(8, 1)
        + doo_destructable(b"LTlt", variation=True, item_sets=sets)
        + doo_doodads(b"YOlb")
    )
    assert scan_doo(data).doodad_ids == {"yolb"}


def test_scan_doo_legacy_version():
    data = doo_header(7, 1) + b"ATtr" + bytes(38) + doo_doodads(b"YOlb")
    result = scan_doo(data)
    assert result.destructable_ids == {"attr"}
    assert result.doodad_ids == {"yolb"}


def test_scan_doo_without_doodad_table():
    result = scan_doo(doo_header(8, 1) + doo_destructable(b"LTlt"))
    assert result.doodad_ids == set()
    assert result.destructable_ids == {"ltlt"}


def test_scan_doo_truncated_header():
    with pytest.raises(ParseError, match="header"):
        scan_doo(b"W3do\x08\x00")


def test_scan_doo_truncated_destructable():
    with pytest.raises(ParseError):
        scan_doo(doo_header(8, 2) + doo_destructable(b"LTlt"))


def test_load_doo_search_result_from_map_dir(tmp_path):
    (tmp_path / "map").mkdir()
    (tmp_path / "map" / "war3map.doo").write_bytes(
        doo_header(8, 1) + doo_destructable(b"LTlt") + doo_doodads()
    )
    assert load_doo_search_result(tmp_path).destructable_ids == {"ltlt"}
    assert load_doo_search_result(tmp_path / "map" / "none") == DooSearchResult()


def test_load_map_main_ground(tmp_path):
    assert load_map_main_ground(tmp_path) == "\0"
    data = struct.pack("<iii", 18, 1, 1) + bytes(4) + bytes(32 + 16 + 8 + 4) + b"L"
    (tmp_path / "war3map.w3i").write_bytes(data)
    assert load_map_main_ground(tmp_path) == "L"


def test_load_map_main_ground_bad_version(tmp_path):
    (tmp_path / "war3map.w3i").write_bytes(struct.pack("<i", 5) + bytes(16))
    with pytest.raises(InvalidFormatError):
        load_map_main_ground(tmp_path)


def unit_defaults():
    return {"unit": parse_ini_document("[hfoo]\nName=Footman\n")}


def test_remove_unused_custom_units():
    units = make_doc("unit", "[hfoo]\nName=X\n[h000]\n_parent=hfoo\n[h001]\n_parent=hfoo\n")
    jass = JassSearchResult(ids={"h000"})
    deleted = remove_unused_objects(
        {"unit": units}, unit_defaults(), {}, jass, DooSearchResult(), "\0"
    )
    assert live_names(units) == ["hfoo", "h000"]
    assert deleted == {"unit": {"h001"}}
    assert units.dirty is True


def test_remove_unused_keeps_parent_of_marked():
    units = make_doc("unit", "[h000]\n_parent=hfoo\n[h001]\n_parent=h000\n")
    remove_unused_objects(
        {"unit": units}, unit_defaults(), {}, JassSearchResult(ids={"h001"}),
        DooSearchResult(), "\0",
    )
    assert live_names(units) == ["h000", "h001"]


def test_remove_unused_follows_search_map():
    units = make_doc("unit", "[h000]\n_parent=hfoo\nabilList=A000\n")
    abilities = make_doc("ability", "[A000]\n_parent=AHbz\n[A001]\n_parent=AHbz\n")
    search_map = {"unit": [SearchEntry(field="abillist", target_types=["ability"])]}
    remove_unused_objects(
        {"unit": units, "ability": abilities}, unit_defaults(), search_map,
        JassSearchResult(ids={"h000"}), DooSearchResult(), "\0",
    )
    assert live_names(abilities) == ["A000"]


def test_remove_unused_must_mark_buff():
    abilities = make_doc("ability", "[A000]\n_parent=Aspa\n")
    buffs = make_doc("buff", "[Bspa]\nTip=x\n[B000]\nTip=y\n")
    defaults = {"ability": parse_ini_document("[Aspa]\nName=Spider\n")}
    remove_unused_objects(
        {"ability": abilities, "buff": buffs}, defaults, {},
        JassSearchResult(ids={"a000"}), DooSearchResult(), "\0",
    )
    assert live_names(buffs) == ["Bspa"]


def test_remove_unused_doo_marks_destructables():
    dest = make_doc("destructable", "[B000]\nName=x\n[B001]\nName=y\n")
    remove_unused_objects(
        {"destructable": dest}, {}, {}, JassSearchResult(),
        DooSearchResult(destructable_ids={"b001"}), "\0",
    )
    assert live_names(dest) == ["B001"]


@pytest.mark.parametrize("script, kept", [("call ChooseRandomCreep(1)", True), ("", False)])
def test_remove_unused_random_creeps(script, kept):
    units = make_doc(
        "unit", "[n000]\n_parent=nfoo\nrace=creeps\ntilesets=*\nisbldg=0\nspecial=0\n"
    )
    remove_unused_objects(
        {"unit": units}, {}, {}, scan_jass(script), DooSearchResult(), "L"
    )
    assert live_names(units) == (["n000"] if kept else [])


def test_remove_unused_marketplace_items():
    items = make_doc(
        "item",
        "[I000]\n_parent=ratc\npickrandom=1\nsellable=1\n"
        "[I001]\n_parent=ratc\npickrandom=0\nsellable=1\n",
    )
    jass = JassSearchResult(ids={"nmrk"}, marketplace=True)
    remove_unused_objects({"item": items}, {}, {}, jass, DooSearchResult(), "\0")
    assert live_names(items) == ["I000"]


def test_remove_unused_drops_skin_sections():
    units = make_doc("unit", "[h001]\n_parent=hfoo\n")
    txt = make_doc("txt", "[h001]\nskinType=unit\nName=x\n[h002]\nskinType=unit\nName=y\n")
    remove_unused_objects(
        {"unit": units, "txt": txt}, unit_defaults(), {}, JassSearchResult(),
        DooSearchResult(), "\0",
    )
    assert live_names(txt) == ["h002"]
    assert txt.dirty is True


def test_cleanup_txt_keys_removes_known_keys():
    units = make_doc("unit", "[h000]\n_parent=hfoo\n")
    txt = make_doc("txt", "[h000]\nskinType=unit\nUbertip:hd=abc\nName=x\n")
    metadata = {"unit": {"ubertip": FieldMetadata(key="ubertip")}}
    changed = cleanup_txt_keys({"unit": units, "txt": txt}, {}, metadata)
    assert changed is True
    entries = [e.key for e in txt.document.sections[0].entries if not e.removed]
    assert entries == ["skinType", "Name"]
    assert txt.dirty is True


def test_cleanup_txt_keys_removes_empty_section():
    units = make_doc("unit", "[h000]\n_parent=hfoo\n")
    txt = make_doc("txt", "[h000]\nskinType=unit\nName=x\n")
    metadata = {"unit": {"name": FieldMetadata(key="Name")}}
    cleanup_txt_keys({"unit": units, "txt": txt}, {}, metadata)
    assert live_names(txt) == []


def test_cleanup_txt_keys_unknown_object_untouched():
    txt = make_doc("txt", "[h009]\nskinType=unit\nName=x\n")
    metadata = {"unit": {"name": FieldMetadata(key="Name")}}
    changed = cleanup_txt_keys({"txt": txt}, {}, metadata)
    assert changed is False
    assert live_names(txt) == ["h009"]