import pytest

from w3xkit.cleanup import apply_content_cleanup, apply_pack_cleanup
from w3xkit.errors import DataNotFoundError
from w3xkit.options import PackOptions, PackProfile


def _write(path, text):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(text.encode("utf-8"))


@pytest.fixture
def prebuilt(tmp_path):
    root = tmp_path / "prebuilt"
    _write(root / "Custom" / "unit.ini", "[hfoo]\nHp=420\nName=Footman\n")
    _write(root / "Custom" / "ability.ini", "[AHbz]\n_max_level=3\nDataA={10,20,30}\n")
    return root


@pytest.fixture
def map_dir(tmp_path):
    directory = tmp_path / "map"
    directory.mkdir()
    return directory


def test_default_profile_leaves_files(map_dir, prebuilt):
    _write(map_dir / "war3map.wtg", "x")
    options = PackOptions(remove_we_only=True, remove_same=True)
    apply_pack_cleanup(map_dir, options, prebuilt)
    assert (map_dir / "war3map.wtg").exists()


def test_remove_we_only(map_dir):
    _write(map_dir / "war3map.wtg", "x")
    _write(map_dir / "war3mapunits.doo", "x")
    _write(map_dir / "war3map.j", "x")
    apply_pack_cleanup(map_dir, PackOptions(profile=PackProfile.SLK, remove_we_only=True))
    assert not (map_dir / "war3map.wtg").exists()
    assert not (map_dir / "war3mapunits.doo").exists()
    assert (map_dir / "war3map.j").exists()


def test_read_slk_removes_superseded_files(map_dir):
    _write(map_dir / "ability.ini", "")
    _write(map_dir / "units" / "abilitydata.slk", "x")
    _write(map_dir / "war3map.w3a", "x")
    _write(map_dir / "destructable.ini", "")
    _write(map_dir / "war3map.w3b", "x")
    _write(map_dir / "war3map.w3h", "x")
    options = PackOptions(profile=PackProfile.SLK, read_slk=True, slk_doodad=False)
    apply_pack_cleanup(map_dir, options)
    assert not (map_dir / "units" / "abilitydata.slk").exists()
    assert not (map_dir / "war3map.w3a").exists()
    assert (map_dir / "war3map.w3b").exists()
    assert (map_dir / "war3map.w3h").exists()


def test_missing_prebuilt_root_raises(map_dir, tmp_path):
    options = PackOptions(profile=PackProfile.SLK, remove_same=True)
    with pytest.raises(DataNotFoundError):
        apply_content_cleanup(map_dir, options, tmp_path / "absent")
    with pytest.raises(DataNotFoundError):
        apply_content_cleanup(map_dir, options)


def test_no_passes_needs_no_prebuilt(map_dir):
    _write(map_dir / "unit.ini", "[hfoo]\nHp=420\n")
    apply_content_cleanup(map_dir, PackOptions(profile=PackProfile.SLK))
    assert (map_dir / "unit.ini").read_bytes() == b"[hfoo]\nHp=420\n"


def test_remove_same_drops_default_values(map_dir, prebuilt):
    _write(map_dir / "unit.ini", "[hfoo]\nHp=420\nName=Knight\n")
    apply_content_cleanup(map_dir, PackOptions(profile=PackProfile.SLK, remove_same=True), prebuilt)
    assert (map_dir / "unit.ini").read_bytes() == b"[hfoo]\r\nName=Knight\r\n"


def test_remove_same_deletes_empty_file(map_dir, prebuilt):
    _write(map_dir / "unit.ini", "[hfoo]\nHp=420\nName=Footman\n")
    apply_content_cleanup(map_dir, PackOptions(profile=PackProfile.SLK, remove_same=True), prebuilt)
    assert not (map_dir / "unit.ini").exists()


def test_remove_unused_drops_unreferenced_custom_unit(map_dir, prebuilt):
    _write(map_dir / "unit.ini", '[h000]\n_parent="hfoo"\nName=X\n[hfoo]\nHp=500\n')
    options = PackOptions(profile=PackProfile.SLK, remove_unused_objects=True)
    apply_content_cleanup(map_dir, options, prebuilt)
    assert (map_dir / "unit.ini").read_bytes() == b"[hfoo]\r\nHp=500\r\n"


def test_remove_unused_keeps_unit_named_in_script(map_dir, prebuilt):
    original = '[h000]\n_parent="hfoo"\nName=X\n[hfoo]\nHp=500\n'
    _write(map_dir / "unit.ini", original)
    _write(map_dir / "war3map.j", "call CreateUnit(p, 'h000', 0, 0, 0)\n")
    options = PackOptions(profile=PackProfile.SLK, remove_unused_objects=True)
    apply_content_cleanup(map_dir, options, prebuilt)
    assert (map_dir / "unit.ini").read_bytes() == original.encode("utf-8")


def test_computed_text_fills_placeholder(map_dir, prebuilt):
    _write(map_dir / "ability.ini", '[A000]\n_parent="AHbz"\nUbertip="Deals <AHbz,DataA2> damage"\n')
    options = PackOptions(profile=PackProfile.SLK, computed_text=True)
    apply_content_cleanup(map_dir, options, prebuilt)
    content = (map_dir / "ability.ini").read_bytes()
    assert b"Ubertip=Deals 20 damage\r\n" in content
    assert b"<AHbz" not in content