"""Cleanup passes run on an unpacked map directory before it is packed."""

from __future__ import annotations

from pathlib import Path

from .computed import apply_computed_text_pass
from .errors import DataNotFoundError
from .options import PackOptions, PackProfile
from .rules import (
    SOURCE_FILES,
    LoadedDocument,
    apply_remove_same,
    load_default_documents,
    load_input_document,
    load_metadata,
    load_search_metadata,
    save_document,
)
from .unused import (
    cleanup_txt_keys,
    load_doo_search_result,
    load_jass_search_result,
    load_map_main_ground,
    remove_unused_objects,
)

_WE_ONLY_FILES = (
    "war3map.wtg",
    "war3map.wct",
    "war3map.imp",
    "war3map.w3s",
    "war3map.w3r",
    "war3map.w3c",
    "war3mapunits.doo",
)

# ini source -> files it replaces, and whether slk_doodad governs the pair.
_SLK_REPLACEMENTS: tuple[tuple[str, tuple[str, ...], bool], ...] = (
    ("ability.ini", ("units/abilitydata.slk", "war3map.w3a"), False),
    ("buff.ini", ("units/abilitybuffdata.slk", "war3map.w3h"), False),
    ("item.ini", ("units/itemdata.slk", "war3map.w3t"), False),
    ("upgrade.ini", ("units/upgradedata.slk", "war3map.w3q"), False),
    ("destructable.ini", ("units/destructabledata.slk", "war3map.w3b"), True),
    ("doodad.ini", ("doodads/doodads.slk", "war3map.w3d"), True),
    (
        "unit.ini",
        (
            "units/unitui.slk",
            "units/unitdata.slk",
            "units/unitbalance.slk",
            "units/unitabilities.slk",
            "units/unitweapons.slk",
        ),
        False,
    ),
    ("misc.ini", ("war3mapmisc.txt",), False),
    (
        "txt.ini",
        (
            "units/campaignabilitystrings.txt",
            "units/commonabilitystrings.txt",
            "units/campaignunitstrings.txt",
            "units/itemstrings.txt",
            "units/campaignupgradestrings.txt",
            "units/itemabilitystrings.txt",
            "units/orcunitstrings.txt",
            "doodads/doodadskins.txt",
        ),
        False,
    ),
)


def _remove_if_exists(path: Path) -> None:
    try:
        path.unlink()
    except OSError:
        pass


def _resolve_prebuilt_root(prebuilt_root: str | Path | None) -> Path:
    if prebuilt_root is None or not Path(prebuilt_root).exists():
        raise DataNotFoundError("No bundled or fallback prebuilt metadata directory was found")
    return Path(prebuilt_root)


def apply_content_cleanup(
    input_dir: str | Path, options: PackOptions, prebuilt_root: str | Path | None = None
) -> None:
    """Run the ini-level cleanup passes selected by options (slk profile only)."""
    if options.profile != PackProfile.SLK:
        return
    if not (options.remove_same or options.remove_unused_objects or options.computed_text):
        return

    root = _resolve_prebuilt_root(prebuilt_root)
    input_dir = Path(input_dir)
    defaults = load_default_documents(root)
    metadata = load_metadata(root / "metadata.ini")
    search_map = load_search_metadata(root / "search.ini")

    documents: dict[str, LoadedDocument] = {}
    for type_name, filename in SOURCE_FILES:
        loaded = load_input_document(input_dir, type_name, filename)
        if loaded.exists:
            documents[type_name] = loaded

    if options.remove_unused_objects:
        jass_result = load_jass_search_result(input_dir)
        doo_result = load_doo_search_result(input_dir)
        main_ground = load_map_main_ground(input_dir)
        remove_unused_objects(documents, defaults, search_map, jass_result, doo_result, main_ground)

    if options.computed_text:
        apply_computed_text_pass(documents, defaults)

    if options.remove_same:
        for type_name, _ in SOURCE_FILES:
            document = documents.get(type_name)
            if document is not None:
                apply_remove_same(document, defaults, metadata)
        cleanup_txt_keys(documents, defaults, metadata)

    for type_name, _ in SOURCE_FILES:
        document = documents.get(type_name)
        if document is not None:
            save_document(document)


def apply_pack_cleanup(
    input_dir: str | Path, options: PackOptions, prebuilt_root: str | Path | None = None
) -> None:
    """Drop editor-only and superseded files, then run the content passes."""
    if options.profile != PackProfile.SLK:
        return
    input_dir = Path(input_dir)

    if options.remove_we_only:
        for relative in _WE_ONLY_FILES:
            _remove_if_exists(input_dir / relative)

    if options.read_slk:
        for source, replaced, doodad_controlled in _SLK_REPLACEMENTS:
            if doodad_controlled and not options.slk_doodad:
                continue
            if not (input_dir / source).exists():
                continue
            for relative in replaced:
                _remove_if_exists(input_dir / relative)

    apply_content_cleanup(input_dir, options, prebuilt_root)