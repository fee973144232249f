"""Removal of custom objects that nothing in the map refers to."""

from __future__ import annotations

import string
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from .errors import ParseError, W3xError
from .ini import (
    IniEntry,
    IniSection,
    is_text_content_key,
    normalize_identifier,
    parse_int32,
    parse_value,
    split_simple_csv,
)
from .rules import (
    OBJECT_TYPES,
    Defaults,
    LoadedDocument,
    Metadata,
    SearchMap,
    lookup_default_section,
    resolve_default_section,
    resolve_section_code,
    resolve_section_parent,
)
from .w3i import parse_w3i

MIN_JASS_RAWCODE_VALUE = 0x41303030  # 'A000'

_SPACE = frozenset(" \t\n\r\v\f")
_DIGITS = frozenset(string.digits)
_HEX_DIGITS = frozenset(string.hexdigits)
_IDENT_START = frozenset(string.ascii_letters + "_")
_IDENT_CONTINUE = frozenset(string.ascii_letters + string.digits + "_")
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)

_HUMAN = ("hpea", "Hamg", "Hpal", "Hblm", "Hmkg", "htow", "Amic")
_ORC = ("opeo", "Obla", "Ofar", "ogre", "Otch", "Oshd")
_UNDEAD = ("Udre", "Udea", "Ucrl", "uaco", "unpl", "ugho", "Ulic")
_NIGHT_ELF = ("etol", "Edem", "ewsp", "Ewar", "Emoo", "Ekee")
_ELEVATOR = ("DTrx", "DTrf")


def _ids(*groups: tuple[str, ...] | str) -> frozenset[str]:
    result: set[str] = set()
    for group in groups:
        items = (group,) if isinstance(group, str) else group
        result.update(normalize_identifier(item) for item in items)
    return frozenset(result)


_JASS_EXTRA_FUNCTIONS: dict[str, frozenset[str]] = {
    "meleestartingunitshuman": _ids(_HUMAN, "stwp"),
    "meleestartingunitsorc": _ids(_ORC, "stwp"),
    "meleestartingunitsundead": _ids(_UNDEAD, "stwp"),
    "meleestartingunitsnightelf": _ids(_NIGHT_ELF, "stwp"),
    "meleestartingunitsunknownrace": _ids("nshe"),
    "meleegrantitemstohero": _ids("stwp"),
    "meleegrantitemstotrainedhero": _ids("stwp"),
    "meleegrantitemstohiredhero": _ids("stwp"),
    "meleegrantheroitems": _ids("stwp"),
    "meleerandomheroloc": _ids("stwp"),
    "changeelevatorwallblocker": _ids("DTep"),
    "nearbyelevatorexistsenum": _ids(_ELEVATOR),
    "nearbyelevatorexists": _ids(_ELEVATOR),
    "changeelevatorwalls": _ids("DTep", _ELEVATOR),
    "meleestartingunitsforplayer": _ids(_HUMAN, _ORC, _UNDEAD, _NIGHT_ELF, "stwp"),
    "meleestartingunits": _ids(_HUMAN, _ORC, _UNDEAD, _NIGHT_ELF, "nshe", "stwp"),
}

_CREEP_FUNCTIONS = frozenset({"chooserandomcreep", "chooserandomcreepbj"})
_BUILDING_FUNCTIONS = frozenset({"chooserandomnpbuilding", "chooserandomnpbuildingbj"})
_ITEM_FUNCTIONS = frozenset({
    "chooserandomitem", "chooserandomitembj", "chooserandomitemex",
    "chooserandomitemexbj", "updateeachstockbuildingenum",
})
_MARKETPLACE_FUNCTIONS = frozenset({
    "updateeachstockbuilding", "performstockupdates", "startstockupdates",
    "initneutralbuildings", "initblizzard",
})

_MUST_MARK: dict[str, tuple[str, str]] = {
    normalize_identifier(source): (normalize_identifier(target), target_type)
    for source, target, target_type in (
        ("Asac", "ushd", "unit"),
        ("Alam", "ushd", "unit"),
        ("Aspa", "Bspa", "buff"),
        ("Amil", "Bmil", "buff"),
        ("AHav", "BHav", "buff"),
        ("Aphx", "Bphx", "buff"),
        ("Apxf", "Bpxf", "buff"),
        ("Auns", "Buns", "buff"),
        ("Asta", "Bstt", "buff"),
        ("Achd", "Bchd", "buff"),
        ("Aoar", "Boar", "buff"),
        ("Aarm", "Barm", "buff"),
    )
}


@dataclass
class JassSearchResult:
    """Object ids and random-pick functions found in the map script."""

    ids: set[str] = field(default_factory=set)
    creeps: bool = False
    building: bool = False
    item: bool = False
    marketplace: bool = False


@dataclass
class DooSearchResult:
    """Destructable and doodad ids placed on the map."""

    destructable_ids: set[str] = field(default_factory=set)
    doodad_ids: set[str] = field(default_factory=set)


def rawcode_from_uint32(value: int) -> str:
    """Turn a big-endian packed integer into its four-character rawcode."""
    return "".join(chr((value >> shift) & 0xFF) for shift in (24, 16, 8, 0))


def _first_existing(candidates: list[Path]) -> Path | None:
    return next((candidate for candidate in candidates if candidate.exists()), None)


def _read_bytes(path: Path, what: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as exc:
        raise W3xError(f"Failed to read {what} file '{path}': {exc}") from exc


def _parse_unsigned(text: str, base: int) -> int | None:
    if not text:
        return None
    value = int(text, base)
    return value if value <= 0xFFFFFFFF else None


def _add_rawcode(result: JassSearchResult, rawcode: str) -> None:
    if len(rawcode) == 4:
        result.ids.add(normalize_identifier(rawcode))


def _add_rawcode_integer(result: JassSearchResult, value: int | None) -> None:
    if value is not None and value >= MIN_JASS_RAWCODE_VALUE:
        _add_rawcode(result, rawcode_from_uint32(value))


def _mark_identifier(result: JassSearchResult, identifier: str) -> None:
    name = identifier.translate(_ASCII_LOWER)
    result.ids.update(_JASS_EXTRA_FUNCTIONS.get(name, ()))
    if name in _CREEP_FUNCTIONS:
        result.creeps = True
    elif name in _BUILDING_FUNCTIONS:
        result.building = True
    elif name in _ITEM_FUNCTIONS:
        result.item = True
    elif name in _MARKETPLACE_FUNCTIONS:
        result.marketplace = True


def _scan_while(content: str, pos: int, allowed: frozenset[str]) -> int:
    size = len(content)
    while pos < size and content[pos] in allowed:
        pos += 1
    return pos


def scan_jass(content: str | bytes) -> JassSearchResult:
    """Collect rawcodes and notable function calls from a JASS script."""
    if isinstance(content, (bytes, bytearray, memoryview)):
        content = bytes(content).decode("latin-1")
    result = JassSearchResult()
    size = len(content)
    pos = 0
    while pos < size:
        ch = content[pos]
        if ch in _SPACE:
            pos += 1
            continue
        if ch == "/" and content.startswith("//", pos):
            pos += 2
            while pos < size and content[pos] not in "\r\n":
                pos += 1
            continue
        if ch == '"':
            pos += 1
            while pos < size:
                if content[pos] == "\\" and pos + 1 < size:
                    pos += 2
                    continue
                if content[pos] == '"':
                    pos += 1
                    break
                pos += 1
            continue
        if ch == "'" and pos + 5 < size and content[pos + 5] == "'":
            body = content[pos + 1:pos + 5]
            if all(ord(c) >= 32 for c in body):
                _add_rawcode(result, body)
                pos += 6
                continue
        if ch == "$":
            end = _scan_while(content, pos + 1, _HEX_DIGITS)
            _add_rawcode_integer(result, _parse_unsigned(content[pos + 1:end], 16))
            pos = end
            continue
        if ch in _DIGITS:
            if ch == "0" and pos + 1 < size and content[pos + 1] in "xX":
                end = _scan_while(content, pos + 2, _HEX_DIGITS)
                _add_rawcode_integer(result, _parse_unsigned(content[pos + 2:end], 16))
                pos = end
                continue
            end = _scan_while(content, pos + 1, _DIGITS)
            _add_rawcode_integer(result, _parse_unsigned(content[pos:end], 10))
            pos = end
            continue
        if ch in _IDENT_START:
            end = _scan_while(content, pos + 1, _IDENT_CONTINUE)
            _mark_identifier(result, content[pos:end])
            pos = end
            continue
        pos += 1
    return result


def load_jass_search_result(input_dir: str | Path) -> JassSearchResult:
    """Scan the map script, if the directory holds one."""
    root = Path(input_dir)
    path = _first_existing([
        root / "war3map.j",
        root / "map" / "war3map.j",
        root / "scripts" / "war3map.j",
        root / "map" / "scripts" / "war3map.j",
    ])
    if path is None:
        return JassSearchResult()
    return scan_jass(_read_bytes(path, "JASS"))


class _Cursor:
    """Bounds-checked reader that raises ParseError with the given message."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def has(self, count: int) -> bool:
        return self._pos + count <= len(self._data)

    def read(self, count: int, message: str) -> bytes:
        if not self.has(count):
            raise ParseError(message)
        chunk = self._data[self._pos:self._pos + count]
        self._pos += count
        return chunk

    def skip(self, count: int, message: str) -> None:
        self.read(count, message)

    def int32(self, message: str) -> int:
        return int.from_bytes(self.read(4, message), "little", signed=True)

    def peek(self, raw: bytes) -> bool:
        return len(raw) == 4 and self._data[self._pos:self._pos + 4] == raw


def scan_doo(content: bytes) -> DooSearchResult:
    """Collect destructable and doodad ids from war3map.doo data."""
    cursor = _Cursor(bytes(content))
    header = "war3map.doo header is truncated"
    cursor.int32(header)
    version = cursor.int32(header)
    cursor.int32(header)
    destructable_count = cursor.int32(header)

    result = DooSearchResult()
    for _ in range(destructable_count):
        raw = cursor.read(4, "war3map.doo destructable rawcode table is truncated")
        result.destructable_ids.add(normalize_identifier(raw.decode("latin-1")))
        if version < 8:
            cursor.skip(4 + 7 * 4 + 1 + 1 + 4, "war3map.doo legacy destructable block is truncated")
            continue
        cursor.skip(4 + 7 * 4, "war3map.doo destructable transform block is truncated")
        if cursor.peek(raw):
            cursor.skip(4, "war3map.doo TM variation rawcode is truncated")
        table_header = "war3map.doo destructable random table header is truncated"
        cursor.skip(2, table_header)
        set_count = cursor.int32(table_header)
        for _ in range(set_count):
            item_count = cursor.int32("war3map.doo destructable random item set is truncated")
            if item_count > 0:
                cursor.skip(8 * item_count, "war3map.doo destructable random item entry is truncated")
        cursor.int32("war3map.doo destructable editor id is truncated")

    if not cursor.has(8):
        return result
    cursor.int32("")
    doodad_count = cursor.int32("")
    for _ in range(doodad_count):
        raw = cursor.read(4, "war3map.doo doodad block is truncated")
        cursor.skip(12, "war3map.doo doodad block is truncated")
        result.doodad_ids.add(normalize_identifier(raw.decode("latin-1")))
    return result


def load_doo_search_result(input_dir: str | Path) -> DooSearchResult:
    """Scan war3map.doo, if the directory holds one."""
    root = Path(input_dir)
    path = _first_existing([root / "war3map.doo", root / "map" / "war3map.doo"])
    if path is None:
        return DooSearchResult()
    return scan_doo(_read_bytes(path, "DOO"))


def load_map_main_ground(input_dir: str | Path) -> str:
    """The main ground tileset letter from war3map.w3i, or '\\0' if absent."""
    root = Path(input_dir)
    path = _first_existing([root / "war3map.w3i", root / "map" / "war3map.w3i"])
    if path is None:
        return "\0"
    return parse_w3i(_read_bytes(path, "W3I")).main_ground


@dataclass
class _Node:
    type: str
    section_index: int
    normalized_id: str
    parent_id: str
    code: str
    is_custom: bool
    marked: bool = False


def _node_key(type_name: str, id: str) -> str:
    return f"{type_name}:{id}"


def _node_section(documents: dict[str, LoadedDocument], node: _Node) -> IniSection | None:
    document = documents.get(node.type)
    if document is None or not document.exists:
        return None
    sections = document.document.sections
    if node.section_index >= len(sections):
        return None
    return sections[node.section_index]


def _effective_scalar(
    type_name: str, section: IniSection, defaults: Defaults, key: str
) -> str | None:
    value = section.get_scalar(key)
    if value is not None:
        return value
    default_section = resolve_default_section(type_name, section, defaults)
    if default_section is not None:
        return default_section.get_scalar(key)
    return None


def _effective_int(type_name: str, section: IniSection, defaults: Defaults, key: str) -> int:
    value = _effective_scalar(type_name, section, defaults, key)
    if value is None:
        return 0
    parsed = parse_int32(value)
    return parsed if parsed is not None else 0


def _effective_entry(
    section: IniSection, default_section: IniSection | None, key: str
) -> IniEntry | None:
    entry = section.find_entry(key)
    if entry is None and default_section is not None:
        entry = default_section.find_entry(key)
    return entry


def _reference_ids(entry: IniEntry) -> list[str]:
    return [
        part
        for value in parse_value(entry.value).values
        for part in split_simple_csv(value)
        if part
    ]


def _matches_tileset(section: IniSection, defaults: Defaults, main_ground: str) -> bool:
    tilesets = _effective_scalar("unit", section, defaults, "tilesets")
    if not tilesets:
        return False
    lowered = tilesets.translate(_ASCII_LOWER)
    if lowered == "*" or main_ground == "\0":
        return True
    return main_ground.translate(_ASCII_LOWER) in lowered


def _is_marketplace_section(section: IniSection, defaults: Defaults) -> bool:
    if normalize_identifier(resolve_section_code("unit", section, defaults)) == "nmrk":
        return True
    name = _effective_scalar("unit", section, defaults, "_name")
    return name is not None and normalize_identifier(name) == "marketplace"


def _is_marketplace_id(documents: dict[str, LoadedDocument], defaults: Defaults, id: str) -> bool:
    units = documents.get("unit")
    if units is not None and units.exists:
        current = units.document.find_section(id)
        if current is not None:
            return _is_marketplace_section(current, defaults)
    base = lookup_default_section(defaults, "unit", id)
    if base is not None:
        return _is_marketplace_section(base, defaults)
    return normalize_identifier(id) == "nmrk"


class _Marker:
    """Reachability walk over the map's object sections."""

    def __init__(self, documents: dict[str, LoadedDocument], defaults: Defaults, search_map: SearchMap):
        self.documents = documents
        self.defaults = defaults
        self.search_map = search_map
        self.nodes: list[_Node] = []
        self.lookup: dict[str, int] = {}
        self.pending: deque[int] = deque()
        for type_name in OBJECT_TYPES:
            document = documents.get(type_name)
            if document is None or not document.exists:
                continue
            for index, section in enumerate(document.document.sections):
                if section.removed:
                    continue
                node = _Node(
                    type=type_name,
                    section_index=index,
                    normalized_id=normalize_identifier(section.name),
                    parent_id=normalize_identifier(resolve_section_parent(type_name, section, defaults)),
                    code=normalize_identifier(resolve_section_code(type_name, section, defaults)),
                    is_custom=(
                        section.get_scalar("_parent") is not None
                        or lookup_default_section(defaults, type_name, section.name) is None
                    ),
                )
                self.lookup.setdefault(_node_key(type_name, node.normalized_id), len(self.nodes))
                self.nodes.append(node)

    def mark(self, index: int) -> None:
        if index >= len(self.nodes) or self.nodes[index].marked:
            return
        self.nodes[index].marked = True
        self.pending.append(index)

    def mark_key(self, type_name: str, id: str) -> None:
        index = self.lookup.get(_node_key(type_name, id))
        if index is not None:
            self.mark(index)

    def live_sections(self):
        for index, node in enumerate(self.nodes):
            section = _node_section(self.documents, node)
            if section is not None and not section.removed:
                yield index, node, section

    def drain(self) -> None:
        while self.pending:
            node = self.nodes[self.pending.popleft()]
            section = _node_section(self.documents, node)
            if section is None or section.removed:
                continue
            default_section = resolve_default_section(node.type, section, self.defaults)
            if node.parent_id:
                self.mark_key(node.type, node.parent_id)
            for relation_key in (normalize_identifier(node.type), node.code):
                if not relation_key:
                    continue
                for relation in self.search_map.get(relation_key, ()):
                    entry = _effective_entry(section, default_section, relation.field)
                    if entry is None:
                        continue
                    for id in _reference_ids(entry):
                        normalized_id = normalize_identifier(id)
                        if not normalized_id:
                            continue
                        for target_type in relation.target_types:
                            self.mark_key(target_type, normalized_id)
            target = _MUST_MARK.get(node.code)
            if target is not None:
                self.mark_key(target[1], target[0])


def remove_unused_objects(
    documents: dict[str, LoadedDocument],
    defaults: Defaults,
    search_map: SearchMap,
    jass_result: JassSearchResult,
    doo_result: DooSearchResult,
    main_ground: str,
) -> dict[str, set[str]]:
    """Remove custom objects nothing refers to; return the removed ids by type."""
    marker = _Marker(documents, defaults, search_map)

    for id in jass_result.ids:
        for type_name in OBJECT_TYPES:
            marker.mark_key(type_name, id)
    for id in doo_result.destructable_ids:
        marker.mark_key("destructable", id)
        marker.mark_key("doodad", id)
    for id in doo_result.doodad_ids:
        marker.mark_key("doodad", id)

    for index, node, section in marker.live_sections():
        if node.type == "unit":
            race = _effective_scalar("unit", section, defaults, "race") or ""
            if normalize_identifier(race) == "creeps" and _matches_tileset(section, defaults, main_ground):
                is_building = _effective_int("unit", section, defaults, "isbldg")
                special = _effective_int("unit", section, defaults, "special")
                neutral_random = _effective_int("unit", section, defaults, "nbrandom")
                if jass_result.creeps and is_building == 0 and special == 0:
                    marker.mark(index)
                if jass_result.building and is_building == 1 and neutral_random == 1:
                    marker.mark(index)
        if (
            node.type == "item"
            and jass_result.item
            and _effective_int("item", section, defaults, "pickrandom") == 1
        ):
            marker.mark(index)

    marker.drain()

    if jass_result.marketplace and not jass_result.item:
        uses_marketplace = any(_is_marketplace_id(documents, defaults, id) for id in jass_result.ids)
        if not uses_marketplace:
            for node in marker.nodes:
                if node.type != "unit" or not node.marked:
                    continue
                section = _node_section(documents, node)
                if section is not None and _is_marketplace_section(section, defaults):
                    uses_marketplace = True
                    break
        if uses_marketplace:
            for index, node, section in marker.live_sections():
                if (
                    node.type == "item"
                    and _effective_int("item", section, defaults, "pickrandom") == 1
                    and _effective_int("item", section, defaults, "sellable") == 1
                ):
                    marker.mark(index)
        marker.drain()

    deleted: dict[str, set[str]] = {}
    for node in marker.nodes:
        if not node.is_custom or node.marked:
            continue
        document = documents[node.type]
        section = document.document.sections[node.section_index]
        if not section.removed:
            section.removed = True
            document.dirty = True
            deleted.setdefault(node.type, set()).add(node.normalized_id)

    txt = documents.get("txt")
    if txt is None or not txt.exists:
        return deleted
    for section in txt.document.sections:
        if section.removed:
            continue
        skin_entry = section.find_entry("skintype")
        if skin_entry is None:
            continue
        object_id = _skin_object_id(section)
        if not object_id:
            continue
        skin_types = parse_value(skin_entry.value).values
        if any(object_id in deleted.get(normalize_identifier(skin), ()) for skin in skin_types):
            section.removed = True
            txt.dirty = True
    return deleted


def _skin_object_id(section: IniSection) -> str:
    value = section.get_scalar("skinnableid")
    return normalize_identifier(section.name if value is None else value)


def _origin_key(key: str) -> str:
    return key.partition(":")[0]


def cleanup_txt_keys(
    documents: dict[str, LoadedDocument], defaults: Defaults, metadata: Metadata
) -> bool:
    """Drop txt keys that the object tables already carry; return whether anything changed."""
    txt = documents.get("txt")
    if txt is None or not txt.exists:
        return False

    removable_by_type: dict[str, set[str]] = {}
    for type_name in OBJECT_TYPES:
        table = metadata.get(type_name)
        if table is None:
            continue
        keys = removable_by_type.setdefault(type_name, set())
        for meta in table.values():
            if not meta.key:
                continue
            origin = _origin_key(normalize_identifier(meta.key))
            if origin:
                keys.add(origin)

    changed = False
    for section in txt.document.sections:
        if section.removed:
            continue
        skin_entry = section.find_entry("skintype")
        if skin_entry is None:
            continue
        object_id = _skin_object_id(section)
        if not object_id:
            continue

        removable: set[str] = set()
        for skin_type in parse_value(skin_entry.value).values:
            type_name = normalize_identifier(skin_type)
            document = documents.get(type_name)
            in_current = (
                document is not None
                and document.exists
                and document.document.find_section(object_id) is not None
            )
            in_defaults = lookup_default_section(defaults, type_name, object_id) is not None
            if in_current or in_defaults:
                removable |= removable_by_type.get(type_name, set())
        if not removable:
            continue

        for entry in section.entries:
            if entry.removed:
                continue
            key = normalize_identifier(entry.key)
            if is_text_content_key(key) and _origin_key(key) in removable:
                entry.removed = True
                changed = True

        if not section.has_content("txt"):
            section.removed = True
            changed = True

    txt.dirty = txt.dirty or changed
    return changed