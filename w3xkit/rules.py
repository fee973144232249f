"""Metadata tables and the pass that drops values equal to the stock defaults."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path

from .errors import W3xError
from .ini import (
    IniDocument,
    IniEntry,
    IniSection,
    ParsedValue,
    decode_scalar_value,
    is_text_content_key,
    normalize_identifier,
    parse_boolish,
    parse_double,
    parse_ini_document,
    parse_int32,
    parse_value,
    render_ini_document,
    render_value,
    split_lines,
    split_simple_csv,
)

SOURCE_FILES: tuple[tuple[str, str], ...] = (
    ("ability", "ability.ini"),
    ("buff", "buff.ini"),
    ("unit", "unit.ini"),
    ("item", "item.ini"),
    ("upgrade", "upgrade.ini"),
    ("doodad", "doodad.ini"),
    ("destructable", "destructable.ini"),
    ("txt", "txt.ini"),
    ("misc", "misc.ini"),
)

OBJECT_TYPES: tuple[str, ...] = (
    "ability", "buff", "unit", "item", "upgrade", "doodad", "destructable",
)

_TEXT_ENCODING = "utf-8"
_TEXT_ERRORS = "surrogateescape"


class ValueType(enum.IntEnum):
    """How the values of a field are compared."""

    UNKNOWN = 0
    INTEGER = 1
    REAL = 2
    STRING = 3


@dataclass
class FieldMetadata:
    """What the metadata table says about one field."""

    key: str = ""
    type: ValueType = ValueType.UNKNOWN
    profile: bool = False
    appendindex: bool = False
    reforge: str = ""


@dataclass
class SearchEntry:
    """A field whose values refer to objects of the given types."""

    field: str
    target_types: list[str] = field(default_factory=list)


@dataclass
class LoadedDocument:
    """An ini table from the map directory, with its save state."""

    type: str
    path: Path
    document: IniDocument = field(default_factory=IniDocument)
    exists: bool = False
    dirty: bool = False


Defaults = dict[str, IniDocument]
Metadata = dict[str, dict[str, FieldMetadata]]
SearchMap = dict[str, list[SearchEntry]]

_TYPE_CODES = {
    0: ValueType.INTEGER,
    1: ValueType.REAL,
    2: ValueType.REAL,
    3: ValueType.STRING,
}


def _read_text(path: Path, what: str) -> str:
    try:
        with open(path, encoding=_TEXT_ENCODING, errors=_TEXT_ERRORS, newline="") as handle:
            return handle.read()
    except OSError as exc:
        raise W3xError(f"Failed to read {what} '{path}': {exc}") from exc


def _is_comment(line: str) -> bool:
    return not line or line.startswith((";", "#", "//"))


def parse_metadata(content: str) -> Metadata:
    """Parse metadata.ini text into per-table field descriptions."""
    metadata: Metadata = {}
    current_table = ""
    current_entry = ""
    for raw_line in split_lines(content):
        line = raw_line.strip(" \t\n\r\v\f")
        if _is_comment(line):
            continue
        if line[0] == "[" and line[-1] == "]":
            name = decode_scalar_value(line[1:-1])
            if name.startswith("."):
                if not current_table:
                    continue
                current_entry = normalize_identifier(name[1:])
                metadata[current_table].setdefault(current_entry, FieldMetadata())
            else:
                current_table = normalize_identifier(name)
                current_entry = ""
                metadata.setdefault(current_table, {})
            continue
        if not current_table or not current_entry:
            continue
        key, sep, rest = line.partition("=")
        if not sep:
            continue
        key = normalize_identifier(key)
        meta = metadata[current_table][current_entry]
        if key == "type":
            code = parse_int32(rest)
            if code is not None:
                meta.type = _TYPE_CODES.get(code, ValueType.UNKNOWN)
        elif key == "key":
            meta.key = normalize_identifier(rest)
        elif key == "profile":
            meta.profile = bool(parse_boolish(rest))
        elif key == "appendindex":
            meta.appendindex = bool(parse_boolish(rest))
        elif key == "reforge":
            meta.reforge = normalize_identifier(rest)
    return metadata


def load_metadata(path: str | Path) -> Metadata:
    """Load metadata.ini; a missing file gives an empty table."""
    path = Path(path)
    if not path.exists():
        return {}
    return parse_metadata(_read_text(path, "metadata ini"))


def parse_search_metadata(content: str) -> SearchMap:
    """Parse search.ini text: which fields reference which object types."""
    search_map: SearchMap = {}
    for section in parse_ini_document(content).sections:
        if section.removed:
            continue
        entries = search_map.setdefault(normalize_identifier(section.name), [])
        for entry in section.entries:
            if entry.removed:
                continue
            targets = split_simple_csv(decode_scalar_value(entry.value))
            entries.append(
                SearchEntry(
                    field=normalize_identifier(entry.key),
                    target_types=[normalize_identifier(target) for target in targets],
                )
            )
    return search_map


def load_search_metadata(path: str | Path) -> SearchMap:
    """Load search.ini; a missing file gives an empty map."""
    path = Path(path)
    if not path.exists():
        return {}
    return parse_search_metadata(_read_text(path, "search ini"))


def load_default_documents(prebuilt_root: str | Path) -> Defaults:
    """Load the stock object tables found under <prebuilt_root>/Custom."""
    defaults: Defaults = {}
    for type_name, filename in SOURCE_FILES:
        path = Path(prebuilt_root) / "Custom" / filename
        if not path.exists():
            continue
        defaults[type_name] = parse_ini_document(_read_text(path, "default ini"))
    return defaults


def load_input_document(input_dir: str | Path, type_name: str, filename: str) -> LoadedDocument:
    """Load one table from the map directory; missing files are marked absent."""
    loaded = LoadedDocument(type=type_name, path=Path(input_dir) / filename)
    if not loaded.path.exists():
        return loaded
    loaded.document = parse_ini_document(_read_text(loaded.path, "source ini"))
    loaded.exists = True
    return loaded


def save_document(document: LoadedDocument) -> None:
    """Write a changed table back, deleting the file if nothing is left."""
    if not document.exists or not document.dirty:
        return
    rendered = render_ini_document(document.document)
    if not rendered:
        try:
            document.path.unlink()
        except OSError:
            pass
        return
    try:
        with open(
            document.path, "w", encoding=_TEXT_ENCODING, errors=_TEXT_ERRORS, newline=""
        ) as handle:
            handle.write(rendered)
    except OSError as exc:
        raise W3xError(f"Failed to write cleaned ini '{document.path}': {exc}") from exc


def lookup_default_section(defaults: Defaults, type_name: str, id: str) -> IniSection | None:
    """Find a stock section of the given type by id."""
    document = defaults.get(type_name)
    if document is None:
        return None
    return document.find_section(id)


def resolve_section_parent(type_name: str, section: IniSection, defaults: Defaults) -> str:
    """The object's parent id: its _parent, or itself if it is a stock object."""
    parent = section.get_scalar("_parent")
    if parent is not None:
        return parent
    same = lookup_default_section(defaults, type_name, section.name)
    return same.name if same is not None else ""


def resolve_default_section(
    type_name: str, section: IniSection, defaults: Defaults
) -> IniSection | None:
    """The stock section an object inherits its values from."""
    parent = section.get_scalar("_parent")
    if parent is not None:
        return lookup_default_section(defaults, type_name, parent)
    return lookup_default_section(defaults, type_name, section.name)


def _code_or_name(section: IniSection) -> str:
    code = section.get_scalar("_code")
    return code if code else section.name


def resolve_section_code(type_name: str, section: IniSection, defaults: Defaults) -> str:
    """The base code of an object, following _code and _parent."""
    code = section.get_scalar("_code")
    if code:
        return code
    parent = section.get_scalar("_parent")
    if parent is not None:
        parent_section = lookup_default_section(defaults, type_name, parent)
        if parent_section is not None:
            return _code_or_name(parent_section)
        return parent
    same = lookup_default_section(defaults, type_name, section.name)
    if same is not None:
        return _code_or_name(same)
    return section.name


def resolve_field_metadata(
    metadata: Metadata, type_name: str, code: str, key: str
) -> FieldMetadata | None:
    """Look a field up in the type's table, then in the code's table."""
    normalized_key = normalize_identifier(key)
    table = metadata.get(normalize_identifier(type_name))
    if table is not None and normalized_key in table:
        return table[normalized_key]
    if code:
        table = metadata.get(normalize_identifier(code))
        if table is not None and normalized_key in table:
            return table[normalized_key]
    return None


def scalar_values_equal(lhs: str, rhs: str, value_type: ValueType) -> bool:
    """Compare two raw scalars as numbers where the type says so."""
    if value_type == ValueType.INTEGER:
        left, right = parse_int32(lhs), parse_int32(rhs)
        if left is not None and right is not None:
            return left == right
    elif value_type == ValueType.REAL:
        left_real, right_real = parse_double(lhs), parse_double(rhs)
        if left_real is not None and right_real is not None:
            return abs(left_real - right_real) < 0.000001
    return lhs == rhs


def _values_equal(lhs: ParsedValue, rhs: ParsedValue, value_type: ValueType) -> bool:
    if lhs.is_list != rhs.is_list or len(lhs.values) != len(rhs.values):
        return False
    return all(
        scalar_values_equal(left, right, value_type)
        for left, right in zip(lhs.values, rhs.values)
    )


def trim_slk_list(data: list[str], defaults: list[str], value_type: ValueType) -> list[str]:
    """Drop trailing items equal to the default; the last default repeats."""
    last_kept = -1
    for i, item in enumerate(data):
        default = defaults[min(i, len(defaults) - 1)] if defaults else ""
        if not scalar_values_equal(item, default, value_type):
            last_kept = i
    return list(data[: last_kept + 1])


def trim_txt_list(
    data: list[str], defaults: list[str], value_type: ValueType, appendindex: bool
) -> list[str]:
    """Drop trailing items equal to the default, txt style."""
    if not data:
        return []
    if appendindex:
        last_kept = -1
        for i, item in enumerate(data):
            default = defaults[i] if i < len(defaults) else ""
            if not scalar_values_equal(item, default, value_type):
                last_kept = i
        return list(data[: last_kept + 1])

    last_kept = -1
    saw_difference = False
    for i in range(len(data) - 1, -1, -1):
        if i >= len(defaults):
            previous = data[i - 1] if i > 0 else ""
            if saw_difference or not scalar_values_equal(data[i], previous, value_type):
                saw_difference = True
                last_kept = max(last_kept, i)
            continue
        if not scalar_values_equal(data[i], defaults[i], value_type):
            saw_difference = True
            last_kept = max(last_kept, i)
    if not saw_difference:
        return []
    return list(data[: last_kept + 1])


def _is_txt_style(document_type: str, meta: FieldMetadata | None) -> bool:
    return document_type == "txt" or (meta is not None and meta.profile)


def _remove_same_entry(
    document_type: str,
    section: IniSection,
    entry: IniEntry,
    default_section: IniSection,
    meta: FieldMetadata | None,
    value_type: ValueType,
) -> bool:
    default_entry = default_section.find_entry(entry.key)
    if default_entry is None:
        return False

    current = parse_value(entry.value)
    default = parse_value(default_entry.value)
    if meta is not None and meta.reforge:
        reforge_entry = section.find_entry(meta.reforge)
        if reforge_entry is not None:
            default = parse_value(reforge_entry.value)

    if current.is_list and default.is_list:
        if _is_txt_style(document_type, meta):
            trimmed = trim_txt_list(
                current.values,
                default.values,
                value_type,
                meta is not None and meta.appendindex,
            )
        else:
            trimmed = trim_slk_list(current.values, default.values, value_type)
        if not trimmed:
            entry.removed = True
            return True
        rendered = render_value(ParsedValue(is_list=True, values=trimmed))
        if rendered == entry.value:
            return False
        entry.value = rendered
        return True

    if _values_equal(current, default, value_type):
        entry.removed = True
        return True
    return False


def apply_remove_same(document: LoadedDocument, defaults: Defaults, metadata: Metadata) -> bool:
    """Remove values equal to the stock defaults; return whether anything changed."""
    if not document.exists:
        return False
    is_txt = document.type == "txt"
    changed = False
    for section in document.document.sections:
        if section.removed:
            continue
        default_section = resolve_default_section(document.type, section, defaults)
        if default_section is None:
            continue
        code = resolve_section_code(document.type, section, defaults)

        for entry in section.entries:
            if entry.removed:
                continue
            normalized_key = normalize_identifier(entry.key)
            if not normalized_key or normalized_key.startswith("_"):
                continue
            if is_txt and not is_text_content_key(normalized_key):
                continue
            if is_txt:
                meta = None
                value_type = ValueType.STRING
            else:
                meta = resolve_field_metadata(metadata, document.type, code, normalized_key)
                value_type = meta.type if meta is not None else ValueType.UNKNOWN
            if _remove_same_entry(document.type, section, entry, default_section, meta, value_type):
                changed = True

        if not section.has_content(document.type):
            section.removed = True
            changed = True

    document.dirty = document.dirty or changed
    return changed