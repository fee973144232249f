"""Substitution of computed <id,field> placeholders in tooltip text."""

from __future__ import annotations

import math
from dataclasses import dataclass

from .ini import IniSection, ParsedValue, normalize_identifier, parse_double, parse_int32, parse_value, render_value, split_simple_csv
from .rules import Defaults, LoadedDocument, lookup_default_section, resolve_default_section

_LOOKUP_TYPES = ("ability", "unit", "item", "upgrade")
_ASCII_DIGITS = "0123456789"

_COMPUTED_FIELDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ability", ("researchubertip", "ubertip")),
    ("item", ("ubertip", "description")),
    ("upgrade", ("ubertip",)),
)

# Derived keys: name -> (base fields, combine function).
_DAMAGE_KEYS = {
    "mindmg1": ("dmgplus1", "dice1", None),
    "maxdmg1": ("dmgplus1", "dice1", "sides1"),
    "mindmg2": ("dmgplus2", "dice2", None),
    "maxdmg2": ("dmgplus2", "dice2", "sides2"),
}


@dataclass
class _LookupObject:
    type: str = ""
    current: IniSection | None = None
    defaults: IniSection | None = None

    def sections(self):
        return (section for section in (self.current, self.defaults) if section is not None)


def _resolve_lookup_object(
    documents: dict[str, LoadedDocument], defaults: Defaults, id: str
) -> _LookupObject:
    normalized_id = normalize_identifier(id)
    for type_name in _LOOKUP_TYPES:
        document = documents.get(type_name)
        if document is not None and document.exists:
            current = document.document.find_section(normalized_id)
            if current is not None:
                return _LookupObject(
                    type=type_name,
                    current=current,
                    defaults=resolve_default_section(type_name, current, defaults),
                )
        base = lookup_default_section(defaults, type_name, normalized_id)
        if base is not None:
            return _LookupObject(type=type_name, defaults=base)
    return _LookupObject()


def _max_level(obj: _LookupObject) -> int:
    for section in obj.sections():
        entry = section.find_entry("_max_level")
        if entry is None:
            continue
        parsed = parse_int32(entry.value)
        if parsed is not None:
            return max(1, parsed)
    return 1


def _effective_field(obj: _LookupObject, key: str) -> ParsedValue | None:
    for section in obj.sections():
        entry = section.find_entry(key)
        if entry is not None:
            return parse_value(entry.value)
    return None


def _source_value(obj: _LookupObject, key: str) -> str | None:
    if not obj.type:
        return None
    exact = _effective_field(obj, key)
    if exact is not None and not exact.is_list and exact.values:
        return exact.values[0]

    normalized_key = normalize_identifier(key)
    base_key = normalized_key.rstrip(_ASCII_DIGITS)
    if base_key == normalized_key:
        return None
    level = parse_int32(normalized_key[len(base_key):])
    if level is None:
        return None

    values = _effective_field(obj, base_key)
    if values is None or not values.is_list:
        return None
    if level > _max_level(obj):
        return "0"
    index = max(1, level) - 1
    if index >= len(values.values):
        return None
    return values.values[index]


def resolve_computed_value(
    documents: dict[str, LoadedDocument], defaults: Defaults, id: str, key: str
) -> float | None:
    """The numeric value a placeholder <id,key> stands for, or None."""
    obj = _resolve_lookup_object(documents, defaults, id)
    if not obj.type:
        return None

    def read(field: str) -> float | None:
        value = _source_value(obj, field)
        return None if value is None else parse_double(value)

    normalized_key = normalize_identifier(key)
    damage = _DAMAGE_KEYS.get(normalized_key)
    if damage is not None:
        plus_key, dice_key, sides_key = damage
        plus, dice = read(plus_key), read(dice_key)
        if plus is None or dice is None:
            return None
        if sides_key is None:
            return plus + dice
        sides = read(sides_key)
        if sides is None:
            return None
        return plus + dice * sides
    if normalized_key == "realhp":
        return read("hp")
    return read(normalized_key)


def format_computed_number(value: float) -> str:
    """Render a computed number as an integer, rounding down with a small tolerance."""
    return str(math.floor(value + 0.00005))


def apply_computed_text(text: str, documents: dict[str, LoadedDocument], defaults: Defaults) -> str:
    """Replace every resolvable <id,key[,%]> placeholder in text."""
    output: list[str] = []
    pos = 0
    size = len(text)
    while pos < size:
        open_pos = text.find("<", pos)
        if open_pos < 0:
            output.append(text[pos:])
            break
        output.append(text[pos:open_pos])
        close_pos = text.find(">", open_pos + 1)
        if close_pos < 0:
            output.append(text[open_pos:])
            break

        literal = text[open_pos:close_pos + 1]
        pos = close_pos + 1
        parts = split_simple_csv(text[open_pos + 1:close_pos])
        if len(parts) < 2:
            output.append(literal)
            continue
        value = resolve_computed_value(documents, defaults, parts[0], parts[1])
        if value is None or not math.isfinite(value):
            output.append(literal)
            continue
        if len(parts) >= 3 and parts[2] == "%":
            value *= 100.0
        if not math.isfinite(value):
            output.append(literal)
            continue
        output.append(format_computed_number(value))
    return "".join(output)


def _apply_computed_field(
    section: IniSection, key: str, documents: dict[str, LoadedDocument], defaults: Defaults
) -> bool:
    entry = section.find_entry(key)
    if entry is None:
        return False
    parsed = parse_value(entry.value)
    computed = [apply_computed_text(value, documents, defaults) for value in parsed.values]
    if computed == parsed.values:
        return False
    parsed.values = computed
    entry.value = render_value(parsed)
    return True


def apply_computed_text_pass(documents: dict[str, LoadedDocument], defaults: Defaults) -> bool:
    """Fill in placeholders in ability, item and upgrade tooltips; return whether anything changed."""
    changed = False
    for type_name, fields in _COMPUTED_FIELDS:
        document = documents.get(type_name)
        if document is None or not document.exists:
            continue
        for section in document.document.sections:
            if section.removed:
                continue
            section_changed = False
            for key in fields:
                if _apply_computed_field(section, key, documents, defaults):
                    section_changed = True
            if section_changed:
                document.dirty = True
                changed = True
    return changed