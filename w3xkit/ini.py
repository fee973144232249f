"""Reading and writing of the ini-style object tables found in unpacked maps."""

from __future__ import annotations

import re
import string
from dataclasses import dataclass, field

from .errors import InvalidFormatError

_WHITESPACE = " \t\n\r\v\f"
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)
_LONG_OPEN = "[=["
_LONG_CLOSE = "]=]"
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", '"': '"'}
_INT_PATTERN = re.compile(r"-?[0-9]+")
_DECIMAL_PATTERN = re.compile(
    r"[ \t\n\r\v\f]*[+-]?"
    r"(?:[0-9]+\.?[0-9]*(?:[eE][+-]?[0-9]+)?"
    r"|\.[0-9]+(?:[eE][+-]?[0-9]+)?"
    r"|(?i:inf(?:inity)?|nan))"
)
_HEX_PATTERN = re.compile(
    r"[ \t\n\r\v\f]*[+-]?0[xX](?:[0-9a-fA-F]+\.?[0-9a-fA-F]*|\.[0-9a-fA-F]+)"
    r"(?:[pP][+-]?[0-9]+)?"
)
_INT32_MIN = -(2**31)
_INT32_MAX = 2**31 - 1


def _trim(value: str) -> str:
    return value.strip(_WHITESPACE)


def _lower(value: str) -> str:
    return value.translate(_ASCII_LOWER)


def _is_space(ch: str) -> bool:
    return ch in _WHITESPACE


def normalize_identifier(value: str) -> str:
    """Trim, drop one pair of surrounding double quotes and lower-case."""
    value = _trim(value)
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        value = value[1:-1]
    return _lower(value)


def split_lines(content: str) -> list[str]:
    """Split on LF, CR or CRLF; a final line break does not add an empty line."""
    lines = re.split(r"\r\n|\r|\n", content)
    if lines and lines[-1] == "":
        lines.pop()
    return lines


def _needs_continuation(value: str) -> bool:
    return value.count(_LONG_OPEN) > value.count(_LONG_CLOSE)


def _decode_quoted_string(value: str) -> str:
    size = len(value)
    if size < 2:
        return ""
    decoded: list[str] = []
    i = 1
    while i + 1 < size:
        ch = value[i]
        if ch == '"' and i + 2 < size and value[i + 1] == '"':
            decoded.append('"')
            i += 2
            continue
        if ch != "\\" or i + 2 >= size:
            decoded.append(ch)
            i += 1
            continue
        escaped = value[i + 1]
        decoded.append(_ESCAPES.get(escaped, escaped))
        i += 2
    return "".join(decoded)


def _decode_long_string(value: str) -> str:
    if len(value) < 6 or not value.startswith(_LONG_OPEN) or not value.endswith(_LONG_CLOSE):
        return _trim(value)
    inner = value[3:-3]
    if inner.startswith("\r\n"):
        return inner[2:]
    if inner.startswith("\n"):
        return inner[1:]
    return inner


def decode_scalar_value(value: str) -> str:
    """Decode one scalar: a quoted string, a [=[long string]=] or bare text."""
    trimmed = _trim(value)
    if not trimmed:
        return ""
    if trimmed[0] == '"' and trimmed[-1] == '"':
        return _decode_quoted_string(trimmed)
    if trimmed.startswith(_LONG_OPEN) and trimmed.endswith(_LONG_CLOSE):
        return _decode_long_string(trimmed)
    return trimmed


def _parse_array_values(value: str) -> list[str]:
    values: list[str] = []
    token: list[str] = []
    inside_quotes = False
    inside_long_string = False
    size = len(value)
    i = 0
    while i < size:
        ch = value[i]
        if inside_long_string:
            token.append(ch)
            if "".join(token[-3:]) == _LONG_CLOSE:
                inside_long_string = False
            i += 1
            continue
        if inside_quotes:
            token.append(ch)
            if ch == '"' and i + 1 < size and value[i + 1] == '"':
                token.append(value[i + 1])
                i += 2
                continue
            if ch == "\\" and i + 1 < size:
                token.append(value[i + 1])
                i += 2
                continue
            if ch == '"':
                inside_quotes = False
            i += 1
            continue
        if ch == ",":
            values.append(decode_scalar_value("".join(token)))
            token.clear()
        elif ch == '"':
            inside_quotes = True
            token.append(ch)
        elif value.startswith(_LONG_OPEN, i):
            inside_long_string = True
            token.append(_LONG_OPEN)
            i += 3
            continue
        else:
            token.append(ch)
        i += 1
    values.append(decode_scalar_value("".join(token)))
    return values


@dataclass
class ParsedValue:
    """A decoded ini value: one scalar or a {braced,list}."""

    is_list: bool = False
    values: list[str] = field(default_factory=list)


def parse_value(value: str) -> ParsedValue:
    """Decode a raw ini value into its scalar or list items."""
    trimmed = _trim(value)
    if not trimmed:
        return ParsedValue()
    if trimmed[0] == "{" and trimmed[-1] == "}":
        return ParsedValue(is_list=True, values=_parse_array_values(trimmed[1:-1]))
    return ParsedValue(is_list=False, values=[decode_scalar_value(trimmed)])


def quote_ini_string(value: str) -> str:
    """Quote a scalar when it would not survive being written bare."""
    needs_quotes = (
        not value
        or any(ch in value for ch in ',"\r\n{}')
        or _is_space(value[0])
        or _is_space(value[-1])
    )
    if not needs_quotes:
        return value
    return '"' + value.replace('"', '""') + '"'


def render_value(value: ParsedValue) -> str:
    """Render a parsed value back into ini text."""
    if not value.is_list:
        return quote_ini_string(value.values[0] if value.values else "")
    return "{" + ",".join(quote_ini_string(item) for item in value.values) + "}"


@dataclass
class IniEntry:
    """One key=value line; removed entries are kept but not written."""

    key: str
    value: str
    removed: bool = False


@dataclass
class IniSection:
    """A [section] and its entries."""

    name: str
    entries: list[IniEntry] = field(default_factory=list)
    removed: bool = False

    def find_entry(self, key: str) -> IniEntry | None:
        """Return the first live entry whose key matches, ignoring case."""
        normalized = normalize_identifier(key)
        return next(
            (
                entry
                for entry in self.entries
                if not entry.removed and normalize_identifier(entry.key) == normalized
            ),
            None,
        )

    def get_scalar(self, key: str) -> str | None:
        """Return the decoded scalar value of a key, or None if absent or a list."""
        entry = self.find_entry(key)
        if entry is None:
            return None
        parsed = parse_value(entry.value)
        if not parsed.values or parsed.is_list:
            return None
        return parsed.values[0]

    def has_content(self, type_name: str) -> bool:
        """Whether any live entry carries real data (not just '_' keys)."""
        for entry in self.entries:
            if entry.removed:
                continue
            normalized_key = normalize_identifier(entry.key)
            if type_name == "txt":
                if is_text_content_key(normalized_key):
                    return True
            elif normalized_key and not normalized_key.startswith("_"):
                return True
        return False


@dataclass
class IniDocument:
    """An ordered list of sections."""

    sections: list[IniSection] = field(default_factory=list)

    def find_section(self, id: str) -> IniSection | None:
        """Return the first live section with this name, ignoring case and quotes."""
        normalized = normalize_identifier(id)
        return next(
            (
                section
                for section in self.sections
                if not section.removed and normalize_identifier(section.name) == normalized
            ),
            None,
        )


def _is_comment(line: str) -> bool:
    return not line or line.startswith((";", "#", "//"))


def parse_ini_document(content: str) -> IniDocument:
    """Parse ini text; long strings may continue over several lines."""
    document = IniDocument()
    current_section = ""
    lines = iter(split_lines(content))
    for raw_line in lines:
        line = _trim(raw_line)
        if _is_comment(line):
            continue
        if line[0] == "[" and line[-1] == "]" and len(line) >= 2:
            current_section = _trim(line[1:-1])
            document.sections.append(IniSection(name=current_section))
            continue
        if not current_section or not document.sections:
            continue

        key, sep, rest = line.partition("=")
        if not sep:
            raise InvalidFormatError(
                f"Invalid ini line without '=' inside section [{current_section}]"
            )
        raw_value = _trim(rest)
        while _needs_continuation(raw_value):
            next_line = next(lines, None)
            if next_line is None:
                break
            raw_value += "\n" + next_line
        document.sections[-1].entries.append(IniEntry(key=_trim(key), value=raw_value))
    return document


def render_ini_document(document: IniDocument) -> str:
    """Render live sections and entries with CRLF line endings."""
    blocks: list[str] = []
    for section in document.sections:
        if section.removed:
            continue
        live = [entry for entry in section.entries if not entry.removed]
        if not live:
            continue
        lines = [f"[{section.name}]\r\n"]
        lines.extend(f"{entry.key}={entry.value}\r\n" for entry in live)
        blocks.append("".join(lines))
    return "\r\n".join(blocks)


def split_simple_csv(value: str) -> list[str]:
    """Split on commas and trim each part; empty parts are kept."""
    return [_trim(part) for part in value.split(",")]


def parse_int32(value: str) -> int | None:
    """Parse a 32-bit integer; an empty value counts as 0, bad text as None."""
    stripped = decode_scalar_value(value)
    if not stripped:
        return 0
    if not _INT_PATTERN.fullmatch(stripped):
        return None
    parsed = int(stripped)
    if not _INT32_MIN <= parsed <= _INT32_MAX:
        return None
    return parsed


def parse_double(value: str) -> float | None:
    """Parse a real number; an empty value counts as 0.0, bad text as None."""
    stripped = decode_scalar_value(value)
    if not stripped:
        return 0.0
    if _HEX_PATTERN.fullmatch(stripped):
        return float.fromhex(stripped.lstrip(_WHITESPACE))
    if _DECIMAL_PATTERN.fullmatch(stripped):
        return float(stripped)
    return None


def parse_boolish(value: str) -> bool | None:
    """Read true/false/1/0; anything else gives None."""
    normalized = normalize_identifier(decode_scalar_value(value))
    if normalized in ("true", "1"):
        return True
    if normalized in ("false", "0"):
        return False
    return None


def is_text_content_key(normalized_key: str) -> bool:
    """Whether a txt key holds display text rather than bookkeeping."""
    return (
        bool(normalized_key)
        and not normalized_key.startswith("_")
        and normalized_key not in ("skintype", "skinnableid")
    )