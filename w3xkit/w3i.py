"""Reader for the war3map.w3i map information file."""

from __future__ import annotations

import struct
from dataclasses import dataclass, field

from .errors import InvalidFormatError, ParseError

_INT32 = struct.Struct("<i")
_UINT32 = struct.Struct("<I")
_FLOAT = struct.Struct("<f")


class _Reader:
    """Little-endian cursor that yields zero values once the data runs out."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self.pos = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.pos

    def peek_byte(self) -> int | None:
        return self._data[self.pos] if self.pos < len(self._data) else None

    def _unpack(self, fmt: struct.Struct, default):
        if self.remaining < fmt.size:
            return default
        (value,) = fmt.unpack_from(self._data, self.pos)
        self.pos += fmt.size
        return value

    def int32(self) -> int:
        return self._unpack(_INT32, 0)

    def uint32(self) -> int:
        return self._unpack(_UINT32, 0)

    def float32(self) -> float:
        return self._unpack(_FLOAT, 0.0)

    def byte(self) -> int:
        if self.remaining < 1:
            return 0
        value = self._data[self.pos]
        self.pos += 1
        return value

    def bytes4(self) -> tuple[int, int, int, int]:
        return (self.byte(), self.byte(), self.byte(), self.byte())

    def string(self) -> str:
        end = self._data.find(b"\0", self.pos)
        if end < 0:
            raw = self._data[self.pos:]
            self.pos = len(self._data)
        else:
            raw = self._data[self.pos:end]
            self.pos = end + 1
        return raw.decode("utf-8", errors="replace")

    def fixed_string(self, count: int) -> str:
        if self.remaining < count:
            return ""
        raw = self._data[self.pos:self.pos + count]
        self.pos += count
        return raw.rstrip(b"\0").decode("utf-8", errors="replace")


@dataclass
class CameraBounds:
    """Camera bounds (8 floats) and their complements (4 integers)."""

    bounds: list[float] = field(default_factory=lambda: [0.0] * 8)
    complements: list[int] = field(default_factory=lambda: [0] * 4)


@dataclass
class MapFlags:
    """Map configuration flags."""

    disable_preview: bool = False
    custom_ally: bool = False
    melee_map: bool = False
    large_map: bool = False
    masked_area_show_terrain: bool = False
    fix_force_setting: bool = False
    custom_force: bool = False
    custom_techtree: bool = False
    custom_ability: bool = False
    custom_upgrade: bool = False
    map_menu_mark: bool = False
    show_wave_on_cliff: bool = False
    show_wave_on_rolling: bool = False

    @classmethod
    def from_bits(cls, bits: int) -> "MapFlags":
        names = [
            "disable_preview", "custom_ally", "melee_map", "large_map",
            "masked_area_show_terrain", "fix_force_setting", "custom_force",
            "custom_techtree", "custom_ability", "custom_upgrade",
            "map_menu_mark", "show_wave_on_cliff", "show_wave_on_rolling",
        ]
        return cls(**{name: bool((bits >> bit) & 1) for bit, name in enumerate(names)})


@dataclass
class LoadingScreen:
    id: int = 0
    path: str = ""
    text: str = ""
    title: str = ""
    subtitle: str = ""


@dataclass
class PrologueScreen:
    id: int = 0
    path: str = ""
    text: str = ""
    title: str = ""
    subtitle: str = ""


@dataclass
class FogSettings:
    type: int = 0
    start_z: float = 0.0
    end_z: float = 0.0
    density: float = 0.0
    color: tuple[int, int, int, int] = (0, 0, 0, 0)


@dataclass
class EnvironmentSettings:
    weather_id: str = ""
    sound: str = ""
    light: str = "\0"
    water_color: tuple[int, int, int, int] = (0, 0, 0, 0)


@dataclass
class PlayerSlot:
    player_id: int = 0
    type: int = 0
    race: int = 0
    fix_start: int = 0
    name: str = ""
    start_x: float = 0.0
    start_y: float = 0.0
    ally_low_flag: int = 0
    ally_high_flag: int = 0


@dataclass
class Force:
    allied: bool = False
    allied_victory: bool = False
    share_vision: bool = False
    share_control: bool = False
    share_advanced: bool = False
    player_mask: int = 0
    name: str = ""


@dataclass
class UpgradeAvailability:
    player_mask: int = 0
    upgrade_id: str = ""
    level: int = 0
    availability: int = 0


@dataclass
class TechAvailability:
    player_mask: int = 0
    tech_id: str = ""


@dataclass
class W3iData:
    """Contents of a war3map.w3i file."""

    file_version: int = 0
    map_version: int = 0
    editor_version: int = 0
    game_version: tuple[int, int, int, int] = (0, 0, 0, 0)
    map_name: str = ""
    author: str = ""
    description: str = ""
    players_recommended: str = ""
    camera: CameraBounds = field(default_factory=CameraBounds)
    map_width: int = 0
    map_height: int = 0
    main_ground: str = "\0"
    flags: MapFlags = field(default_factory=MapFlags)
    game_data_setting: int = 0
    loading_screen: LoadingScreen = field(default_factory=LoadingScreen)
    prologue: PrologueScreen = field(default_factory=PrologueScreen)
    fog: FogSettings = field(default_factory=FogSettings)
    environment: EnvironmentSettings = field(default_factory=EnvironmentSettings)
    script_type: int = 0
    players: list[PlayerSlot] = field(default_factory=list)
    forces: list[Force] = field(default_factory=list)
    upgrades: list[UpgradeAvailability] = field(default_factory=list)
    techs: list[TechAvailability] = field(default_factory=list)


def _has_table(reader: _Reader) -> bool:
    next_byte = reader.peek_byte()
    return next_byte is not None and next_byte != 0xFF


def parse_w3i(data: bytes | bytearray | memoryview | None) -> W3iData:
    """Parse a war3map.w3i buffer; versions 18 and 25 to 31 are supported."""
    if data is None or len(data) < 4:
        raise ParseError("W3I data is too small or null")

    reader = _Reader(bytes(data))
    w3i = W3iData()
    version = w3i.file_version = reader.int32()
    if version != 18 and not 25 <= version <= 31:
        raise InvalidFormatError(f"Unsupported W3I version: {version}")

    w3i.map_version = reader.int32()
    w3i.editor_version = reader.int32()
    if version >= 28:
        w3i.game_version = (reader.int32(), reader.int32(), reader.int32(), reader.int32())

    w3i.map_name = reader.string()
    w3i.author = reader.string()
    w3i.description = reader.string()
    w3i.players_recommended = reader.string()

    w3i.camera = CameraBounds(
        bounds=[reader.float32() for _ in range(8)],
        complements=[reader.int32() for _ in range(4)],
    )
    w3i.map_width = reader.int32()
    w3i.map_height = reader.int32()
    w3i.flags = MapFlags.from_bits(reader.uint32())
    w3i.main_ground = chr(reader.byte())

    if version >= 25:
        w3i.loading_screen = LoadingScreen(
            id=reader.int32(),
            path=reader.string(),
            text=reader.string(),
            title=reader.string(),
            subtitle=reader.string(),
        )
        w3i.game_data_setting = reader.int32()
        w3i.prologue = PrologueScreen(
            path=reader.string(),
            text=reader.string(),
            title=reader.string(),
            subtitle=reader.string(),
        )
        w3i.fog = FogSettings(
            type=reader.int32(),
            start_z=reader.float32(),
            end_z=reader.float32(),
            density=reader.float32(),
            color=reader.bytes4(),
        )
        w3i.environment = EnvironmentSettings(
            weather_id=reader.fixed_string(4),
            sound=reader.string(),
            light=chr(reader.byte()),
            water_color=reader.bytes4(),
        )
        if version >= 28:
            w3i.script_type = reader.int32()
        if version >= 31:
            reader.int32()
            reader.int32()
    else:
        w3i.loading_screen = LoadingScreen(
            id=reader.int32(),
            text=reader.string(),
            title=reader.string(),
            subtitle=reader.string(),
        )
        w3i.prologue = PrologueScreen(
            id=reader.int32(),
            text=reader.string(),
            title=reader.string(),
            subtitle=reader.string(),
        )

    for _ in range(max(0, reader.int32())):
        slot = PlayerSlot(
            player_id=reader.int32(),
            type=reader.int32(),
            race=reader.int32(),
            fix_start=reader.int32(),
            name=reader.string(),
            start_x=reader.float32(),
            start_y=reader.float32(),
            ally_low_flag=reader.uint32(),
            ally_high_flag=reader.uint32(),
        )
        if version >= 31:
            reader.int32()
            reader.int32()
        w3i.players.append(slot)

    for _ in range(max(0, reader.int32())):
        bits = reader.uint32()
        w3i.forces.append(
            Force(
                allied=bool(bits & 1),
                allied_victory=bool((bits >> 1) & 1),
                share_vision=bool((bits >> 3) & 1),
                share_control=bool((bits >> 4) & 1),
                share_advanced=bool((bits >> 5) & 1),
                player_mask=reader.uint32(),
                name=reader.string(),
            )
        )

    if _has_table(reader):
        for _ in range(max(0, reader.int32())):
            w3i.upgrades.append(
                UpgradeAvailability(
                    player_mask=reader.uint32(),
                    upgrade_id=reader.fixed_string(4),
                    level=reader.int32(),
                    availability=reader.int32(),
                )
            )

    if _has_table(reader):
        for _ in range(max(0, reader.int32())):
            w3i.techs.append(
                TechAvailability(
                    player_mask=reader.uint32(),
                    tech_id=reader.fixed_string(4),
                )
            )

    return w3i