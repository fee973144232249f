# w3xkit

Tools for reading, writing and tidying the data files that make up a
Warcraft III map.

## What it covers

- **Map info (`war3map.w3i`)**: `w3xkit.w3i.parse_w3i` reads versions 18
  and 25–31 into a `W3iData` value. It holds the header, camera bounds,
  flags, loading screen, prologue, fog, environment, players, forces and
  the upgrade and tech availability overrides.
- **Object data (`w3u`, `w3t`, `w3b`, `w3a`, `w3d`, `w3h`, `w3q`)**:
  `w3xkit.objects.parse_object_file` and `serialize_object_file` read and
  write version 2 object files. There are also shortcuts such as
  `parse_w3u` and `parse_w3a`.
- **INI tables**: `w3xkit.ini` parses and renders the object INI documents,
  including quoted values, `{...}` lists and `[=[ ... ]=]` long strings.
- **Cleanup passes** for the SLK pack profile, in `w3xkit.cleanup`:
  - removing editor-only files
  - dropping SLK and object files that INI sources replace
  - removing values equal to the stock defaults
  - removing custom objects that nothing uses
  - filling in computed tooltip text

## Installation

```
pip install .
```

## Reading map info

```python
from pathlib import Path
from w3xkit.w3i import parse_w3i

info = parse_w3i(Path("war3map.w3i").read_bytes())
print(info.map_name, info.map_width, info.map_height)
for player in info.players:
    print(player.player_id, player.name)
```

Bad input raises `w3xkit.errors.ParseError` or
`w3xkit.errors.InvalidFormatError`. Both are subclasses of
`w3xkit.errors.W3xError`.

## Round-tripping object data

```python
from w3xkit.objects import ObjectFileKind, parse_object_file, serialize_object_file

raw = Path("war3map.w3a").read_bytes()
data = parse_object_file(raw, ObjectFileKind.COMPLEX)
assert serialize_object_file(data, ObjectFileKind.COMPLEX) == raw
```

## Running cleanup on an unpacked map

```python
from w3xkit.options import PackOptions, PackProfile
from w3xkit.cleanup import apply_pack_cleanup

options = PackOptions(profile=PackProfile.SLK, remove_same=True,
                      remove_unused_objects=True, computed_text=True)
apply_pack_cleanup(Path("unpacked_map"), options, Path("data/prebuilt"))
```

The `prebuilt_root` directory must hold the following:

- the stock default tables under `Custom/`, such as `Custom/ability.ini`
- `metadata.ini`
- `search.ini`

If the directory is missing, `w3xkit.errors.DataNotFoundError` is raised.