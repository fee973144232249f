"""Options that control how a map directory is packed."""

from __future__ import annotations

import enum
from dataclasses import dataclass

UNPACK_MANIFEST_FILE_NAME = ".w3x_manifest.json"


class PackProfile(enum.IntEnum):
    """Output profile used when packing a map."""

    DEFAULT = 0
    OBJ = 1
    SLK = 2


@dataclass
class PackOptions:
    """Switches for the cleanup passes run before packing."""

    profile: PackProfile = PackProfile.DEFAULT
    slk_doodad: bool = True
    read_slk: bool = False
    remove_unused_objects: bool = False
    remove_we_only: bool = False
    remove_same: bool = False
    computed_text: bool = False