"""Resolution and bitrate model for renditions."""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Optional


class Resolution(str, Enum):
    """Standard rendition resolutions."""
    RES_360P = "360p"
    RES_480P = "480p"
    RES_720P = "720p"
    RES_1080P = "1080p"


# Target video bitrate in bits per second for each standard resolution
RESOLUTION_BITRATES: dict[Resolution, int] = {
    Resolution.RES_360P: 500_000,
    Resolution.RES_480P: 1_000_000,
    Resolution.RES_720P: 2_500_000,
    Resolution.RES_1080P: 5_000_000,
}

# Used for any label outside the table
DEFAULT_BITRATE = 2_500_000

DEFAULT_RESOLUTIONS = [Resolution.RES_360P.value, Resolution.RES_720P.value, Resolution.RES_1080P.value]

_LABEL_PATTERN = re.compile(r"^(\d+)p$")


@dataclass(frozen=True)
class RenditionProfile:
    """Encoding target derived from a resolution label."""
    label: str
    height: int
    bitrate: int


def parse_resolution_height(label: str) -> int:
    """Parse the pixel height out of a label such as ``"720p"``.

    Raises:
        ValueError: If the label is not ``<digits>p`` or the height is zero
    """
    match = _LABEL_PATTERN.match(label or "")
    if not match or int(match.group(1)) == 0:
        raise ValueError(f"Invalid resolution label: {label!r}")
    return int(match.group(1))


def get_bitrate(label: str, overrides: Optional[Mapping[str, int]] = None) -> int:
    """Look up the target bitrate for a resolution label.

    Overrides win over the standard table; unknown labels get DEFAULT_BITRATE.
    """
    if overrides and label in overrides:
        return int(overrides[label])
    try:
        return RESOLUTION_BITRATES[Resolution(label)]
    except ValueError:
        return DEFAULT_BITRATE


def resolve_profile(label: str, overrides: Optional[Mapping[str, int]] = None) -> RenditionProfile:
    """Build the encoding profile for a resolution label."""
    return RenditionProfile(
        label=label,
        height=parse_resolution_height(label),
        bitrate=get_bitrate(label, overrides),
    )
