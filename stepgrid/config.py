from __future__ import annotations

from dataclasses import dataclass

from stepgrid.timeline import DEFAULT_PPQ

# Pattern slots available in the editor
DEFAULT_MAX_PATTERNS = 10

SIZE_BY_START = "start"    # max seq only (tails may pass cellCount)
SIZE_BY_EXTENT = "extent"  # max(seq + len)


@dataclass
class GridConfig:
    max_patterns: int = DEFAULT_MAX_PATTERNS
    default_ppq: int = DEFAULT_PPQ
    size_by: str = SIZE_BY_START
    merge_tracks: bool = False

    def __post_init__(self) -> None:
        if self.size_by not in (SIZE_BY_START, SIZE_BY_EXTENT):
            raise ValueError(f"size_by must be '{SIZE_BY_START}' or '{SIZE_BY_EXTENT}'")
        if int(self.max_patterns) < 0:
            raise ValueError("max_patterns must be >= 0")
        if int(self.default_ppq) <= 0:
            raise ValueError("default_ppq must be > 0")
