from __future__ import annotations

import logging
from typing import Any, Optional

from stepgrid.config import GridConfig
from stepgrid.grid import GridResult, build_grid, merge_tracks
from stepgrid.sources import TimelineSource
from stepgrid.timeline import RawTimeline


log = logging.getLogger(__name__)


class NoTimelineParsed(Exception):
    pass


def convert_timeline(timeline: RawTimeline, config: Optional[GridConfig] = None) -> GridResult:
    cfg = config or GridConfig()
    grid = build_grid(timeline, cfg)
    if cfg.merge_tracks:
        grid = merge_tracks(grid, cfg.size_by)
    return grid


def convert(source: TimelineSource, data: Any, config: Optional[GridConfig] = None) -> GridResult:
    """Parse `data` with `source` and quantize the first tune into a grid.

    Raises NoTimelineParsed when the source produces nothing, so an empty
    parse is never confused with a tune whose tracks hold no notes.
    """
    timelines = source.parse(data)
    if not timelines:
        raise NoTimelineParsed("no notation parsed")
    if len(timelines) > 1:
        log.info("%d tunes parsed; converting the first only", len(timelines))
    return convert_timeline(timelines[0], config)
