from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


DEFAULT_PPQ = 480
DEFAULT_VELOCITY = 100

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


@dataclass
class RawNote:
    pitch: int
    name: str
    ticks: int
    duration_ticks: int
    velocity: int = DEFAULT_VELOCITY


@dataclass
class RawTrack:
    channel: int
    notes: List[RawNote] = field(default_factory=list)
    instrument: Optional[Dict[str, Any]] = None
    name: Optional[str] = None


@dataclass
class RawTimeline:
    """One rendered tune: declared resolution plus tracks in source order.

    `ppq` keeps whatever the renderer declared (possibly None or junk);
    read it through normalize_ppq().
    """

    ppq: Any
    tracks: List[RawTrack] = field(default_factory=list)


def parse_ppq(value: Any) -> Optional[int]:
    """Return the declared PPQ as a positive int, or None when unusable.

    Strings parse like a leading-integer read ("96.7" -> 96, "480ppq" -> 480).
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            n = int(value)
        except (OverflowError, ValueError):
            return None
    elif isinstance(value, str):
        m = _LEADING_INT.match(value)
        if not m:
            return None
        n = int(m.group(1))
    else:
        return None
    return n if n > 0 else None


def normalize_ppq(value: Any, default: int = DEFAULT_PPQ) -> int:
    ppq = parse_ppq(value)
    return ppq if ppq is not None else int(default)


def _tick(v: Any) -> Union[int, float]:
    # renderers may emit fractional ticks; keep them for floor quantization
    if isinstance(v, int):
        return v
    f = float(v)
    return int(f) if f.is_integer() else f


def _note_from_dict(n: Dict[str, Any]) -> RawNote:
    pitch = n.get("pitch", n.get("midi", 0))
    return RawNote(
        pitch=int(pitch),
        name=str(n.get("name", "")),
        ticks=_tick(n.get("ticks", 0)),
        duration_ticks=_tick(n.get("durationTicks", 0)),
        velocity=int(n.get("velocity", DEFAULT_VELOCITY)),
    )


def timeline_from_dict(doc: Dict[str, Any]) -> RawTimeline:
    """Build a RawTimeline from the renderer's JSON shape.

    Expected shape: {header: {ppq}, tracks: [{channel, instrument, name,
    notes: [{pitch|midi, name, ticks, durationTicks, velocity?}]}]}.
    Missing keys fall back to empty/zero values; no range checks are made.
    """
    header = doc.get("header") or {}
    tracks: List[RawTrack] = []
    for tr in doc.get("tracks") or []:
        inst = tr.get("instrument")
        tracks.append(
            RawTrack(
                channel=int(tr.get("channel", 0) or 0),
                notes=[_note_from_dict(n) for n in tr.get("notes") or []],
                instrument=dict(inst) if isinstance(inst, dict) else None,
                name=tr.get("name"),
            )
        )
    return RawTimeline(ppq=header.get("ppq") if isinstance(header, dict) else None, tracks=tracks)
