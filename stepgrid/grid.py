from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from stepgrid.config import GridConfig, SIZE_BY_EXTENT, SIZE_BY_START
from stepgrid.quantize import cell_count, cell_from_ticks, length_from_ticks
from stepgrid.timeline import RawTimeline, RawTrack, parse_ppq


log = logging.getLogger(__name__)

# Notice codes
PPQ_DEFAULTED = "ppq_defaulted"
EMPTY_TRACK = "empty_track"
CAPACITY_EXCEEDED = "capacity_exceeded"
NOTE_TAIL_OVERFLOW = "note_tail_overflow"


@dataclass
class QuantizedNote:
    pitch: int
    seq: int
    length: int
    name: str
    time: int
    duration: int
    velocity: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pitch": self.pitch,
            "seq": self.seq,
            "len": self.length,
            "name": self.name,
            "time": self.time,
            "duration": self.duration,
            "velocity": self.velocity,
        }


@dataclass
class TrackRecord:
    source_track: int  # index of the RawTrack in the timeline
    channel: int
    instrument: Optional[Dict[str, Any]]
    name: Optional[str]
    notes: List[QuantizedNote]
    cell_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sourceTrack": self.source_track,
            "channel": self.channel,
            "instrument": self.instrument,
            "name": self.name,
            "notes": [n.to_dict() for n in self.notes],
            "cellCount": self.cell_count,
        }


@dataclass
class Notice:
    """Advisory for a condition absorbed during conversion (never an error)."""

    code: str
    message: str
    track: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "track": self.track}


@dataclass
class GridResult:
    tracks: List[TrackRecord]
    ppq: int
    notices: List[Notice] = field(default_factory=list)

    def notice_codes(self) -> List[str]:
        return [n.code for n in self.notices]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ppq": self.ppq,
            "tracks": [t.to_dict() for t in self.tracks],
            "notices": [n.to_dict() for n in self.notices],
        }


def size_notes(notes: List[QuantizedNote], size_by: str) -> int:
    """Pattern length in cells for a note list.

    "start" sizes from the furthest start cell only; "extent" also covers
    every note tail (last occupied cell is seq + len - 1).
    """
    max_seq = 0
    for n in notes:
        last = n.seq + n.length - 1 if size_by == SIZE_BY_EXTENT else n.seq
        if last > max_seq:
            max_seq = last
    return cell_count(max_seq)


def collect_track(index: int, track: RawTrack, ppq: int, size_by: str = SIZE_BY_START) -> Optional[TrackRecord]:
    """Quantize one track's notes in authoring order; None for an empty track."""
    if not track.notes:
        return None
    notes: List[QuantizedNote] = []
    for raw in track.notes:
        notes.append(
            QuantizedNote(
                pitch=raw.pitch,
                seq=cell_from_ticks(raw.ticks, ppq),
                length=length_from_ticks(raw.duration_ticks, ppq),
                name=raw.name,
                time=raw.ticks,
                duration=raw.duration_ticks,
                velocity=raw.velocity,
            )
        )
    return TrackRecord(
        source_track=index,
        channel=track.channel,
        instrument=track.instrument,
        name=track.name,
        notes=notes,
        cell_count=size_notes(notes, size_by),
    )


def _tail_overflows(rec: TrackRecord) -> int:
    return sum(1 for n in rec.notes if n.seq + n.length > rec.cell_count)


def build_grid(timeline: RawTimeline, config: Optional[GridConfig] = None) -> GridResult:
    """Quantize every non-empty track of a timeline into pattern records.

    At most config.max_patterns records are produced; later tracks are
    dropped. Empty tracks, a defaulted PPQ, dropped tracks and note tails
    running past cellCount are reported as notices on the result.
    """
    cfg = config or GridConfig()
    notices: List[Notice] = []

    declared = parse_ppq(timeline.ppq)
    if declared is None:
        ppq = int(cfg.default_ppq)
        notices.append(Notice(PPQ_DEFAULTED, f"resolution {timeline.ppq!r} unusable; using {ppq}"))
        log.info("ppq %r unusable, defaulting to %d", timeline.ppq, ppq)
    else:
        ppq = declared

    records: List[TrackRecord] = []
    limit = int(cfg.max_patterns)
    for ti, track in enumerate(timeline.tracks):
        if len(records) >= limit:
            dropped = [i for i, t in enumerate(timeline.tracks) if i >= ti and t.notes]
            if dropped:
                notices.append(
                    Notice(
                        CAPACITY_EXCEEDED,
                        f"{len(dropped)} track(s) dropped; capacity is {limit} pattern(s)",
                        track=dropped[0],
                    )
                )
                log.info("capacity %d reached, dropping tracks %s", limit, dropped)
            break
        rec = collect_track(ti, track, ppq, cfg.size_by)
        if rec is None:
            notices.append(Notice(EMPTY_TRACK, f"track {ti} ({track.name or 'unnamed'}) has no notes", track=ti))
            log.info("track %d (%s) has no notes, skipped", ti, track.name)
            continue
        log.debug("track %d: %d notes, cellCount=%d", ti, len(rec.notes), rec.cell_count)
        records.append(rec)

    for rec in records:
        over = _tail_overflows(rec)
        if over:
            notices.append(
                Notice(
                    NOTE_TAIL_OVERFLOW,
                    f"{over} note(s) extend past cellCount {rec.cell_count}",
                    track=rec.source_track,
                )
            )
            log.debug("track %d: %d note tail(s) past cellCount", rec.source_track, over)

    return GridResult(tracks=records, ppq=ppq, notices=notices)


def merge_tracks(grid: GridResult, size_by: str = SIZE_BY_START) -> GridResult:
    """Fold every track into the first one, ordering notes by start cell.

    The sort is stable so notes sharing a cell keep their original order.
    Metadata comes from the first track; notices are carried over.
    """
    if len(grid.tracks) < 2:
        return grid
    first = grid.tracks[0]
    notes = [n for rec in grid.tracks for n in rec.notes]
    notes.sort(key=lambda n: n.seq)
    merged = TrackRecord(
        source_track=first.source_track,
        channel=first.channel,
        instrument=first.instrument,
        name=first.name,
        notes=notes,
        cell_count=size_notes(notes, size_by),
    )
    notices = [n for n in grid.notices if n.code != NOTE_TAIL_OVERFLOW]
    over = _tail_overflows(merged)
    if over:
        notices.append(
            Notice(NOTE_TAIL_OVERFLOW, f"{over} note(s) extend past cellCount {merged.cell_count}", track=merged.source_track)
        )
    return GridResult(tracks=[merged], ppq=grid.ppq, notices=notices)
