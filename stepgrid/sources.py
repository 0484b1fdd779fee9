from __future__ import annotations

import io
import json
import os
from typing import Any, Dict, List, Tuple, Union

import mido

from stepgrid.timeline import RawNote, RawTimeline, RawTrack, timeline_from_dict


NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
PERCUSSION_CHANNEL = 9
# Tempo used when rendering notation that carries no tempo mark
DEFAULT_RENDER_BPM = 100


def pitch_name(pitch: int) -> str:
    """Scientific pitch name with middle C (60) as C4."""
    p = int(pitch)
    return f"{NOTE_NAMES[p % 12]}{p // 12 - 1}"


def looks_like_abc(text: str) -> bool:
    """ABC tunes open with a header field such as 'X:1' (second char is ':')."""
    s = text.strip()
    return len(s) > 1 and s[1] == ":"


class TimelineSource:
    """Parses notation (or rendered MIDI) into one RawTimeline per tune."""

    def parse(self, data: Any) -> List[RawTimeline]:  # pragma: no cover - interface
        raise NotImplementedError


def _track_meta(track: mido.MidiTrack) -> Tuple[int, Dict[str, Any] | None, str | None]:
    channel = None
    program = None
    name = None
    for msg in track:
        if msg.is_meta:
            if msg.type == "track_name" and name is None:
                name = msg.name
            continue
        if channel is None and hasattr(msg, "channel"):
            channel = msg.channel
        if msg.type == "program_change" and program is None:
            program = msg.program
    ch = channel if channel is not None else 0
    instrument = None
    if program is not None or ch == PERCUSSION_CHANNEL:
        instrument = {"number": program if program is not None else 0, "percussion": ch == PERCUSSION_CHANNEL}
    return ch, instrument, name


def timeline_from_midi(mid: mido.MidiFile) -> RawTimeline:
    """Extract per-track notes with absolute ticks from a mido MidiFile.

    Note on/off pairs match first-in first-out per (channel, pitch); notes
    still sounding at the end of a track are closed there. Notes are
    ordered by start tick, ties keep message order.
    """
    tracks: List[RawTrack] = []
    for track in mid.tracks:
        abs_tick = 0
        # pending[(channel, pitch)] -> queue[(onset_tick, velocity, order)]
        pending: Dict[Tuple[int, int], List[Tuple[int, int, int]]] = {}
        found: List[Tuple[int, int, RawNote]] = []
        order = 0
        for msg in track:
            abs_tick += msg.time
            if msg.type == "note_on" and msg.velocity > 0:
                pending.setdefault((msg.channel, msg.note), []).append((abs_tick, msg.velocity, order))
                order += 1
            elif msg.type == "note_off" or (msg.type == "note_on" and msg.velocity == 0):
                starts = pending.get((msg.channel, msg.note))
                if not starts:
                    continue
                onset, vel, o = starts.pop(0)
                found.append((onset, o, RawNote(msg.note, pitch_name(msg.note), onset, abs_tick - onset, vel)))
        for (_ch, pitch), starts in pending.items():
            for onset, vel, o in starts:
                found.append((onset, o, RawNote(pitch, pitch_name(pitch), onset, abs_tick - onset, vel)))
        found.sort(key=lambda x: (x[0], x[1]))
        ch, instrument, name = _track_meta(track)
        tracks.append(RawTrack(channel=ch, notes=[n for _, _, n in found], instrument=instrument, name=name))
    return RawTimeline(ppq=mid.ticks_per_beat, tracks=tracks)


class MidiFileSource(TimelineSource):
    """Standard MIDI file (bytes or a path) -> a single timeline."""

    def parse(self, data: Union[bytes, str, os.PathLike]) -> List[RawTimeline]:
        if isinstance(data, (bytes, bytearray)):
            mid = mido.MidiFile(file=io.BytesIO(bytes(data)))
        else:
            mid = mido.MidiFile(os.fspath(data))
        return [timeline_from_midi(mid)]


class JsonTimelineSource(TimelineSource):
    """Renderer JSON, either one timeline object or a list of them."""

    def parse(self, data: Union[str, bytes, Dict[str, Any], List[Any]]) -> List[RawTimeline]:
        doc = json.loads(data) if isinstance(data, (str, bytes, bytearray)) else data
        docs = doc if isinstance(doc, list) else [doc]
        return [timeline_from_dict(d) for d in docs if isinstance(d, dict)]


class AbcSource(TimelineSource):
    """ABC notation rendered to MIDI with music21, then read back with mido.

    Each tune in the text becomes one timeline. Text without an ABC header
    yields no timelines.
    """

    def __init__(self, bpm: float = DEFAULT_RENDER_BPM) -> None:
        self.bpm = float(bpm)

    def _scores(self, text: str) -> List[Any]:
        from music21 import converter, stream

        parsed = converter.parseData(text, format="abc")
        if isinstance(parsed, stream.Opus):
            return list(parsed.scores)
        return [parsed]

    def _render(self, score: Any) -> mido.MidiFile:
        from music21 import tempo
        from music21.midi import translate

        if not list(score.recurse().getElementsByClass(tempo.MetronomeMark)):
            score.insert(0, tempo.MetronomeMark(number=self.bpm))
        mf = translate.music21ObjectToMidiFile(score)
        return mido.MidiFile(file=io.BytesIO(mf.writestr()))

    def parse(self, data: Union[str, bytes]) -> List[RawTimeline]:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else str(data)
        if not looks_like_abc(text):
            return []
        return [timeline_from_midi(self._render(s)) for s in self._scores(text)]
