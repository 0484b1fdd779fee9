from __future__ import annotations

import copy
import hashlib
import json
import re
from typing import Any, Dict, List, Tuple

from stepgrid.grid import GridResult
from stepgrid.quantize import BAR_CELLS


LOOP_VERSION = "opxyloop-1.0"

_ID_NUM = re.compile(r"^(.*?)(\d+)$")


def _err(errors: List[str], path: str, msg: str) -> None:
    errors.append(f"{path}: {msg}")


def grid_to_loop(grid: GridResult, tempo: float = 120, ppq: int = 96) -> Dict[str, Any]:
    """Render grid tracks as an opxyloop step document.

    One cell is one step (stepsPerBar=16). Notes starting on the same cell
    share a step and keep their grid order. Each pattern is long enough to
    hold every note tail, so it can be longer than the track's cellCount.
    """
    tracks: List[Dict[str, Any]] = []
    for i, rec in enumerate(grid.tracks):
        steps: Dict[int, List[Dict[str, Any]]] = {}
        end = rec.cell_count
        for n in rec.notes:
            end = max(end, n.seq + n.length)
            steps.setdefault(n.seq, []).append(
                {
                    "pitch": int(n.pitch),
                    "velocity": max(1, min(127, int(n.velocity))),
                    "lengthSteps": int(n.length),
                }
            )
        percussion = bool((rec.instrument or {}).get("percussion"))
        tracks.append(
            {
                "id": f"t{i + 1}",
                "name": rec.name or f"Track {i + 1}",
                "type": "drum" if percussion else "synth",
                "midiChannel": max(0, min(15, int(rec.channel))),
                "pattern": {
                    "lengthBars": max(1, -(-end // BAR_CELLS)),
                    "steps": [{"idx": idx, "events": evs} for idx, evs in steps.items()],
                },
            }
        )
    return {
        "version": LOOP_VERSION,
        "meta": {"tempo": tempo, "ppq": int(ppq), "stepsPerBar": BAR_CELLS},
        "tracks": tracks,
    }


def validate_loop(loop: Dict[str, Any]) -> List[str]:
    """Check the note-pattern subset of an opxyloop document.

    Returns human-readable errors with JSON-pointer-like paths; an empty
    list means valid.
    """
    errors: List[str] = []

    if loop.get("version") != LOOP_VERSION:
        _err(errors, "/version", f"must equal '{LOOP_VERSION}'")

    meta = loop.get("meta")
    spb = None
    if not isinstance(meta, dict):
        _err(errors, "/meta", "required object missing")
    else:
        if not isinstance(meta.get("tempo"), (int, float)):
            _err(errors, "/meta/tempo", "required number (BPM)")
        if not isinstance(meta.get("ppq"), int):
            _err(errors, "/meta/ppq", "required integer (pulses per quarter note)")
        spb = meta.get("stepsPerBar")
        if not isinstance(spb, int):
            _err(errors, "/meta/stepsPerBar", "required integer (grid per bar)")
            spb = None

    tracks = loop.get("tracks")
    if not isinstance(tracks, list):
        _err(errors, "/tracks", "required array")
        return errors
    for ti, tr in enumerate(tracks):
        tpath = f"/tracks/{ti}"
        if not isinstance(tr, dict):
            _err(errors, tpath, "must be object")
            continue
        for key in ("id", "name", "type"):
            if not isinstance(tr.get(key), str):
                _err(errors, f"{tpath}/{key}", "required string")
        ch = tr.get("midiChannel")
        if not isinstance(ch, int) or not (0 <= ch <= 15):
            _err(errors, f"{tpath}/midiChannel", "required integer 0..15")

        pat = tr.get("pattern")
        if not isinstance(pat, dict):
            _err(errors, f"{tpath}/pattern", "required object")
            continue
        lb = pat.get("lengthBars")
        if not isinstance(lb, int) or lb < 1:
            _err(errors, f"{tpath}/pattern/lengthBars", "integer ≥1 required")
            lb = None
        steps = pat.get("steps")
        if not isinstance(steps, list):
            _err(errors, f"{tpath}/pattern/steps", "required array (sparse allowed)")
            continue
        for si, st in enumerate(steps):
            spath = f"{tpath}/pattern/steps[{si}]"
            if not isinstance(st, dict):
                _err(errors, spath, "must be object")
                continue
            idx = st.get("idx")
            if not isinstance(idx, int) or idx < 0:
                _err(errors, f"{spath}/idx", "required integer ≥0")
            elif lb is not None and spb is not None and idx >= lb * spb:
                _err(errors, f"{spath}/idx", f"must be < lengthBars*stepsPerBar ({lb * spb})")
            ev = st.get("events")
            if ev is None:
                continue
            if not isinstance(ev, list):
                _err(errors, f"{spath}/events", "must be array if present")
                continue
            for ei, e in enumerate(ev):
                epath = f"{spath}/events[{ei}]"
                if not isinstance(e, dict):
                    _err(errors, epath, "must be object")
                    continue
                p = e.get("pitch")
                if not isinstance(p, int) or not (0 <= p <= 127):
                    _err(errors, epath + "/pitch", "integer 0..127 required")
                vel = e.get("velocity")
                if not isinstance(vel, int) or not (1 <= vel <= 127):
                    _err(errors, epath + "/velocity", "integer 1..127 required")
                ls = e.get("lengthSteps")
                if not isinstance(ls, int) or ls < 1:
                    _err(errors, epath + "/lengthSteps", "integer ≥1 required")
                elif isinstance(idx, int) and lb is not None and spb is not None and idx + ls > lb * spb:
                    _err(errors, epath + "/lengthSteps", f"note must end within lengthBars*stepsPerBar ({lb * spb})")

    return errors


def _id_key(track_id: Any) -> Tuple[str, int, str]:
    s = str(track_id)
    m = _ID_NUM.match(s)
    if m:
        return (m.group(1), int(m.group(2)), s)
    return (s, -1, s)


def canonicalize(loop: Dict[str, Any]) -> Dict[str, Any]:
    """Return a canonicalized deep copy for stable diffs.

    - Sort tracks by id (numeric suffixes compare as numbers, t2 < t10)
    - Sort steps by idx
    Event order inside a step is kept.
    """
    doc = copy.deepcopy(loop)
    tracks = doc.get("tracks")
    if isinstance(tracks, list):
        tracks.sort(key=lambda t: _id_key(t.get("id", "")))
        for tr in tracks:
            pat = tr.get("pattern")
            if isinstance(pat, dict) and isinstance(pat.get("steps"), list):
                pat["steps"].sort(key=lambda s: s.get("idx", 0))
    return doc


def sha256_canonical(doc: Any) -> str:
    """Compute SHA-256 of canonical JSON string (sorted keys, compact)."""
    s = json.dumps(doc, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(s.encode("utf-8")).hexdigest()
