from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

from stepgrid.config import DEFAULT_MAX_PATTERNS, GridConfig, SIZE_BY_EXTENT, SIZE_BY_START
from stepgrid.converter import NoTimelineParsed, convert
from stepgrid.loop_export import canonicalize, grid_to_loop, sha256_canonical, validate_loop
from stepgrid.sources import AbcSource, JsonTimelineSource, MidiFileSource, TimelineSource, looks_like_abc


def pick_source(fmt: str, path: Path, raw: bytes) -> TimelineSource:
    if fmt == "abc":
        return AbcSource()
    if fmt == "midi":
        return MidiFileSource()
    if fmt == "json":
        return JsonTimelineSource()
    # auto: MIDI magic, then file extension, then ABC header sniffing
    if raw[:4] == b"MThd" or path.suffix.lower() in (".mid", ".midi"):
        return MidiFileSource()
    if path.suffix.lower() == ".json":
        return JsonTimelineSource()
    text = raw.decode("utf-8", errors="replace")
    if path.suffix.lower() == ".abc" or looks_like_abc(text):
        return AbcSource()
    return JsonTimelineSource()


def main(argv: List[str] | None = None) -> int:
    ap = argparse.ArgumentParser(description="Quantize notation or MIDI into per-track step grids")
    ap.add_argument("path", help="Input file (.abc, .mid, or renderer .json)")
    ap.add_argument("--format", "-f", choices=["auto", "abc", "midi", "json"], default="auto")
    ap.add_argument("--max-patterns", type=int, default=DEFAULT_MAX_PATTERNS, help="Pattern slots available")
    ap.add_argument("--size-by", choices=[SIZE_BY_START, SIZE_BY_EXTENT], default=SIZE_BY_START)
    ap.add_argument("--merge", action="store_true", help="Merge all tracks into one pattern")
    ap.add_argument("--loop", action="store_true", help="Emit an opxyloop step document instead of the grid")
    ap.add_argument("--tempo", type=float, default=120.0, help="Tempo written into --loop output")
    ap.add_argument("--print-hash", action="store_true", help="Print SHA-256 of canonical output")
    ap.add_argument("--out", "-o", help="Write output here instead of stdout")
    ap.add_argument("--verbose", "-v", action="store_true", help="Log conversion details to stderr")
    args = ap.parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(name)s] %(message)s")

    path = Path(args.path)
    try:
        raw = path.read_bytes()
    except OSError as e:
        print(f"error: failed to read {args.path}: {e}", file=sys.stderr)
        return 2

    try:
        cfg = GridConfig(max_patterns=args.max_patterns, size_by=args.size_by, merge_tracks=args.merge)
    except ValueError as e:
        ap.error(str(e))

    source = pick_source(args.format, path, raw)
    try:
        data = raw if isinstance(source, MidiFileSource) else raw.decode("utf-8")
        grid = convert(source, data, cfg)
    except NoTimelineParsed as e:
        print(f"error: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        print(f"error: failed to parse {args.path}: {e}", file=sys.stderr)
        return 2

    for n in grid.notices:
        where = f" (track {n.track})" if n.track is not None else ""
        print(f"[grid] {n.code}{where}: {n.message}", file=sys.stderr)

    if args.loop:
        doc = canonicalize(grid_to_loop(grid, tempo=args.tempo))
        errors = validate_loop(doc)
        for e in errors:
            print(f"[loop] {e}", file=sys.stderr)
    else:
        doc = grid.to_dict()

    if args.print_hash:
        print(sha256_canonical(doc))

    data_out = json.dumps(doc, indent=2, ensure_ascii=False) + "\n"
    if args.out:
        Path(args.out).write_text(data_out, encoding="utf-8")
        print(f"wrote {len(grid.tracks)} track(s) to {args.out}")
    elif not args.print_hash:
        sys.stdout.write(data_out)
    return 0


if __name__ == "__main__":
    sys.exit(main())
