from __future__ import annotations

# 4 cells per quarter note (sixteenth grid), 16 cells per 4/4 bar
CELLS_PER_BEAT = 4
BAR_CELLS = 16


def cell_from_ticks(ticks: int, ppq: int) -> int:
    """Map an absolute tick position to its zero-based grid cell (floor).

    Fractional ticks are floored after scaling, not before: 30.5 ticks at
    ppq 61 is cell 2.
    """
    return int(ticks * CELLS_PER_BEAT // int(ppq))


def length_from_ticks(duration_ticks: int, ppq: int) -> int:
    """Map a tick duration to a cell length, never shorter than one cell."""
    return max(1, int(duration_ticks * CELLS_PER_BEAT // int(ppq)))


def cell_count(max_seq: int) -> int:
    """Size a pattern from its last occupied cell.

    Rounds down to a bar multiple after adding one bar of headroom, so
    max_seq=0 gives 16 and max_seq=20 gives 32.
    """
    return (int(max_seq) + BAR_CELLS) // BAR_CELLS * BAR_CELLS
