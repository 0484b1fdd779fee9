import unittest

from stepgrid.config import GridConfig
from stepgrid.converter import NoTimelineParsed, convert, convert_timeline
from stepgrid.sources import TimelineSource
from stepgrid.timeline import RawNote, RawTimeline, RawTrack


class FakeSource(TimelineSource):
    def __init__(self, timelines):
        self.timelines = timelines
        self.seen = []

    def parse(self, data):
        self.seen.append(data)
        return list(self.timelines)


def _timeline(pitch, ppq=480):
    return RawTimeline(ppq=ppq, tracks=[RawTrack(channel=0, notes=[RawNote(pitch, "n", 0, 480)])])


class TestConvert(unittest.TestCase):
    def test_nothing_parsed_raises(self):
        with self.assertRaises(NoTimelineParsed):
            convert(FakeSource([]), "X:1")

    def test_tune_without_notes_is_not_an_error(self):
        grid = convert(FakeSource([RawTimeline(ppq=480, tracks=[RawTrack(channel=0)])]), "X:1")
        self.assertEqual(grid.tracks, [])
        self.assertEqual(grid.notice_codes(), ["empty_track"])

    def test_first_tune_only(self):
        src = FakeSource([_timeline(60), _timeline(72)])
        grid = convert(src, "tunes")
        self.assertEqual(src.seen, ["tunes"])
        self.assertEqual(grid.tracks[0].notes[0].pitch, 60)

    def test_merge_option(self):
        tl = RawTimeline(
            ppq=480,
            tracks=[
                RawTrack(channel=0, notes=[RawNote(60, "C4", 480, 480)]),
                RawTrack(channel=1, notes=[RawNote(48, "C3", 0, 480)]),
            ],
        )
        grid = convert_timeline(tl, GridConfig(merge_tracks=True))
        self.assertEqual(len(grid.tracks), 1)
        self.assertEqual([n.pitch for n in grid.tracks[0].notes], [48, 60])

    def test_independent_configs(self):
        tl = RawTimeline(ppq=480, tracks=[RawTrack(channel=0, notes=[RawNote(60, "C4", 0, 480)]) for _ in range(4)])
        small = convert_timeline(tl, GridConfig(max_patterns=2))
        large = convert_timeline(tl, GridConfig(max_patterns=8))
        self.assertEqual((len(small.tracks), len(large.tracks)), (2, 4))


class TestConfig(unittest.TestCase):
    def test_rejects_bad_values(self):
        with self.assertRaises(ValueError):
            GridConfig(size_by="end")
        with self.assertRaises(ValueError):
            GridConfig(max_patterns=-1)
        with self.assertRaises(ValueError):
            GridConfig(default_ppq=0)


if __name__ == "__main__":
    unittest.main()
