import unittest

from stepgrid.quantize import BAR_CELLS, cell_count, cell_from_ticks, length_from_ticks


class TestQuantize(unittest.TestCase):
    def test_quarter_note_at_zero(self):
        self.assertEqual(cell_from_ticks(0, 480), 0)
        self.assertEqual(length_from_ticks(480, 480), 4)

    def test_short_note_promoted_to_one_cell(self):
        self.assertEqual(cell_from_ticks(240, 480), 2)
        # 120 ticks is a 32nd at 480 ppq: floors to 0, shown as 1 cell
        self.assertEqual(length_from_ticks(120, 480), 1)
        self.assertEqual(length_from_ticks(0, 480), 1)

    def test_cell_matches_floor_and_is_monotonic(self):
        for ppq in (24, 96, 480, 10080, 7):
            prev = None
            for ticks in range(0, ppq * 9, max(1, ppq // 13)):
                c = cell_from_ticks(ticks, ppq)
                self.assertEqual(c, (ticks * 4) // ppq)
                if prev is not None:
                    self.assertGreaterEqual(c, prev)
                prev = c

    def test_length_never_below_one(self):
        for ppq in (1, 96, 480):
            for d in range(0, ppq * 2, max(1, ppq // 7)):
                self.assertGreaterEqual(length_from_ticks(d, ppq), 1)

    def test_exact_for_large_ticks(self):
        # integer math: no float drift on long pieces
        self.assertEqual(cell_from_ticks(480 * 100_003 + 119, 480), 400_012)

    def test_fractional_ticks_floor_after_scaling(self):
        self.assertEqual(cell_from_ticks(30.5, 61), 2)
        self.assertEqual(length_from_ticks(30.5, 61), 2)
        self.assertEqual(cell_from_ticks(119.9, 480), 0)
        self.assertIsInstance(cell_from_ticks(30.5, 61), int)

    def test_cell_count(self):
        self.assertEqual(cell_count(0), 16)
        self.assertEqual(cell_count(15), 16)
        self.assertEqual(cell_count(16), 32)
        self.assertEqual(cell_count(20), 32)
        for m in range(0, 200):
            n = cell_count(m)
            self.assertEqual(n % BAR_CELLS, 0)
            self.assertGreater(n, 0)
            self.assertGreaterEqual(n, m + 1)


if __name__ == "__main__":
    unittest.main()
