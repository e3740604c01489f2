"""
Unit tests for CFI parsing, ordering and distance.
"""

import unittest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / 'src'))

from pocketbook_highlights.processing.cfi_parser import (
    CFIComponent,
    are_adjacent,
    cfi_distance,
    compare_positions,
    parse_cfi,
)


class TestParseCFI(unittest.TestCase):
    """Test CFI string parsing"""

    def test_full_cfi_with_wrapper(self):
        pos = parse_cfi("epubcfi(/6/14[chap05ref]!/4[body01]/10/2:3)")

        self.assertIsNotNone(pos)
        self.assertEqual([c.index for c in pos.spine_components], [6, 14])
        self.assertEqual([c.id for c in pos.spine_components], [None, "chap05ref"])
        self.assertEqual([c.index for c in pos.document_path], [4, 10, 2])
        self.assertEqual(pos.document_path[0].id, "body01")
        self.assertEqual(pos.character_offset, 3)
        self.assertEqual(pos.raw_cfi, "epubcfi(/6/14[chap05ref]!/4[body01]/10/2:3)")

    def test_cfi_without_wrapper(self):
        pos = parse_cfi("/6/4!/2/1:40")

        self.assertEqual([c.index for c in pos.spine_components], [6, 4])
        self.assertEqual([c.index for c in pos.document_path], [2, 1])
        self.assertEqual(pos.character_offset, 40)

    def test_spine_only(self):
        pos = parse_cfi("epubcfi(/6/14)")

        self.assertEqual([c.index for c in pos.spine_components], [6, 14])
        self.assertEqual(pos.document_path, ())
        self.assertIsNone(pos.character_offset)

    def test_document_path_without_offset(self):
        pos = parse_cfi("epubcfi(/6/2!/4/6)")

        self.assertEqual([c.index for c in pos.document_path], [4, 6])
        self.assertIsNone(pos.character_offset)

    def test_component_without_digits_is_skipped(self):
        pos = parse_cfi("epubcfi(/6/x/8!/4)")

        self.assertEqual([c.index for c in pos.spine_components], [6, 8])

    def test_unclosed_bracket_keeps_index(self):
        pos = parse_cfi("/6/8[abc!/4")

        self.assertIsNotNone(pos)
        self.assertEqual([c.index for c in pos.spine_components], [6, 8])
        self.assertIsNone(pos.spine_components[1].id)

    def test_malformed_inputs_return_none(self):
        for raw in ["", "garbage", "epubcfi()", "!/4/2:10", "////", "epubcfi(!)", None, 42]:
            with self.subTest(raw=raw):
                self.assertIsNone(parse_cfi(raw))

    def test_odd_inputs_never_raise(self):
        for raw in ["epubcfi(", ")(", "/[", "/1[", "/1]]", ":::", "/1!:", "/1!/2:", "epubcfi(/1!/2:x)"]:
            with self.subTest(raw=raw):
                pos = parse_cfi(raw)
                if pos is not None:
                    self.assertTrue(pos.spine_components)

    def test_component_string_form(self):
        self.assertEqual(str(CFIComponent(4)), "/4")
        self.assertEqual(str(CFIComponent(4, "chapter1")), "/4[chapter1]")

    def test_position_string_form(self):
        pos = parse_cfi("epubcfi(/6/14!/4/2[c1]/1:42)")

        self.assertEqual(str(pos), "CFI(spine: /6/14, path: /4/2[c1]/1:42)")

    def test_component_equality_ignores_label(self):
        self.assertEqual(CFIComponent(4, "a"), CFIComponent(4, "b"))
        self.assertLess(CFIComponent(2, "z"), CFIComponent(4, "a"))


class TestComparePositions(unittest.TestCase):
    """Test ordering of parsed positions"""

    def _pos(self, raw):
        pos = parse_cfi(raw)
        self.assertIsNotNone(pos)
        return pos

    def test_spine_decides_first(self):
        a = self._pos("/6/4!/100/1:900")
        b = self._pos("/6/6!/2/1:0")

        self.assertEqual(compare_positions(a, b), -1)
        self.assertEqual(compare_positions(b, a), 1)
        self.assertLess(a, b)

    def test_shorter_spine_first(self):
        a = self._pos("/6")
        b = self._pos("/6/4")

        self.assertEqual(compare_positions(a, b), -1)

    def test_document_path_then_offset(self):
        a = self._pos("/6/4!/4/2/1:40")
        b = self._pos("/6/4!/4/2/1:55")
        c = self._pos("/6/4!/4/4/1:0")

        self.assertLess(a, b)
        self.assertLess(b, c)
        self.assertLess(a, c)

    def test_shorter_document_path_first(self):
        a = self._pos("/6/4!/4/2")
        b = self._pos("/6/4!/4/2/1")

        self.assertEqual(compare_positions(a, b), -1)

    def test_compare_with_self_is_equal(self):
        pos = self._pos("epubcfi(/6/14!/4/2/1:40)")

        self.assertEqual(compare_positions(pos, pos), 0)
        self.assertEqual(pos, self._pos("/6/14!/4/2/1:40"))

    def test_labels_do_not_affect_order(self):
        a = self._pos("/6/4[a]!/4[x]/2:5")
        b = self._pos("/6/4[b]!/4[y]/2:5")

        self.assertEqual(compare_positions(a, b), 0)
        self.assertEqual(a, b)
        self.assertEqual(hash(a), hash(b))

    def test_missing_offset_compares_as_zero(self):
        a = self._pos("/6/4!/4/2")
        b = self._pos("/6/4!/4/2:0")

        self.assertEqual(compare_positions(a, b), 0)
        self.assertNotEqual(a, b)
        self.assertTrue(a <= b and a >= b)

    def test_sorted_positions_are_transitive(self):
        raws = [
            "/6/8!/2:0", "/6/4!/4/2/1:55", "/6/4", "/6/4!/4/2/1:40",
            "/6/4!/4/2", "/6/4!/2/10:3", "/8",
        ]
        positions = sorted(self._pos(r) for r in raws)

        for earlier, later in zip(positions, positions[1:]):
            self.assertLessEqual(compare_positions(earlier, later), 0)
        for i, a in enumerate(positions):
            for c in positions[i + 1:]:
                self.assertLessEqual(compare_positions(a, c), 0)


class TestDistance(unittest.TestCase):
    """Test the distance heuristic and adjacency"""

    def test_offset_distance(self):
        a = parse_cfi("epubcfi(/6/14!/4/2/1:40)")
        b = parse_cfi("epubcfi(/6/14!/4/2/1:55)")

        self.assertEqual(cfi_distance(a, b), 15.0)
        self.assertEqual(cfi_distance(b, a), -15.0)

    def test_path_distance(self):
        a = parse_cfi("/6/14!/4/2/1:400")
        b = parse_cfi("/6/14!/4/4/1:0")

        self.assertEqual(cfi_distance(a, b), 2 * 1000.0 + 1)

    def test_spine_distance_dominates(self):
        a = parse_cfi("/6/14!/4/2/1:40")
        b = parse_cfi("/6/16!/2/1:0")

        distance = cfi_distance(a, b)
        self.assertEqual(distance, 2 * 1_000_000.0 + 1)
        self.assertFalse(are_adjacent(a, b, threshold=100.0))

    def test_backwards_spine_step_is_large(self):
        a = parse_cfi("/6/16!/2/1:0")
        b = parse_cfi("/6/14!/4/2/1:9999")

        self.assertGreaterEqual(abs(cfi_distance(a, b)), 1_000_000 - 2)

    def test_adjacency_threshold(self):
        a = parse_cfi("/6/14!/4/2/1:40")
        b = parse_cfi("/6/14!/4/2/1:55")

        self.assertFalse(are_adjacent(a, b))
        self.assertTrue(are_adjacent(a, b, threshold=15.0))
        self.assertTrue(are_adjacent(b, a, threshold=100.0))


if __name__ == '__main__':
    unittest.main()
