from __future__ import annotations

import unittest

from mdtranslator.translation.document import Paragraph
from mdtranslator.translation.markers import decode_batch, encode_batch, make_marker, strip_stray_markers


def paragraphs(*texts: str):
    return [Paragraph(text=t, item_index=0, paragraph_index=i, estimated_tokens=1) for i, t in enumerate(texts)]


class EncodeBatchTests(unittest.TestCase):
    def test_single_paragraph_is_sent_unmarked(self) -> None:
        self.assertEqual(encode_batch(paragraphs("\n  Hello  ")), "  Hello")

    def test_each_paragraph_is_followed_by_its_marker(self) -> None:
        encoded = encode_batch(paragraphs("One", "Two"))
        self.assertEqual(encoded, "One\n<!-- MDT_PARA_0 -->\n\nTwo\n<!-- MDT_PARA_1 -->")


class DecodeBatchTests(unittest.TestCase):
    def test_intact_response_recovers_every_paragraph(self) -> None:
        response = "Uno\n<!-- MDT_PARA_0 -->\n\nDos\n<!-- MDT_PARA_1 -->\n\nTres\n<!-- MDT_PARA_2 -->"

        result = decode_batch(response, 3)

        self.assertEqual(result.recovered, ["Uno", "Dos", "Tres"])
        self.assertTrue(result.is_intact)
        self.assertEqual(result.found, {0, 1, 2})

    def test_marker_spacing_and_case_are_tolerated(self) -> None:
        result = decode_batch("Uno <!--mdt_para_0--> Dos <!--  MDT_PARA_1  -->", 2)
        self.assertEqual(result.recovered, ["Uno", "Dos"])

    def test_leading_indentation_survives_round_trip(self) -> None:
        originals = ("    indented code", "Plain", "  - nested item")

        result = decode_batch(encode_batch(paragraphs(*originals)), 3)

        self.assertEqual(result.recovered, list(originals))
        self.assertTrue(result.is_intact)

    def test_missing_marker_is_reported(self) -> None:
        response = "Uno\n<!-- MDT_PARA_0 -->\nDos\nTres\n<!-- MDT_PARA_2 -->"

        result = decode_batch(response, 3)

        self.assertEqual(result.missing, {1})
        self.assertIsNone(result.recovered[1])
        self.assertEqual(result.recovered[2], "Dos\nTres")

    def test_first_occurrence_wins_and_duplicate_is_flagged(self) -> None:
        response = "A\n<!-- MDT_PARA_0 -->\nB\n<!-- MDT_PARA_0 -->\nC\n<!-- MDT_PARA_1 -->"

        result = decode_batch(response, 2)

        self.assertEqual(result.recovered, ["A", "C"])
        self.assertEqual(result.duplicates, {0})
        self.assertFalse(result.is_intact)

    def test_out_of_range_ordinal_does_not_corrupt_neighbours(self) -> None:
        response = "A\n<!-- MDT_PARA_0 -->\nJunk\n<!-- MDT_PARA_7 -->\nB\n<!-- MDT_PARA_1 -->"

        result = decode_batch(response, 2)

        self.assertEqual(result.recovered, ["A", "B"])
        self.assertEqual(result.missing, set())

    def test_no_markers_means_everything_missing(self) -> None:
        result = decode_batch("just some text", 2)
        self.assertEqual(result.missing, {0, 1})

    def test_stray_marker_fragments_are_stripped(self) -> None:
        self.assertEqual(strip_stray_markers("Hola MDT_PARA_3 --> mundo"), "Hola  mundo")
        self.assertEqual(strip_stray_markers("Texto <!-- MDT_PARA_"), "Texto")
        self.assertEqual(make_marker(4), "<!-- MDT_PARA_4 -->")


if __name__ == "__main__":
    unittest.main()
