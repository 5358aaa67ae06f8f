from __future__ import annotations

import unittest
from unittest.mock import patch

from mdtranslator.translation import fallback
from mdtranslator.translation.fallback import (
    FallbackLevel,
    classify,
    find_best_line,
    resolve_fallback,
    similarity,
)
from mdtranslator.translation.markers import decode_batch, make_marker


def marked(*parts):
    """Build a response; None parts emit text without a marker."""
    chunks = []
    for ordinal, text in parts:
        chunks.append(text if ordinal is None else f"{text}\n{make_marker(ordinal)}")
    return "\n\n".join(chunks)


class ClassifyTests(unittest.TestCase):
    def test_thresholds(self) -> None:
        self.assertEqual(classify(0, 0, 4), FallbackLevel.PERFECT)
        self.assertEqual(classify(0, 1, 4), FallbackLevel.MINOR)
        self.assertEqual(classify(1, 0, 11), FallbackLevel.MINOR)
        self.assertEqual(classify(1, 0, 10), FallbackLevel.MODERATE)
        self.assertEqual(classify(1, 0, 4), FallbackLevel.MODERATE)
        self.assertEqual(classify(3, 0, 10), FallbackLevel.SEVERE)
        self.assertEqual(classify(3, 0, 4), FallbackLevel.SEVERE)
        self.assertEqual(classify(4, 0, 4), FallbackLevel.COMPLETE_FAILURE)

    def test_levels_are_ordered(self) -> None:
        self.assertLess(FallbackLevel.PERFECT, FallbackLevel.MINOR)
        self.assertLess(FallbackLevel.SEVERE, FallbackLevel.COMPLETE_FAILURE)


class SimilarityTests(unittest.TestCase):
    def test_length_ratio(self) -> None:
        self.assertEqual(similarity("abcd", "ab"), 0.5)
        self.assertEqual(similarity("abcd", "wxyz"), 1.0)
        self.assertEqual(similarity("", "x"), 0.0)

    def test_find_best_line_without_lines(self) -> None:
        self.assertEqual(find_best_line("abc", []), (None, -1.0))

    def test_find_best_line_prefers_closest_length(self) -> None:
        line, score = find_best_line("abcdefgh", ["ab", "abcdefg", "abcdefghijklmnop"])
        self.assertEqual(line, "abcdefg")
        self.assertAlmostEqual(score, 7 / 8)


class ResolveFallbackTests(unittest.TestCase):
    def test_perfect_uses_recovered_text(self) -> None:
        sources = ["One", "Two"]
        raw = marked((0, "Uno"), (1, "Dos"))

        result = resolve_fallback(decode_batch(raw, 2), sources, raw)

        self.assertEqual(result.level, FallbackLevel.PERFECT)
        self.assertEqual(result.paragraphs, ["Uno", "Dos"])
        self.assertFalse(result.degraded)

    def test_minor_fills_missing_with_source(self) -> None:
        sources = [f"Paragraph {i}" for i in range(12)]
        parts = [(i, f"Parrafo {i}") for i in range(12) if i != 5]
        raw = marked(*parts)

        result = resolve_fallback(decode_batch(raw, 12), sources, raw)

        self.assertEqual(result.level, FallbackLevel.MINOR)
        self.assertEqual(len(result.paragraphs), 12)
        self.assertEqual(result.paragraphs[5], "Paragraph 5")
        self.assertEqual(result.paragraphs[4], "Parrafo 4")

    def test_moderate_calls_similarity_matcher_once_per_missing_paragraph(self) -> None:
        sources = ["First paragraph", "Second paragraph", "Third paragraph", "Fourth paragraph"]
        raw = marked((0, "Primer parrafo"), (1, "Segundo parrafo"), (None, "Tercer parrafo"),
                     (3, "Cuarto parrafo"))
        extraction = decode_batch(raw, 4)
        self.assertEqual(extraction.missing, {2})

        with patch.object(fallback, "find_best_line", wraps=fallback.find_best_line) as matcher:
            result = resolve_fallback(extraction, sources, raw)

        self.assertEqual(result.level, FallbackLevel.MODERATE)
        self.assertEqual(matcher.call_count, 1)
        self.assertEqual(matcher.call_args[0][0], "Third paragraph")
        self.assertEqual(len(result.paragraphs), 4)
        self.assertEqual(result.paragraphs[0], "Primer parrafo")

    def test_moderate_keeps_source_when_no_line_is_similar(self) -> None:
        sources = ["A fairly long source paragraph", "B", "C", "D"]
        raw = marked((None, "x"), (1, "b"), (2, "c"), (3, "d"))
        extraction = decode_batch(raw, 4)

        with patch.object(fallback, "find_best_line", return_value=("x", 0.1)):
            result = resolve_fallback(extraction, sources, raw)

        self.assertEqual(result.paragraphs[0], "A fairly long source paragraph")

    def test_severe_zips_response_lines(self) -> None:
        sources = ["One", "Two", "Three", "Four"]
        raw = "Uno\n<!-- MDT_PARA_0 -->\nDos\nTres"

        result = resolve_fallback(decode_batch(raw, 4), sources, raw)

        self.assertEqual(result.level, FallbackLevel.SEVERE)
        self.assertEqual(result.paragraphs, ["Uno", "Dos", "Tres", "Four"])

    def test_complete_failure_preserves_sources(self) -> None:
        sources = ["One", "Two", "Three"]
        raw = "Uno Dos Tres"

        result = resolve_fallback(decode_batch(raw, 3), sources, raw)

        self.assertEqual(result.level, FallbackLevel.COMPLETE_FAILURE)
        self.assertEqual(result.paragraphs, sources)
        self.assertEqual(result.missing_count, 3)

    def test_result_always_has_one_paragraph_per_source(self) -> None:
        sources = ["a", "b", "c", "d", "e"]
        for raw in ("", "x", marked((0, "A")), marked((0, "A"), (1, "B"), (1, "B2")), marked((9, "Z"))):
            with self.subTest(raw=raw):
                result = resolve_fallback(decode_batch(raw, 5), sources, raw)
                self.assertEqual(len(result.paragraphs), 5)


if __name__ == "__main__":
    unittest.main()
