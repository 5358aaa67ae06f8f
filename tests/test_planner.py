from __future__ import annotations

import unittest

from mdtranslator.exceptions import PlanningError
from mdtranslator.translation.document import Paragraph
from mdtranslator.translation.planner import plan_batches, safe_token_budget


def paragraphs_with_tokens(*tokens: int):
    return [
        Paragraph(text=f"p{i}", item_index=0, paragraph_index=i, estimated_tokens=t)
        for i, t in enumerate(tokens)
    ]


class PlanBatchesTests(unittest.TestCase):
    def test_greedy_packing_respects_budget(self) -> None:
        batches = plan_batches(paragraphs_with_tokens(4, 4, 4, 4, 4), max_context_tokens=10)

        self.assertEqual([b.size for b in batches], [2, 2, 1])
        self.assertTrue(all(b.estimated_tokens <= 10 for b in batches))
        self.assertEqual([b.index for b in batches], [0, 1, 2])

    def test_reserved_margin_shrinks_budget(self) -> None:
        batches = plan_batches(paragraphs_with_tokens(4, 4, 4), max_context_tokens=10, reserved_margin=2)
        self.assertEqual([b.size for b in batches], [2, 1])

    def test_oversized_paragraph_becomes_singleton_batch(self) -> None:
        batches = plan_batches(paragraphs_with_tokens(3, 50, 3, 3), max_context_tokens=10)

        self.assertEqual([[p.paragraph_index for p in b.paragraphs] for b in batches], [[0], [1], [2, 3]])
        self.assertEqual(batches[1].estimated_tokens, 50)

    def test_batches_partition_paragraphs_in_order(self) -> None:
        paragraphs = paragraphs_with_tokens(1, 7, 2, 9, 3, 3, 12, 1)

        batches = plan_batches(paragraphs, max_context_tokens=10)

        flattened = [p for b in batches for p in b.paragraphs]
        self.assertEqual(flattened, paragraphs)
        self.assertTrue(all(b.size > 0 for b in batches))

    def test_empty_input_raises(self) -> None:
        with self.assertRaises(PlanningError):
            plan_batches([], max_context_tokens=10)

    def test_non_positive_budget_raises(self) -> None:
        with self.assertRaises(PlanningError):
            safe_token_budget(100, 100)

    def test_describe_names_paragraph_span(self) -> None:
        batch = plan_batches(paragraphs_with_tokens(1, 1), max_context_tokens=10)[0]
        self.assertEqual(batch.describe(), "2 paragraphs (0-0 to 0-1)")


if __name__ == "__main__":
    unittest.main()
