"""
Batch planning: greedy packing of paragraphs into token-bounded batches.
"""

from dataclasses import dataclass
from typing import List, Sequence, Tuple

from mdtranslator.exceptions import PlanningError
from mdtranslator.translation.document import Paragraph


@dataclass(frozen=True)
class Batch:
    """An ordered, non-empty run of paragraphs sent to the provider in one call."""
    index: int
    paragraphs: Tuple[Paragraph, ...]

    @property
    def size(self) -> int:
        return len(self.paragraphs)

    @property
    def estimated_tokens(self) -> int:
        return sum(p.estimated_tokens for p in self.paragraphs)

    @property
    def texts(self) -> List[str]:
        return [p.text for p in self.paragraphs]

    def describe(self) -> str:
        first, last = self.paragraphs[0], self.paragraphs[-1]
        return f"{self.size} paragraphs ({first.key} to {last.key})"


def safe_token_budget(max_context_tokens: int, reserved_margin: int) -> int:
    budget = max_context_tokens - reserved_margin
    if budget <= 0:
        raise PlanningError(
            f"Token budget must be positive (context {max_context_tokens}, margin {reserved_margin})",
            details={"max_context_tokens": max_context_tokens, "reserved_margin": reserved_margin},
        )
    return budget


def plan_batches(
    paragraphs: Sequence[Paragraph],
    max_context_tokens: int,
    reserved_margin: int = 0,
) -> List[Batch]:
    """
    Pack paragraphs into batches in flattening order.

    A batch keeps accumulating while its summed estimate stays within
    max_context_tokens - reserved_margin. A paragraph whose own estimate
    exceeds that budget is flushed as a singleton batch; paragraphs are
    never split.

    Raises:
        PlanningError: If there is nothing to translate or the budget is not positive.
    """
    if not paragraphs:
        raise PlanningError("Document contains no translatable paragraphs")

    budget = safe_token_budget(max_context_tokens, reserved_margin)

    groups: List[List[Paragraph]] = []
    current: List[Paragraph] = []
    current_tokens = 0

    for paragraph in paragraphs:
        tokens = paragraph.estimated_tokens

        if tokens > budget:
            if current:
                groups.append(current)
                current = []
                current_tokens = 0
            groups.append([paragraph])
            continue

        if current and current_tokens + tokens > budget:
            groups.append(current)
            current = []
            current_tokens = 0

        current.append(paragraph)
        current_tokens += tokens

    if current:
        groups.append(current)

    return [Batch(index=i, paragraphs=tuple(group)) for i, group in enumerate(groups)]
