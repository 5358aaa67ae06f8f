"""
Alignment fallback resolver.

Turns a (possibly damaged) marker extraction into exactly one paragraph per
batch slot. The missing-marker ratio picks a level on an escalating ladder:

- PERFECT: every marker found once, use the recovered text verbatim
- MINOR (< 10% missing): missing slots keep their source text
- MODERATE (< 30% missing): missing slots take the most similar response line,
  or their source text when no line scores above the threshold
- SEVERE (< 100% missing): ignore markers, zip response lines onto slots
- COMPLETE_FAILURE: no markers at all, keep every source paragraph
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import List, Optional, Sequence, Tuple

from mdtranslator.logger import get_logger
from mdtranslator.translation.markers import MarkerExtractionResult, strip_stray_markers

logger = get_logger(__name__)

MINOR_RATIO = 0.10
MODERATE_RATIO = 0.30
SIMILARITY_THRESHOLD = 0.5


class FallbackLevel(IntEnum):
    """Ordered severity scale of alignment recovery."""
    PERFECT = 0
    MINOR = 1
    MODERATE = 2
    SEVERE = 3
    COMPLETE_FAILURE = 4


@dataclass
class FallbackResult:
    level: FallbackLevel
    paragraphs: List[str]
    missing_count: int
    total_count: int
    strategy: str

    @property
    def degraded(self) -> bool:
        return self.level > FallbackLevel.PERFECT


def classify(missing_count: int, duplicate_count: int, total_count: int) -> FallbackLevel:
    missing_ratio = missing_count / total_count if total_count > 0 else 1.0
    if total_count > 0 and missing_count == 0 and duplicate_count == 0:
        return FallbackLevel.PERFECT
    if missing_ratio < MINOR_RATIO:
        return FallbackLevel.MINOR
    if missing_ratio < MODERATE_RATIO:
        return FallbackLevel.MODERATE
    if missing_ratio < 1.0:
        return FallbackLevel.SEVERE
    return FallbackLevel.COMPLETE_FAILURE


def similarity(source: str, candidate: str) -> float:
    """
    Length-ratio similarity in [0, 1].

    A deliberately weak proxy: translations of a paragraph tend to have a
    comparable length. Swap in edit distance or token overlap here.
    """
    if not source or not candidate:
        return 0.0
    return min(len(source), len(candidate)) / max(len(source), len(candidate))


def response_lines(raw_text: str) -> List[str]:
    """Non-empty, stripped lines of a response with stray markers removed."""
    lines = (strip_stray_markers(line) for line in (raw_text or "").split("\n"))
    return [line for line in lines if line]


def find_best_line(source: str, lines: Sequence[str]) -> Tuple[Optional[str], float]:
    """Return the line most similar to source and its score (None, -1.0 for no lines)."""
    best_line, best_score = None, -1.0
    for line in lines:
        score = similarity(source, line)
        if score > best_score:
            best_line, best_score = line, score
    return best_line, best_score


def _fill_missing_with_source(recovered: List[Optional[str]], sources: Sequence[str]) -> List[str]:
    return [text if text is not None else sources[i] for i, text in enumerate(recovered)]


def _heuristic_match(
    recovered: List[Optional[str]],
    missing: Sequence[int],
    sources: Sequence[str],
    raw_text: str,
) -> List[str]:
    result = list(recovered)
    lines = response_lines(raw_text)
    for ordinal in missing:
        best_line, score = find_best_line(sources[ordinal], lines)
        if best_line is not None and score > SIMILARITY_THRESHOLD:
            result[ordinal] = best_line
            logger.warning(f"Paragraph {ordinal}: using heuristic match (score: {score:.2f})")
        else:
            result[ordinal] = sources[ordinal]
            logger.warning(f"Paragraph {ordinal}: no good match found, using original text")
    return _fill_missing_with_source(result, sources)


def _line_based(sources: Sequence[str], raw_text: str) -> List[str]:
    lines = response_lines(raw_text)
    if len(lines) < len(sources):
        logger.warning(f"Only {len(lines)} response lines for {len(sources)} paragraphs; "
                       f"keeping original text for the rest")
    return [lines[i] if i < len(lines) else source for i, source in enumerate(sources)]


def resolve_fallback(
    extraction: MarkerExtractionResult,
    sources: Sequence[str],
    raw_text: str,
) -> FallbackResult:
    """
    Resolve an extraction into exactly len(sources) paragraphs.

    Args:
        extraction: Marker decoding result for this batch attempt
        sources: Original paragraph texts of the batch, in order
        raw_text: Full provider response, used by the line-based strategies

    Returns:
        FallbackResult whose paragraphs list always has len(sources) entries
    """
    total_count = len(sources)
    recovered = list(extraction.recovered[:total_count])
    recovered.extend([None] * (total_count - len(recovered)))
    missing = sorted(i for i in range(total_count) if recovered[i] is None)
    missing_count = len(missing)

    level = classify(missing_count, len(extraction.duplicates), total_count)

    if level == FallbackLevel.PERFECT:
        paragraphs = _fill_missing_with_source(recovered, sources)
        strategy = "All markers found - using extracted paragraphs directly"
    elif level == FallbackLevel.MINOR:
        paragraphs = _fill_missing_with_source(recovered, sources)
        strategy = f"Minor issues: filling {missing_count} missing paragraphs with original text"
    elif level == FallbackLevel.MODERATE:
        paragraphs = _heuristic_match(recovered, missing, sources, raw_text)
        strategy = f"Moderate issues: applying heuristic matching for {missing_count} missing paragraphs"
    elif level == FallbackLevel.SEVERE:
        logger.warning("Severe marker loss, falling back to line-based matching")
        paragraphs = _line_based(sources, raw_text)
        strategy = "Severe issues: falling back to line-based matching"
    else:
        if total_count:
            logger.error("All markers lost, preserving original text")
        paragraphs = list(sources)
        strategy = "Complete failure: preserving all original text"

    return FallbackResult(
        level=level,
        paragraphs=paragraphs,
        missing_count=missing_count,
        total_count=total_count,
        strategy=strategy,
    )
