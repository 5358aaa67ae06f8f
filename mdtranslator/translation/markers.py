"""
Paragraph marker codec.

Outgoing batches carry an HTML-comment sentinel after every paragraph:

    First paragraph
    <!-- MDT_PARA_0 -->

    Second paragraph
    <!-- MDT_PARA_1 -->

Whatever the model writes between the previous marker (or the start of the
response) and marker k is taken as the translation of paragraph k. Models
drop, repeat and renumber these markers, so decoding reports missing and
duplicate ordinals instead of failing; the fallback resolver decides what to
do with a damaged result.

Leading indentation of a paragraph survives the round trip; trailing
whitespace and surrounding blank lines do not.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set

from mdtranslator.logger import get_logger
from mdtranslator.translation.document import Paragraph

logger = get_logger(__name__)

MARKER_TEMPLATE = "<!-- MDT_PARA_{ordinal} -->"
MARKER_PATTERN = re.compile(r'<!--\s*MDT_PARA_(\d+)\s*-->', re.IGNORECASE)
# Damaged sentinels: unterminated comments, translated spacing, bare tokens
STRAY_MARKER_PATTERN = re.compile(
    r'<!--\s*MDT[_\s]*PARA[_\s]*\d*\s*-*>?|MDT_PARA_\d+\s*(?:-->)?',
    re.IGNORECASE,
)


@dataclass
class MarkerExtractionResult:
    """Per-attempt decoding result; recovered has one slot per expected ordinal."""
    expected_count: int
    recovered: List[Optional[str]]
    missing: Set[int] = field(default_factory=set)
    duplicates: Set[int] = field(default_factory=set)

    @property
    def found(self) -> Set[int]:
        return {i for i, text in enumerate(self.recovered) if text is not None}

    @property
    def is_intact(self) -> bool:
        return not self.missing and not self.duplicates


def make_marker(ordinal: int) -> str:
    return MARKER_TEMPLATE.format(ordinal=ordinal)


def strip_stray_markers(text: str) -> str:
    return STRAY_MARKER_PATTERN.sub("", text).strip()


def _trim(text: str) -> str:
    return text.lstrip("\r\n").rstrip()


def _clean_segment(segment: str, line_start: bool) -> str:
    text = STRAY_MARKER_PATTERN.sub("", segment).rstrip()
    body = text.lstrip()
    leading = text[:len(text) - len(body)]
    if line_start or "\n" in leading:
        # indentation on a fresh line belongs to the paragraph
        return leading[leading.rfind("\n") + 1:] + body
    return body


def encode_batch(paragraphs: Sequence[Paragraph]) -> str:
    """
    Build the outgoing text for a batch.

    A single paragraph is sent as-is: with one slot there is nothing to align.
    """
    if len(paragraphs) == 1:
        return _trim(paragraphs[0].text)
    return "\n\n".join(
        f"{_trim(paragraph.text)}\n{make_marker(ordinal)}"
        for ordinal, paragraph in enumerate(paragraphs)
    )


def decode_batch(text: str, expected_count: int) -> MarkerExtractionResult:
    """
    Recover per-paragraph text from a marked response.

    Ordinals outside [0, expected_count) still delimit segments but are
    otherwise ignored. When an ordinal appears more than once the first
    occurrence keeps its content and the ordinal is flagged as duplicate.
    """
    recovered: List[Optional[str]] = [None] * expected_count
    duplicates: Set[int] = set()
    seen: Set[int] = set()

    segment_start = 0
    for match in MARKER_PATTERN.finditer(text or ""):
        ordinal = int(match.group(1))
        line_start = segment_start == 0
        segment = text[segment_start:match.start()]
        segment_start = match.end()

        if ordinal in seen:
            duplicates.add(ordinal)
            continue
        seen.add(ordinal)

        if 0 <= ordinal < expected_count:
            recovered[ordinal] = _clean_segment(segment, line_start)
        else:
            logger.debug(f"Ignoring out-of-range marker MDT_PARA_{ordinal} (expected {expected_count})")

    missing = {i for i in range(expected_count) if recovered[i] is None}
    duplicates = {i for i in duplicates if 0 <= i < expected_count}

    logger.debug(
        "Marker extraction: expected=%d found=%d missing=%s duplicates=%s",
        expected_count,
        expected_count - len(missing),
        sorted(missing),
        sorted(duplicates),
    )

    return MarkerExtractionResult(
        expected_count=expected_count,
        recovered=recovered,
        missing=missing,
        duplicates=duplicates,
    )
