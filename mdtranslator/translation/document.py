"""
Document model, flattening and reassembly.

A source document is the paginated Markdown payload delivered by the
upstream extractor:

    {"errCode": 0, "errMsg": "...",
     "data": {"total_page": 3, "lang": null,
              "markdown": [{"markdown": ["para", ...], "page": 1}, ...]}}

Each entry of data.markdown is a section; its "markdown" list holds the
section's paragraphs. Flattening turns that hierarchy into an ordered list
of Paragraph records whose (item_index, paragraph_index) pair is the join key
used to merge translations back in.
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping

from mdtranslator.exceptions import PlanningError
from mdtranslator.translation.tokens import estimate_tokens


@dataclass(frozen=True)
class Paragraph:
    """One translatable unit."""
    text: str
    item_index: int
    paragraph_index: int
    estimated_tokens: int

    @property
    def key(self) -> str:
        return paragraph_key(self.item_index, self.paragraph_index)


def paragraph_key(item_index: int, paragraph_index: int) -> str:
    """Join key used in the persisted translated-paragraph map."""
    return f"{item_index}-{paragraph_index}"


def is_blank(text: Any) -> bool:
    return not isinstance(text, str) or not text.strip()


def get_sections(document: Mapping[str, Any]) -> List[Dict[str, Any]]:
    """
    Return the section list of a document.

    Raises:
        PlanningError: If the document does not have the expected shape.
    """
    if not isinstance(document, Mapping):
        raise PlanningError("Document must be a JSON object")
    data = document.get("data")
    if not isinstance(data, Mapping):
        raise PlanningError("Document has no 'data' object")
    sections = data.get("markdown")
    if not isinstance(sections, list):
        raise PlanningError("Document has no 'data.markdown' section list")
    for index, section in enumerate(sections):
        if not isinstance(section, Mapping) or not isinstance(section.get("markdown", []), list):
            raise PlanningError(f"Section {index} is malformed", details={"section": index})
    return sections


def clean_empty_paragraphs(document: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Return a copy of the document with whitespace-only paragraphs removed.

    Sections themselves are kept (even when they end up empty) so section
    positions do not shift.
    """
    cleaned = copy.deepcopy(dict(document))
    for section in get_sections(cleaned):
        section["markdown"] = [p for p in section.get("markdown", []) if not is_blank(p)]
    return cleaned


def flatten_document(document: Mapping[str, Any]) -> List[Paragraph]:
    """
    Flatten a document into Paragraph records in (item_index, paragraph_index) order.

    Blank paragraphs are skipped but still consume their paragraph_index, so
    indices always point at the slot in the document passed in.
    """
    paragraphs: List[Paragraph] = []
    for item_index, section in enumerate(get_sections(document)):
        for paragraph_index, text in enumerate(section.get("markdown", [])):
            if is_blank(text):
                continue
            paragraphs.append(Paragraph(
                text=text,
                item_index=item_index,
                paragraph_index=paragraph_index,
                estimated_tokens=estimate_tokens(text),
            ))
    return paragraphs


def extract_markdown_text(document: Mapping[str, Any]) -> Dict[str, Any]:
    """Join all paragraphs of a document and estimate their tokens."""
    try:
        sections = get_sections(document)
    except PlanningError:
        return {"text": "", "estimated_tokens": 0}
    parts: List[str] = []
    for section in sections:
        parts.extend(p for p in section.get("markdown", []) if isinstance(p, str))
    text = "\n".join(parts)
    return {"text": text, "estimated_tokens": estimate_tokens(text)}


def assemble_translated_document(
    document: Mapping[str, Any],
    translated_paragraphs: Mapping[str, str],
    target_language: str = None,
) -> Dict[str, Any]:
    """
    Rebuild the document with each paragraph slot rendered from the translation map.

    Sections get a "markdown_lang" list parallel to "markdown"; a slot with no
    translation renders as an empty string.
    """
    sections = get_sections(document)
    translated_sections = []
    for item_index, section in enumerate(sections):
        source = list(section.get("markdown", []))
        translated_sections.append({
            "markdown": source,
            "markdown_lang": [
                translated_paragraphs.get(paragraph_key(item_index, paragraph_index), "")
                for paragraph_index in range(len(source))
            ],
            "page": section.get("page"),
            "could_translate": True,
        })

    data = document.get("data", {})
    return {
        "errCode": 0,
        "errMsg": "success",
        "data": {
            "lang": target_language,
            "total_page": data.get("total_page"),
            "markdown": translated_sections,
        },
    }


def fnv1a_hash(text: str) -> str:
    """32-bit FNV-1a hash of text, as lowercase hex."""
    value = 0x811c9dc5
    for char in text:
        value ^= ord(char)
        value = (value * 0x01000193) & 0xFFFFFFFF
    return format(value, 'x')


def content_hash(document: Mapping[str, Any]) -> str:
    """Stable hash of a document's canonical JSON, used to detect source changes."""
    return fnv1a_hash(json.dumps(document, sort_keys=True, ensure_ascii=False))
