"""
Translation Progress Data Classes

BatchProgress is the only durable state needed to resume a translation.
ProgressEvent is what the orchestrator emits to its notification sink.
"""

from dataclasses import dataclass, field, asdict
from typing import Any, Dict, Mapping, Optional


@dataclass
class BatchProgress:
    """Persisted advancement of one translation id."""
    completed_batch_count: int = 0     # Index of the next batch to attempt
    total_batch_count: int = 0
    translated_paragraphs: Dict[str, str] = field(default_factory=dict)  # "{item}-{para}" -> text
    total_tokens: int = 0
    content_hash: Optional[str] = None  # Hash of the source the batches were planned from

    def record_attempt(
        self,
        translations: Mapping[str, str],
        tokens: int,
        succeeded: bool,
        batch_index: int,
    ) -> None:
        """
        Merge one batch attempt.

        Keys are only added or overwritten. completed_batch_count only moves
        forward, and only when the attempt succeeded.
        """
        self.translated_paragraphs.update(translations)
        self.total_tokens += max(0, int(tokens))
        if succeeded:
            self.completed_batch_count = max(self.completed_batch_count, batch_index + 1)

    @property
    def is_complete(self) -> bool:
        return self.total_batch_count > 0 and self.completed_batch_count >= self.total_batch_count

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> Optional["BatchProgress"]:
        if not payload:
            return None
        return cls(
            completed_batch_count=int(payload.get("completed_batch_count", 0)),
            total_batch_count=int(payload.get("total_batch_count", 0)),
            translated_paragraphs=dict(payload.get("translated_paragraphs") or {}),
            total_tokens=int(payload.get("total_tokens", 0)),
            content_hash=payload.get("content_hash"),
        )


@dataclass
class ProgressEvent:
    """Progress notification emitted after each batch and on completion/failure."""
    translation_id: str
    batch_index: int
    total_batches: int
    total_tokens: int
    phase: str = "batch_done"  # "batch_done", "completed", "failed", "cancelled"
    fallback_level: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
