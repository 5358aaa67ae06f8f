"""
Real-time progress tracking (in memory).

One entry per active translation id, created by start() and explicitly
evicted by complete()/discard(). Token counts stream in from provider
callbacks; throughput is smoothed with an exponential moving average and
turned into an ETA.
"""

import time
from dataclasses import dataclass, asdict
from typing import Callable, Dict, List, Optional

from mdtranslator.logger import get_logger

logger = get_logger(__name__)


def _now_ms() -> float:
    return time.time() * 1000.0


def calculate_percentage(total_tokens: int, estimated_total_tokens: int) -> float:
    if estimated_total_tokens <= 0:
        return 0.0
    return min(100.0, total_tokens / estimated_total_tokens * 100.0)


@dataclass
class RealtimeProgress:
    """Read model of one active translation."""
    translation_id: str
    total_tokens: int
    estimated_total_tokens: int
    tokens_per_second: float
    estimated_remaining_ms: float
    start_time: float
    last_update_time: float

    @property
    def percentage(self) -> float:
        return calculate_percentage(self.total_tokens, self.estimated_total_tokens)

    def to_dict(self) -> Dict:
        payload = asdict(self)
        payload["percentage"] = self.percentage
        return payload


@dataclass
class _Entry:
    progress: RealtimeProgress
    sample_time: float
    sample_tokens: int
    samples: int = 0
    last_persist_time: float = 0.0


class ProgressTracker:
    """Per-translation throughput and ETA estimator."""

    def __init__(
        self,
        speed_smoothing: float = 0.7,
        min_sample_interval_ms: float = 100,
        persist_interval_ms: float = 3000,
        clock: Callable[[], float] = _now_ms,
    ):
        self.speed_smoothing = speed_smoothing
        self.min_sample_interval_ms = min_sample_interval_ms
        self.persist_interval_ms = persist_interval_ms
        self._clock = clock
        self._entries: Dict[str, _Entry] = {}

    @classmethod
    def from_config(cls, config: dict) -> "ProgressTracker":
        progress_config = config.get('progress', {})
        return cls(
            speed_smoothing=progress_config.get('speed_smoothing', 0.7),
            min_sample_interval_ms=progress_config.get('min_sample_interval_ms', 100),
            persist_interval_ms=progress_config.get('persist_interval_ms', 3000),
        )

    def start(self, translation_id: str, estimated_total_tokens: int, resume_tokens: int = 0) -> RealtimeProgress:
        """
        Begin tracking a translation.

        If the id is already tracked only the estimate is refreshed.
        """
        entry = self._entries.get(translation_id)
        if entry:
            entry.progress.estimated_total_tokens = estimated_total_tokens
            logger.info(f"Progress estimate updated for {translation_id}: {estimated_total_tokens} tokens "
                        f"({entry.progress.total_tokens} done)")
            return entry.progress

        now = self._clock()
        progress = RealtimeProgress(
            translation_id=translation_id,
            total_tokens=resume_tokens,
            estimated_total_tokens=estimated_total_tokens,
            tokens_per_second=0.0,
            estimated_remaining_ms=0.0,
            start_time=now,
            last_update_time=now,
        )
        self._entries[translation_id] = _Entry(progress=progress, sample_time=now, sample_tokens=resume_tokens,
                                                last_persist_time=now)
        if resume_tokens:
            logger.info(f"Progress resumed for {translation_id}: {resume_tokens}/{estimated_total_tokens} tokens")
        else:
            logger.info(f"Progress started for {translation_id}: estimated {estimated_total_tokens} tokens")
        return progress

    def update(self, translation_id: str, total_tokens: int) -> Optional[RealtimeProgress]:
        """Record the latest cumulative token count of a translation."""
        entry = self._entries.get(translation_id)
        if not entry:
            logger.warning(f"No progress tracked for {translation_id}")
            return None

        now = self._clock()
        progress = entry.progress
        progress.total_tokens = total_tokens
        progress.last_update_time = now

        elapsed = now - entry.sample_time
        if elapsed > self.min_sample_interval_ms:
            instantaneous = (total_tokens - entry.sample_tokens) / elapsed * 1000.0
            if entry.samples == 0:
                progress.tokens_per_second = instantaneous
            else:
                progress.tokens_per_second = (self.speed_smoothing * progress.tokens_per_second
                                              + (1 - self.speed_smoothing) * instantaneous)
            entry.samples += 1
            entry.sample_time = now
            entry.sample_tokens = total_tokens

        if progress.tokens_per_second > 0 and progress.estimated_total_tokens > 0:
            remaining = max(0, progress.estimated_total_tokens - total_tokens)
            progress.estimated_remaining_ms = remaining / progress.tokens_per_second * 1000.0

        return progress

    def should_persist(self, translation_id: str) -> bool:
        """True at most once per persist interval; the caller then writes the snapshot durably."""
        entry = self._entries.get(translation_id)
        if not entry:
            return False
        now = self._clock()
        if now - entry.last_persist_time >= self.persist_interval_ms:
            entry.last_persist_time = now
            return True
        return False

    def get(self, translation_id: str) -> Optional[RealtimeProgress]:
        entry = self._entries.get(translation_id)
        return entry.progress if entry else None

    def complete(self, translation_id: str, final_total_tokens: Optional[int] = None) -> Optional[RealtimeProgress]:
        """Finalize and evict a translation's entry."""
        entry = self._entries.pop(translation_id, None)
        if not entry:
            logger.warning(f"No progress tracked for {translation_id}")
            return None
        progress = entry.progress
        if final_total_tokens is not None:
            progress.total_tokens = final_total_tokens
        progress.last_update_time = self._clock()
        progress.estimated_remaining_ms = 0.0
        logger.info(f"Progress finished for {translation_id}: {progress.total_tokens} tokens, "
                    f"{progress.tokens_per_second:.1f} tokens/s")
        return progress

    def discard(self, translation_id: str) -> None:
        self._entries.pop(translation_id, None)

    def active_ids(self) -> List[str]:
        return list(self._entries)
