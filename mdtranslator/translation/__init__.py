"""
Translation module - Core translation functionality

This module provides:
- Token estimation, document flattening and batch planning
- Marker codec and alignment fallback ladder
- Batch progress records, rate limiting and realtime progress tracking

The orchestrator lives in mdtranslator.translation.manager (TranslationManager).
"""

from mdtranslator.translation.tokens import estimate_tokens
from mdtranslator.translation.document import (
    Paragraph,
    flatten_document,
    clean_empty_paragraphs,
    extract_markdown_text,
    assemble_translated_document,
    content_hash,
)
from mdtranslator.translation.planner import Batch, plan_batches
from mdtranslator.translation.markers import encode_batch, decode_batch, MarkerExtractionResult
from mdtranslator.translation.fallback import FallbackLevel, FallbackResult, resolve_fallback
from mdtranslator.translation.progress import BatchProgress, ProgressEvent
from mdtranslator.translation.rate_limiter import RateLimiter
from mdtranslator.translation.tracker import ProgressTracker, RealtimeProgress
