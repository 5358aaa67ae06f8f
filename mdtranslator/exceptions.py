"""
Translation Exceptions

Error taxonomy shared by the AI layer, the storage layer and the batch
orchestrator. Kept in one module to avoid circular imports between
ai/, core/ and translation/.
"""


class TranslationError(Exception):
    """Translation service error with optional code and details."""

    def __init__(self, message: str, code: str = None, details: dict = None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


class PlanningError(TranslationError):
    """Source document is empty or malformed; no batches can be produced."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, code="planning_failed", details=details)


class ProviderError(TranslationError):
    """Network, HTTP or model failure. Recoverable by resuming the translation."""


class ProviderTimeoutError(ProviderError):
    """Provider call exceeded its deadline. Handled exactly like ProviderError."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, code="timeout", details=details)


class BatchTranslationError(ProviderError):
    """A batch failed; progress up to the failing batch has been persisted."""

    def __init__(self, translation_id: str, batch_index: int, completed_batches: int,
                 total_batches: int, cause: Exception):
        message = (
            f"Batch {batch_index + 1}/{total_batches} failed: {cause}. "
            f"Progress saved ({completed_batches}/{total_batches} batches done), retry resumes from this batch"
        )
        super().__init__(
            message,
            code=getattr(cause, "code", None) or "provider_error",
            details={
                "translation_id": translation_id,
                "batch_index": batch_index,
                "completed_batches": completed_batches,
                "total_batches": total_batches,
            },
        )
        self.translation_id = translation_id
        self.batch_index = batch_index
        self.completed_batches = completed_batches
        self.total_batches = total_batches


class PersistenceError(TranslationError):
    """Durable write failed after storage-level retries; resumability is not guaranteed."""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message, code="persistence_failed", details=details)


class TranslationCancelled(TranslationError):
    """Translation was cancelled; already persisted progress stands."""

    def __init__(self, translation_id: str, completed_batches: int = 0, total_batches: int = 0):
        super().__init__(
            f"Translation {translation_id} cancelled",
            code="cancelled",
            details={
                "translation_id": translation_id,
                "completed_batches": completed_batches,
                "total_batches": total_batches,
            },
        )


class TranslationNotFound(TranslationError):
    """No completed translation (or no source document) exists for an id."""

    def __init__(self, message: str):
        super().__init__(message, code="not_found")


class AlignmentDegraded(Warning):
    """Marker alignment recovered above the Perfect level. Logged, never raised."""
