"""
Error taxonomy for the photo service.

Every error carries a ``kind`` tag and the HTTP status the API answers with,
so callers can branch on the type instead of matching messages.
"""

from typing import Optional


class PhotoServiceError(Exception):
    kind = "error"
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(PhotoServiceError):
    """A required descriptor field is missing or malformed."""
    kind = "validation"
    status_code = 400
    default_message = "Invalid photo descriptor"


class NotFoundError(PhotoServiceError):
    kind = "not_found"
    status_code = 404
    default_message = "Photo not found"


class IngestionError(PhotoServiceError):
    """
    Opaque failure of the ingestion pipeline.

    The underlying exception is chained as ``__cause__``; ``step`` names the
    pipeline step that failed.
    """
    kind = "ingestion"
    default_message = "Ingestion failed"

    def __init__(self, message: Optional[str] = None, step: Optional[str] = None):
        super().__init__(message)
        self.step = step

    @property
    def cause(self) -> Optional[BaseException]:
        return self.__cause__


class DerivativeGenerationError(IngestionError):
    kind = "derivative_generation"


class ObjectStoreError(IngestionError):
    kind = "object_store"


class MetadataExtractionError(IngestionError):
    kind = "metadata_extraction"


class PersistenceError(IngestionError):
    kind = "persistence"
