"""Exception types for the grounding ingestion pipeline."""


class GroundingError(Exception):
    """Base class for ingestion and storage failures."""


class SourceError(GroundingError):
    """The source document is missing, malformed or truncated."""

    def __init__(self, message: str, path: str = None):
        super().__init__(message)
        self.path = path


class StoreError(GroundingError):
    """A store operation (index management, insert, refresh, query) failed."""

    def __init__(self, message: str, operation: str = None):
        super().__init__(message)
        self.operation = operation


class DownloadError(GroundingError):
    """The source file could not be fetched."""

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
