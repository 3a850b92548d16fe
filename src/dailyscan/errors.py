from __future__ import annotations


class ScanError(RuntimeError):
    """Base class for per-item failures that the pipeline isolates."""

    error_class = "scan_error"

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class InvalidInputError(ScanError):
    error_class = "invalid_input"


class TransientNetworkError(ScanError):
    error_class = "transient_network"

    def __init__(self, message: str, url: str | None = None, status_code: int | None = None) -> None:
        super().__init__(message, url)
        self.status_code = status_code


class PermanentHttpError(ScanError):
    error_class = "permanent_http"

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(f"HTTP {status_code}", url)
        self.status_code = status_code


class EncodingFailed(ScanError):
    error_class = "encoding_failed"


class PersistenceError(ScanError):
    error_class = "persistence_failure"


class ImageDownloadError(ScanError):
    error_class = "image_download"


class SummaryError(ScanError):
    error_class = "summary"


class SearchError(ScanError):
    error_class = "search"


class MissingKeyError(SearchError):
    error_class = "missing_key"

    def __init__(self, key_name: str) -> None:
        super().__init__(f"{key_name} is not configured")
        self.key_name = key_name


class SearchHttpError(SearchError):
    error_class = "search_http"

    def __init__(self, status_code: int) -> None:
        super().__init__(f"Search API HTTP error: {status_code}")
        self.status_code = status_code


class RateLimitedError(SearchError):
    error_class = "rate_limited"

    def __init__(self) -> None:
        super().__init__("Search API rate limit reached")


class SearchNetworkError(SearchError):
    error_class = "search_network"


class Cancelled(Exception):
    """Raised when the current operation was cancelled by the caller.

    Not a ScanError, and never wrapped into one.
    """
