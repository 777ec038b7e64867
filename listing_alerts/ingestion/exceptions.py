"""Custom exceptions for offer ingestion."""


class IngestionError(Exception):
    """Base exception for all ingestion errors.

    Catching this ends the current reconciliation cycle's fetch without
    affecting the scheduler or any running sweep.
    """

    pass


class IngestionHTTPError(IngestionError):
    """The offer feed answered with a 4xx/5xx status or the request failed outright."""

    def __init__(self, message: str, status_code: int, url: str) -> None:
        """Initialize HTTP error with status code and URL.

        Args:
            message: Human-readable error message
            status_code: HTTP status code (0 when no response was received)
            url: URL that failed
        """
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class IngestionTimeoutError(IngestionError):
    """The offer feed did not answer within the configured timeout."""

    def __init__(self, message: str, url: str) -> None:
        super().__init__(message)
        self.url = url


class IngestionResponseError(IngestionError):
    """The feed response could not be parsed (invalid JSON or unexpected shape)."""

    pass
