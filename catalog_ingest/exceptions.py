"""
Custom exceptions for the Catalog Ingest Relay.

Every exception here is fatal for the invocation: the handler logs it and
re-raises so the Lambda runtime can redeliver the event. Skips (bucket
mismatch, duplicate ETag, no catalog match) are normal outcomes and never
raise.
"""

from typing import Optional


class RelayError(Exception):
    """Base class for all fatal relay errors."""


class ConfigurationError(RelayError):
    """A required environment variable is missing or invalid."""


class CatalogResponseError(RelayError):
    """The catalog answered, but the JSON did not have the expected shape."""


class TransportError(RelayError):
    """
    A network call failed, timed out, or returned a non-success status.

    Attributes:
        status_code: The HTTP status, when a response was received.
        body: The response body, captured for diagnostics.
    """

    def __init__(
        self, message: str, status_code: Optional[int] = None, body: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class DedupStoreError(TransportError):
    """Reading or writing the DynamoDB dedup table failed."""


class CatalogTransportError(TransportError):
    """A catalog API request failed or returned a non-2xx status."""


class SourceFetchError(TransportError):
    """The source object could not be opened for streaming."""


class UploadRejectedError(TransportError):
    """The destination PUT returned a non-success status."""


class MalformedEventError(RelayError):
    """The trigger payload does not carry a bucket, key and ETag."""
