"""
Core business logic for the Catalog Ingest Relay.

These functions contain no global state and create no clients of their own.
They receive every dependency, including the Powertools logger, from the main
handler in app.py, allowing them to be unit-tested in isolation.

The transfer pipeline for one event is strictly sequential:

    dedup lookup -> catalog search -> source fetch -> slot negotiation
    -> streaming PUT -> dedup record

A dedup row is written only after the destination PUT reports success. Any
failure on the way raises, leaving no row behind, so a redelivered event
repeats the whole pipeline.
"""

from typing import Any, Dict, Iterator

import httpx
from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.metrics import MetricUnit

from .catalog import CatalogClient
from .dedup import DEFAULT_TTL_SECONDS, DedupStore
from .exceptions import TransportError, UploadRejectedError
from .fetcher import ObjectFetcher
from .model import IngestEvent, RelayResult, SourceObject, TransferOutcome
from .negotiator import StagedUploadNegotiator

STATUS_DUPLICATE = "duplicate"
STATUS_NO_MATCH = "no_match"
STATUS_TRANSFERRED = "transferred"

METRICS_NAMESPACE = "CatalogIngestRelay"


class CountingStreamWrapper:
    """Wraps a byte iterator to count the bytes as they are consumed."""

    def __init__(self, chunks: Iterator[bytes]):
        self._chunks = chunks
        self.bytes_read = 0

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            self.bytes_read += len(chunk)
            yield chunk


def stream_to_destination(
    http: httpx.Client, write_url: str, source: SourceObject
) -> TransferOutcome:
    """
    PUTs the source body to a presigned URL in a single pass.

    The body is the source iterator itself, so chunks flow from the read
    response to the write request without the object ever being held in
    memory. `Content-Length` and `Content-Type` are the values the source
    declared; the content type must match the one signed into the URL.

    Raises:
        TransportError: If the PUT could not be completed at the transport level.
    """
    headers = {
        "Content-Length": str(source.content_length),
        "Content-Type": source.content_type,
    }
    try:
        response = http.put(write_url, content=source.body, headers=headers)
    except httpx.HTTPError as e:
        raise TransportError(f"PUT to destination failed: {e}") from e

    return TransferOutcome(
        success=response.is_success,
        http_status=response.status_code,
        detail=response.text if not response.is_success else "",
    )


def relay_object(
    event: IngestEvent,
    dedup: DedupStore,
    catalog: CatalogClient,
    fetcher: ObjectFetcher,
    negotiator: StagedUploadNegotiator,
    http: httpx.Client,
    logger: Logger,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
) -> RelayResult:
    """
    Runs the transfer pipeline for one ingest event.

    Args:
        event: The bucket, key and ETag of the new object.
        dedup: The Dedup Store, consulted first and written last.
        catalog: The catalog client used for the asset search.
        fetcher: Opens the source object as a stream.
        negotiator: Reserves the upload slot and signs the write URL.
        http: The invocation-scoped HTTP client used for the PUT.
        logger: The Powertools Logger instance for structured logging.
        ttl_seconds: Lifetime of the dedup row written on success.

    Returns:
        A RelayResult whose status is one of "duplicate", "no_match" or
        "transferred".

    Raises:
        UploadRejectedError: If the destination refused the PUT.
        RelayError: For any other transport or structural failure.
    """
    key = event.decoded_key

    logger.append_keys(pipeline_step="dedup_check")
    existing = dedup.lookup(event.fingerprint)
    if existing is not None:
        logger.info(
            f"Duplicate ETag: {event.fingerprint} (File key: \"{key}\")",
            extra={"expires_at": existing.expires_at},
        )
        return RelayResult(STATUS_DUPLICATE, key, event.fingerprint)

    logger.append_keys(pipeline_step="search")
    search_result = catalog.search(event.name_stem)
    asset = search_result.first_ranked_match
    if asset is None:
        logger.info(f"Search returned 0 assets. Searched for: {event.name_stem}")
        return RelayResult(STATUS_NO_MATCH, key, event.fingerprint)

    logger.info(
        "Matched catalog asset.",
        extra={"asset_id": asset.id, "workspace_id": asset.workspace_id, "matches": search_result.count},
    )

    logger.append_keys(pipeline_step="fetch")
    with fetcher.open_readable(event.bucket_name, event.object_key) as source:
        logger.append_keys(pipeline_step="negotiate")
        slot = negotiator.initiate_upload(event.file_name, source.content_length, asset)
        write_url = negotiator.build_write_url(slot, source.content_type)

        logger.append_keys(pipeline_step="stream")
        counted = CountingStreamWrapper(source.body)
        outcome = stream_to_destination(
            http,
            write_url,
            SourceObject(
                body=iter(counted),
                content_length=source.content_length,
                content_type=source.content_type,
            ),
        )

    if not outcome.success:
        logger.error(
            f"Transfer failed: {key} from bucket {event.bucket_name}.",
            extra={"status_code": outcome.http_status, "response_body": outcome.detail},
        )
        raise UploadRejectedError(
            f"Destination rejected {key} with HTTP {outcome.http_status}",
            status_code=outcome.http_status,
            body=outcome.detail,
        )

    logger.info(f"Finished transfer: {key} from bucket {event.bucket_name}.")
    logger.append_keys(pipeline_step="dedup_record")
    entry = dedup.record(event.fingerprint, ttl_seconds)
    return RelayResult(
        STATUS_TRANSFERRED,
        key,
        event.fingerprint,
        asset_id=asset.id,
        bytes_transferred=counted.bytes_read,
        dedup_entry=entry,
    )


def emit_metrics(metrics: Metrics, environment: str, status: str, payload: Dict[str, Any]) -> None:
    """
    Records the outcome of one invocation on the Powertools metrics buffer.

    The buffer is written to stdout as one CloudWatch Embedded Metric Format
    line when the handler's `log_metrics` decorator flushes it. Dashboards and
    alarms should filter/group by the 'Environment' dimension.
    """
    relay_status = payload.get("status")
    metrics.add_dimension(name="Environment", value=environment)
    metrics.add_metric(
        name="ObjectsTransferred", unit=MetricUnit.Count, value=int(relay_status == STATUS_TRANSFERRED)
    )
    metrics.add_metric(
        name="DuplicateEventsSkipped", unit=MetricUnit.Count, value=int(relay_status == STATUS_DUPLICATE)
    )
    metrics.add_metric(
        name="NoMatchSkipped", unit=MetricUnit.Count, value=int(relay_status == STATUS_NO_MATCH)
    )
    metrics.add_metric(
        name="BytesTransferred", unit=MetricUnit.Bytes, value=payload.get("bytes_transferred", 0)
    )
    if "latency_ms" in payload:
        metrics.add_metric(
            name="ProcessingLatencyMs", unit=MetricUnit.Milliseconds, value=payload["latency_ms"]
        )

    metrics.add_metadata(key="Status", value=status)
    for key, value in payload.items():
        metrics.add_metadata(key=key, value=value)
