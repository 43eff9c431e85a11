"""
Main AWS Lambda handler for the Catalog Ingest Relay.

This module serves as the primary entry point for the function.
Its responsibilities include:
  - Loading and validating configuration from environment variables.
  - Creating the long-lived boto3 clients once per execution environment.
  - Receiving S3 ObjectCreated notifications and skipping foreign buckets.
  - Scoping an HTTP client to each invocation and wiring the components.
  - Calling the transfer pipeline in the 'core' module.
  - Managing the overall success/failure state and emitting the final metrics.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from aws_lambda_powertools import Logger, Metrics
from aws_lambda_powertools.utilities.typing import LambdaContext
from mypy_boto3_dynamodb.service_resource import Table
from mypy_boto3_s3 import S3Client

from . import clients, config, core
from .catalog import CatalogClient
from .dedup import DedupStore
from .exceptions import MalformedEventError
from .fetcher import ObjectFetcher
from .model import IngestEvent, RelayResult
from .negotiator import StagedUploadNegotiator

# --- 1. SETUP: Configuration and Clients (loaded once at cold start) ---

SETTINGS = config.load_settings()

logger = Logger(service="catalog-ingest", level=SETTINGS.log_level)
metrics = Metrics(namespace=core.METRICS_NAMESPACE, service="catalog-ingest")

S3, DDB = clients.get_boto_clients()


def parse_ingest_event(event: Dict[str, Any]) -> IngestEvent:
    """
    Builds an IngestEvent from the first record of an S3 notification.

    Batched notifications are not expected from S3; any records after the
    first are ignored.

    Raises:
        MalformedEventError: If the record lacks a bucket name, key or ETag.
    """
    records = event.get("Records") or []
    try:
        return IngestEvent.from_record(records[0])
    except (IndexError, KeyError, TypeError) as e:
        raise MalformedEventError(f"S3 notification is missing {e}") from e


def process_event(
    ingest_event: IngestEvent,
    http: httpx.Client,
    s3_client: S3Client,
    table: Table,
    settings: config.Settings,
) -> RelayResult:
    """Wires the pipeline components around one invocation's HTTP client and runs it."""
    catalog = CatalogClient(
        http,
        host=settings.catalog_host,
        account_id=settings.account_id,
        api_key=settings.api_key,
        user_id=settings.api_user,
        logger=logger,
    )
    return core.relay_object(
        ingest_event,
        dedup=DedupStore(table, logger),
        catalog=catalog,
        fetcher=ObjectFetcher(s3_client, http, logger),
        negotiator=StagedUploadNegotiator(catalog, logger, upload_mode=settings.upload_mode),
        http=http,
        logger=logger,
        ttl_seconds=settings.dedup_ttl_seconds,
    )


def _build_response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    """Centralized helper to build the final Lambda response."""
    return {"statusCode": status_code, "body": json.dumps(body)}


# --- 2. LAMBDA HANDLER ---

@metrics.log_metrics
@logger.inject_lambda_context(clear_state=True)
def handler(event: Dict, context: LambdaContext):
    """
    Main Lambda entry point. Relays one newly created object into the catalog.

    It will re-raise exceptions to let the trigger system redeliver the event;
    a redelivery repeats the whole pipeline because no dedup row is written
    for a failed transfer.

    This function follows these steps:
    1. Parses bucket, key and ETag from the first notification record.
    2. Skips the event if it comes from a bucket other than the target bucket.
    3. Runs `core.relay_object` with an invocation-scoped HTTP client.
    4. Emits success or failure metrics.
    """
    start_time = datetime.now(timezone.utc)
    logger.debug(json.dumps(event))

    # S3 sends a record-less s3:TestEvent when the notification is configured.
    if not event.get("Records"):
        return _build_response(200, {"message": "No records to process."})

    ingest_event: Optional[IngestEvent] = None
    try:
        ingest_event = parse_ingest_event(event)
        if ingest_event.bucket_name != SETTINGS.target_bucket:
            logger.info(
                f"Skipped. Bucket name mismatch (Expected: {SETTINGS.target_bucket}, got: {ingest_event.bucket_name})"
            )
            return _build_response(200, {"status": "skipped", "bucket": ingest_event.bucket_name})

        logger.append_keys(object_key=ingest_event.decoded_key, fingerprint=ingest_event.fingerprint)

        with clients.http_client(SETTINGS.http_timeout_seconds) as http:
            result = process_event(ingest_event, http, S3, DDB.Table(SETTINGS.dedup_table), SETTINGS)

        latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        log_payload = {**result.to_payload(), "latency_ms": latency_ms}
        core.emit_metrics(metrics, SETTINGS.environment, "Success", log_payload)
        return _build_response(200, log_payload)

    except Exception as e:
        latency_ms = int((datetime.now(timezone.utc) - start_time).total_seconds() * 1000)
        object_key = ingest_event.decoded_key if ingest_event else None
        bucket = ingest_event.bucket_name if ingest_event else None
        error_payload = {
            "error_type": type(e).__name__,
            "error_message": str(e),
            "object_key": object_key,
            "bucket": bucket,
            "latency_ms": latency_ms,
        }
        status_code = getattr(e, "status_code", None)
        if status_code is not None:
            error_payload["status_code"] = status_code
            error_payload["response_body"] = getattr(e, "body", "")
        core.emit_metrics(metrics, SETTINGS.environment, "Failure", error_payload)
        logger.exception(
            f"Error transferring {object_key} from bucket {bucket}: {json.dumps(error_payload)}"
        )
        raise
