"""
The Dedup Store: a DynamoDB table of recently transferred ETags.

Rows are keyed by the object's ETag and carry an `Expires` attribute in unix
seconds, which DynamoDB's TTL feature uses to purge them. Purging is lazy, so
`lookup` also treats a row whose expiry has passed as absent.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_dynamodb.service_resource import Table

from .exceptions import DedupStoreError
from .model import DedupEntry

KEY_ATTRIBUTE = "EventETag"
EXPIRY_ATTRIBUTE = "Expires"
DEFAULT_TTL_SECONDS = 600


class DedupStore:
    def __init__(self, table: Table, logger: Logger) -> None:
        self._table = table
        self._logger = logger

    def lookup(
        self, fingerprint: str, now: Optional[datetime] = None
    ) -> Optional[DedupEntry]:
        """
        Point read by primary key.

        Returns:
            The live DedupEntry, or None when no unexpired row exists.

        Raises:
            DedupStoreError: If DynamoDB could not be read.
        """
        try:
            response = self._table.get_item(
                Key={KEY_ATTRIBUTE: fingerprint}, ConsistentRead=True
            )
        except (ClientError, BotoCoreError) as e:
            self._logger.exception(
                "Dedup lookup failed.", extra={"fingerprint": fingerprint}
            )
            raise DedupStoreError(f"Dedup lookup failed for {fingerprint}: {e}") from e

        item = response.get("Item")
        if not item:
            return None

        entry = DedupEntry(
            fingerprint=fingerprint, expires_at=int(item.get(EXPIRY_ATTRIBUTE, 0))
        )
        current = int((now or datetime.now(timezone.utc)).timestamp())
        if entry.expires_at <= current:
            self._logger.debug(
                "Ignoring expired dedup entry awaiting TTL purge.",
                extra={"fingerprint": fingerprint, "expires_at": entry.expires_at},
            )
            return None
        return entry

    def record(
        self,
        fingerprint: str,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        now: Optional[datetime] = None,
    ) -> DedupEntry:
        """
        Writes a dedup row expiring `ttl_seconds` from now.

        Raises:
            DedupStoreError: If DynamoDB could not be written.
        """
        current = now or datetime.now(timezone.utc)
        entry = DedupEntry(
            fingerprint=fingerprint,
            expires_at=int((current + timedelta(seconds=ttl_seconds)).timestamp()),
        )
        try:
            self._table.put_item(
                Item={KEY_ATTRIBUTE: entry.fingerprint, EXPIRY_ATTRIBUTE: entry.expires_at}
            )
        except (ClientError, BotoCoreError) as e:
            self._logger.exception(
                "Dedup record failed.", extra={"fingerprint": fingerprint}
            )
            raise DedupStoreError(f"Dedup record failed for {fingerprint}: {e}") from e

        self._logger.info(
            f"Logged ETag: {entry.fingerprint}. Expires: {entry.expires_at} UNIX Epoch."
        )
        return entry
