"""
Data models for the Catalog Ingest Relay.

This module defines the core data structures passed between the handler, the
orchestrator and the service wrappers. TypedDicts describe the inbound S3
notification; frozen dataclasses describe the values the pipeline produces,
so every contract is explicit, statically checked by mypy, and self-documenting.
"""

import posixpath
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional, Tuple, TypedDict
from urllib.parse import unquote_plus


class S3BucketRef(TypedDict):
    name: str


class S3ObjectRef(TypedDict):
    key: str
    eTag: str


class S3Entity(TypedDict):
    bucket: S3BucketRef
    object: S3ObjectRef


class S3EventRecord(TypedDict):
    """
    Represents a single record of an S3 ObjectCreated notification.

    Only the fields read by this application are declared. Other attributes
    (eventTime, requestParameters, ...) are present but ignored.
    """

    s3: S3Entity


@dataclass(frozen=True)
class IngestEvent:
    """
    The three facts the pipeline needs from a trigger record.

    Attributes:
        bucket_name: The bucket the object landed in.
        object_key: The object key exactly as delivered, i.e. still URL-encoded.
        fingerprint: The object's ETag, used as the dedup key.
    """

    bucket_name: str
    object_key: str
    fingerprint: str

    @classmethod
    def from_record(cls, record: S3EventRecord) -> "IngestEvent":
        s3 = record["s3"]
        return cls(
            bucket_name=s3["bucket"]["name"],
            object_key=s3["object"]["key"],
            fingerprint=s3["object"]["eTag"],
        )

    @property
    def decoded_key(self) -> str:
        return unquote_plus(self.object_key)

    @property
    def file_name(self) -> str:
        # The catalog receives the full decoded key, prefix included.
        return self.decoded_key

    @property
    def name_stem(self) -> str:
        """The object's file name without directory or extension, e.g. 'photo 1'."""
        return posixpath.splitext(posixpath.basename(self.decoded_key))[0]


@dataclass(frozen=True)
class DedupEntry:
    fingerprint: str
    expires_at: int


@dataclass(frozen=True)
class CatalogAsset:
    id: str
    workspace_id: str

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "CatalogAsset":
        return cls(id=str(data["id"]), workspace_id=str(data["workspaceId"]))


@dataclass(frozen=True)
class SearchResult:
    """
    The parsed response of a catalog asset search.

    Ordering of `assets` is the catalog's relevance ordering; no client-side
    ranking is applied.
    """

    count: int
    assets: Tuple[CatalogAsset, ...] = ()

    @property
    def first_ranked_match(self) -> Optional[CatalogAsset]:
        """Returns the catalog's top-ranked asset, or None when nothing matched."""
        if self.count < 1 or not self.assets:
            return None
        return self.assets[0]


@dataclass(frozen=True)
class AssetSummary:
    """Placement details of an asset, needed to open a version upload."""

    id: str
    workspace_id: str
    workspace_name: str
    folder_id: str


@dataclass(frozen=True)
class TemporaryCredentials:
    access_key: str
    secret_key: str
    session_token: str
    region: str


@dataclass(frozen=True)
class UploadSlot:
    """
    A single-use upload reservation returned by the catalog.

    The temporary credentials are scoped to `destination_bucket`/`destination_key`
    and are only used to sign one PUT URL.
    """

    credentials: TemporaryCredentials
    destination_bucket: str
    destination_key: str


@dataclass
class SourceObject:
    """
    An open, not-yet-consumed source object.

    Attributes:
        body: A lazy iterator over the object's raw bytes. It can be consumed
              exactly once, sequentially.
        content_length: The `Content-Length` declared by the source.
        content_type: The `Content-Type` declared by the source.
    """

    body: Iterator[bytes]
    content_length: int
    content_type: str


@dataclass(frozen=True)
class TransferOutcome:
    success: bool
    http_status: int
    detail: str = ""


@dataclass
class RelayResult:
    """The outcome of one invocation of the orchestrator."""

    status: str
    object_key: str
    fingerprint: str
    asset_id: Optional[str] = None
    bytes_transferred: int = 0
    dedup_entry: Optional[DedupEntry] = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status,
            "object_key": self.object_key,
            "fingerprint": self.fingerprint,
        }
        if self.asset_id is not None:
            payload["asset_id"] = self.asset_id
        if self.bytes_transferred:
            payload["bytes_transferred"] = self.bytes_transferred
        if self.dedup_entry is not None:
            payload["expires_at"] = self.dedup_entry.expires_at
        return payload
