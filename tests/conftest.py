"""
Shared pytest fixtures for the Catalog Ingest Relay.

AWS services are mocked with moto; every HTTP call (catalog API, presigned
GET of the source object, presigned PUT to the destination) is answered by a
single `httpx.MockTransport` driven by `FakeServices`.
"""

import json
import os
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import boto3
import httpx
import pytest
from aws_lambda_powertools import Logger
from moto import mock_aws

from catalog_ingest import clients

# Set required environment variables before the handler module is imported
os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
os.environ.setdefault("AWS_SECURITY_TOKEN", "testing")
os.environ.setdefault("AWS_SESSION_TOKEN", "testing")
os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
os.environ.setdefault("AWS_REGION", "us-east-1")
os.environ["USE_MOTO"] = "1"
os.environ["API_KEY"] = "test-api-key"
os.environ["API_USER"] = "test-user"
os.environ["GE_ENV"] = "catalog.test"
os.environ["ACCOUNT"] = "acct-1"
os.environ["BUCKET"] = "ingest"
os.environ["DEDUP_TABLE"] = "IngestAntiDupe"
os.environ["POWERTOOLS_SERVICE_NAME"] = "catalog-ingest-test"

CATALOG_HOST = "catalog.test"
SOURCE_BUCKET = "ingest"
DEST_BUCKET = "catalog-staging"


def s3_record(bucket: str = SOURCE_BUCKET, key: str = "photo%201.jpg", etag: str = "abc123") -> Dict[str, Any]:
    return {
        "eventSource": "aws:s3",
        "eventName": "ObjectCreated:Put",
        "s3": {
            "bucket": {"name": bucket, "arn": f"arn:aws:s3:::{bucket}"},
            "object": {"key": key, "size": 11, "eTag": etag},
        },
    }


def slot_json(bucket: str = DEST_BUCKET, key: str = "uploads/tmp/photo 1.jpg") -> Dict[str, Any]:
    return {
        "token": {
            "accessKey": "ASIATEMPKEY",
            "secretKey": "temp-secret",
            "token": "temp-session-token",
            "region": "us-east-1",
        },
        "s3Bucket": bucket,
        "file": {"s3Key": key},
    }


class ChunkedBody(httpx.SyncByteStream):
    """An unread response body, like a network stream, served in small chunks."""

    def __init__(self, body: bytes, chunk_size: int = 4) -> None:
        self._body = body
        self._chunk_size = chunk_size

    def __iter__(self) -> Iterator[bytes]:
        for start in range(0, len(self._body), self._chunk_size):
            yield self._body[start : start + self._chunk_size]


class FakeServices:
    """
    Answers every outbound request of one pipeline run and records them.

    GET requests that are not catalog calls are treated as the presigned
    source read, PUT requests as the presigned destination write.
    """

    def __init__(self) -> None:
        self.search_response: Dict[str, Any] = {
            "count": 1,
            "assets": [{"id": "asset-1", "workspaceId": "42"}],
        }
        self.summary_response: Dict[str, Any] = {
            "id": "asset-1",
            "workspaceId": "42",
            "workspaceName": "Spring Shoot",
            "ancestry": [{"folderId": "folder-9"}],
        }
        self.slot_response: Dict[str, Any] = slot_json()
        self.source_body = b"hello world"
        self.source_content_type = "image/jpeg"
        self.source_status = 200
        self.put_status = 200
        self.put_body = ""
        self.catalog_status = 200
        self.requests: List[httpx.Request] = []
        self.put_content: Optional[bytes] = None

    def paths(self, method: Optional[str] = None) -> List[str]:
        return [r.url.path for r in self.requests if method is None or r.method == method]

    @property
    def source_reads(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET" and r.url.host != CATALOG_HOST]

    @property
    def puts(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "PUT"]

    @property
    def catalog_calls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.url.host == CATALOG_HOST]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == CATALOG_HOST:
            return self._catalog(request)
        if request.method == "GET":
            if self.source_status != 200:
                return httpx.Response(self.source_status, text="<Error>AccessDenied</Error>")
            return httpx.Response(
                200,
                headers={
                    "Content-Type": self.source_content_type,
                    "Content-Length": str(len(self.source_body)),
                },
                stream=ChunkedBody(self.source_body),
            )
        if request.method == "PUT":
            self.put_content = request.content
            return httpx.Response(self.put_status, text=self.put_body)
        return httpx.Response(405)

    def _catalog(self, request: httpx.Request) -> httpx.Response:
        if self.catalog_status != 200:
            return httpx.Response(self.catalog_status, text="catalog unavailable")
        path = request.url.path
        if path.endswith("/search/assets"):
            return httpx.Response(200, json=self.search_response)
        if path.endswith("/attachments") or path.endswith("/versions"):
            return httpx.Response(200, json=self.slot_response)
        if path.endswith("/summary"):
            return httpx.Response(200, json=self.summary_response)
        if path == "/v1/users/me":
            return httpx.Response(200, json={"id": "test-user", "email": "ops@example.com"})
        return httpx.Response(404, json={"message": "not found"})


def request_json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content)


@dataclass
class FakeLambdaContext:
    function_name: str = "catalog-ingest"
    memory_limit_in_mb: int = 512
    invoked_function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:catalog-ingest"
    aws_request_id: str = "req-0001"


@pytest.fixture
def logger() -> Logger:
    return Logger(service="catalog-ingest-test")


@pytest.fixture
def services() -> FakeServices:
    return FakeServices()


@pytest.fixture
def http(services):
    with httpx.Client(transport=httpx.MockTransport(services)) as client:
        yield client


@pytest.fixture
def aws():
    with mock_aws():
        yield


@pytest.fixture
def s3_client(aws):
    s3, _ = clients.get_boto_clients()
    return s3


@pytest.fixture
def dedup_table(aws):
    dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
    table = dynamodb.create_table(
        TableName="IngestAntiDupe",
        KeySchema=[{"AttributeName": "EventETag", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "EventETag", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )
    table.wait_until_exists()
    return table


@pytest.fixture
def lambda_context() -> FakeLambdaContext:
    return FakeLambdaContext()
