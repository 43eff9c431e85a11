"""
A factory module for creating and providing boto3 and httpx clients.

This module is the core of the Dependency Injection (DI) pattern for the
application. The handler receives real AWS clients in production, or clients
intercepted by `moto` during testing, and every component receives its HTTP
transport as an argument instead of reaching for a shared global.
"""

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional, Tuple

import boto3
import botocore.config
import httpx

from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource
from mypy_boto3_s3 import S3Client

from .model import TemporaryCredentials

logger = logging.getLogger(__name__)

# Presigned URLs must be SigV4 so they are valid in every region, including
# the region named by the catalog's temporary credentials.
BOTO_CONFIG_SIGV4 = botocore.config.Config(signature_version="s3v4")


def get_boto_clients() -> Tuple[S3Client, DynamoDBServiceResource]:
    """
    Returns a tuple of the AWS service clients used by the relay.

    It inspects the environment for a `USE_MOTO` flag. If present, it's assumed
    that `moto` is active and will intercept the `boto3` calls. Otherwise, it
    creates real AWS clients.

    Returns:
        A tuple containing (s3_client, dynamodb_resource).
    """
    aws_region = os.environ.get("AWS_REGION")
    if not aws_region:
        logger.warning("AWS_REGION not set, boto3 will attempt to resolve it.")

    if os.environ.get("USE_MOTO"):
        logger.info("MOTO ENABLED: Returning mocked AWS clients.")

    s3_client: S3Client = boto3.client(
        "s3", region_name=aws_region, config=BOTO_CONFIG_SIGV4
    )
    dynamodb_resource: DynamoDBServiceResource = boto3.resource(
        "dynamodb", region_name=aws_region
    )
    return s3_client, dynamodb_resource


def get_signing_client(credentials: TemporaryCredentials) -> S3Client:
    """
    Creates an S3 client bound to a set of temporary, request-scoped credentials.

    The client is only used to sign URLs; callers should close it as soon as
    the URL has been generated.
    """
    return boto3.client(
        "s3",
        aws_access_key_id=credentials.access_key,
        aws_secret_access_key=credentials.secret_key,
        aws_session_token=credentials.session_token,
        region_name=credentials.region,
        config=BOTO_CONFIG_SIGV4,
    )


@contextmanager
def http_client(
    timeout_seconds: int,
    transport: Optional[httpx.BaseTransport] = None,
) -> Iterator[httpx.Client]:
    """
    Yields an httpx client whose lifetime is one invocation.

    Args:
        timeout_seconds: Applied to every phase of every outbound call, taken
                         from `Settings.http_timeout_seconds`.
        transport: An optional transport override, e.g. `httpx.MockTransport`
                   in tests.
    """
    client = httpx.Client(timeout=httpx.Timeout(timeout_seconds), transport=transport)
    try:
        yield client
    finally:
        client.close()
