"""
Opens source objects as single-pass byte streams.

The fetcher never downloads an object into memory. It presigns a short-lived
GET URL, sends the request with only the headers read, and hands back the
raw body iterator together with the declared length and type.
"""

from contextlib import contextmanager
from typing import Iterator
from urllib.parse import unquote_plus

import httpx
from aws_lambda_powertools import Logger
from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_s3 import S3Client

from .exceptions import SourceFetchError
from .model import SourceObject

READ_URL_EXPIRY_SECONDS = 300
DEFAULT_CONTENT_TYPE = "application/octet-stream"
STREAM_CHUNK_SIZE = 1024 * 1024


class ObjectFetcher:
    def __init__(self, s3_client: S3Client, http: httpx.Client, logger: Logger) -> None:
        self._s3 = s3_client
        self._http = http
        self._logger = logger

    def presign_read_url(self, bucket: str, key: str) -> str:
        try:
            return self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": unquote_plus(key)},
                ExpiresIn=READ_URL_EXPIRY_SECONDS,
            )
        except (ClientError, BotoCoreError) as e:
            raise SourceFetchError(f"Could not presign s3://{bucket}/{key}: {e}") from e

    @contextmanager
    def open_readable(self, bucket: str, key: str) -> Iterator[SourceObject]:
        """
        Opens s3://bucket/key for a single sequential read.

        The yielded body iterates the raw (undecoded) bytes, so its total
        length always matches the declared `Content-Length`. The underlying
        response is closed when the context exits.

        Raises:
            SourceFetchError: If the GET fails, returns a non-2xx status, or
                              does not declare a Content-Length.
        """
        url = self.presign_read_url(bucket, key)
        request = self._http.build_request("GET", url)
        try:
            response = self._http.send(request, stream=True)
        except httpx.HTTPError as e:
            raise SourceFetchError(f"GET s3://{bucket}/{key} failed: {e}") from e

        try:
            if response.is_error:
                response.read()
                raise SourceFetchError(
                    f"GET s3://{bucket}/{key} returned HTTP {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )

            raw_length = response.headers.get("Content-Length")
            if raw_length is None or not raw_length.isdigit():
                raise SourceFetchError(
                    f"GET s3://{bucket}/{key} did not declare a Content-Length",
                    status_code=response.status_code,
                )

            source = SourceObject(
                body=response.iter_raw(chunk_size=STREAM_CHUNK_SIZE),
                content_length=int(raw_length),
                content_type=response.headers.get("Content-Type", DEFAULT_CONTENT_TYPE),
            )
            self._logger.debug(
                "Opened source stream.",
                extra={
                    "bucket": bucket,
                    "key": key,
                    "content_length": source.content_length,
                    "content_type": source.content_type,
                },
            )
            yield source
        finally:
            response.close()
