"""
The Staged Upload Negotiator.

A catalog upload happens in two phases. First the catalog reserves a slot and
returns temporary credentials scoped to one destination key. Then those
credentials sign a PUT URL that the bytes are streamed to. This module owns
both phases but performs the actual byte transfer nowhere; that is the
orchestrator's job.
"""

from contextlib import closing
from typing import Any, Dict

from aws_lambda_powertools import Logger

from . import clients
from .catalog import CatalogClient
from .exceptions import CatalogResponseError
from .model import CatalogAsset, TemporaryCredentials, UploadSlot

WRITE_URL_EXPIRY_SECONDS = 3600


def parse_upload_slot(data: Dict[str, Any]) -> UploadSlot:
    """
    Converts the catalog's slot JSON into an UploadSlot.

    Raises:
        CatalogResponseError: If any credential or destination field is missing.
    """
    try:
        token = data["token"]
        slot = UploadSlot(
            credentials=TemporaryCredentials(
                access_key=str(token["accessKey"]),
                secret_key=str(token["secretKey"]),
                session_token=str(token["token"]),
                region=str(token["region"]),
            ),
            destination_bucket=str(data["s3Bucket"]),
            destination_key=str(data["file"]["s3Key"]),
        )
    except (KeyError, TypeError) as e:
        raise CatalogResponseError(f"Malformed upload slot, missing {e}") from e

    if not slot.destination_bucket or not slot.destination_key:
        raise CatalogResponseError("Upload slot has an empty destination bucket or key.")
    return slot


class StagedUploadNegotiator:
    def __init__(
        self, catalog: CatalogClient, logger: Logger, upload_mode: str = "attachment"
    ) -> None:
        self._catalog = catalog
        self._logger = logger
        self._upload_mode = upload_mode

    def initiate_upload(
        self, file_name: str, file_size: int, asset: CatalogAsset
    ) -> UploadSlot:
        """Reserves an upload slot for `file_name` on `asset`."""
        if self._upload_mode == "version":
            summary = self._catalog.get_asset_summary(asset)
            data = self._catalog.initiate_version_upload(summary, file_name, file_size)
        else:
            data = self._catalog.initiate_upload(file_name, file_size, asset)

        slot = parse_upload_slot(data)
        self._logger.info(
            "Upload slot reserved.",
            extra={
                "asset_id": asset.id,
                "upload_mode": self._upload_mode,
                "destination_bucket": slot.destination_bucket,
                "destination_key": slot.destination_key,
            },
        )
        return slot

    def build_write_url(self, slot: UploadSlot, content_type: str) -> str:
        """
        Signs a PUT URL for the slot's destination with its temporary credentials.

        The content type is part of the signature, so the eventual PUT must
        send exactly this `Content-Type`. No network call is made.
        """
        with closing(clients.get_signing_client(slot.credentials)) as signer:
            return signer.generate_presigned_url(
                "put_object",
                Params={
                    "Bucket": slot.destination_bucket,
                    "Key": slot.destination_key,
                    "ContentType": content_type,
                },
                ExpiresIn=WRITE_URL_EXPIRY_SECONDS,
            )
