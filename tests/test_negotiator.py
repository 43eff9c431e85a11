"""
Unit tests for the Staged Upload Negotiator
"""

from urllib.parse import parse_qs, urlparse

import pytest

from catalog_ingest.catalog import CatalogClient
from catalog_ingest.exceptions import CatalogResponseError
from catalog_ingest.model import CatalogAsset, TemporaryCredentials, UploadSlot
from catalog_ingest.negotiator import StagedUploadNegotiator, parse_upload_slot
from conftest import CATALOG_HOST, DEST_BUCKET, slot_json

ASSET = CatalogAsset("asset-1", "42")


@pytest.fixture
def catalog(http, logger):
    return CatalogClient(http, CATALOG_HOST, "acct-1", "test-api-key", "test-user", logger)


class TestParseUploadSlot:
    def test_parses_credentials_and_destination(self):
        slot = parse_upload_slot(slot_json())

        assert slot == UploadSlot(
            credentials=TemporaryCredentials(
                access_key="ASIATEMPKEY",
                secret_key="temp-secret",
                session_token="temp-session-token",
                region="us-east-1",
            ),
            destination_bucket=DEST_BUCKET,
            destination_key="uploads/tmp/photo 1.jpg",
        )

    @pytest.mark.parametrize("path", [("token",), ("token", "region"), ("s3Bucket",), ("file", "s3Key")])
    def test_missing_field_is_structural_failure(self, path):
        data = slot_json()
        parent = data
        for part in path[:-1]:
            parent = parent[part]
        del parent[path[-1]]

        with pytest.raises(CatalogResponseError):
            parse_upload_slot(data)

    def test_null_nested_object_is_structural_failure(self):
        data = {**slot_json(), "file": None}

        with pytest.raises(CatalogResponseError):
            parse_upload_slot(data)


class TestInitiateUpload:
    def test_attachment_mode_reserves_attachment_slot(self, catalog, services, logger):
        negotiator = StagedUploadNegotiator(catalog, logger)

        slot = negotiator.initiate_upload("photo 1.jpg", 11, ASSET)

        assert services.paths() == ["/v1/assets/asset-1/attachments"]
        assert slot.destination_bucket == DEST_BUCKET

    def test_version_mode_reads_summary_then_reserves_version_slot(self, catalog, services, logger):
        negotiator = StagedUploadNegotiator(catalog, logger, upload_mode="version")

        slot = negotiator.initiate_upload("photo 1.jpg", 11, ASSET)

        assert services.paths() == ["/v1/assets/asset-1/summary", "/v1/assets/asset-1/versions"]
        assert slot.destination_key == "uploads/tmp/photo 1.jpg"

    def test_malformed_slot_is_structural_failure(self, catalog, services, logger):
        services.slot_response = {"token": {"accessKey": "only"}}

        with pytest.raises(CatalogResponseError):
            StagedUploadNegotiator(catalog, logger).initiate_upload("photo.jpg", 1, ASSET)


class TestBuildWriteUrl:
    def test_signs_put_with_temporary_credentials(self, catalog, services, logger):
        slot = parse_upload_slot(slot_json())

        url = StagedUploadNegotiator(catalog, logger).build_write_url(slot, "image/jpeg")

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert DEST_BUCKET in parsed.netloc + parsed.path
        assert parsed.path.endswith("uploads/tmp/photo%201.jpg")
        assert query["X-Amz-Credential"][0].startswith("ASIATEMPKEY/")
        assert query["X-Amz-Security-Token"] == ["temp-session-token"]
        assert query["X-Amz-Expires"] == ["3600"]
        assert "content-type" in query["X-Amz-SignedHeaders"][0].split(";")

    def test_performs_no_network_call(self, catalog, services, logger):
        StagedUploadNegotiator(catalog, logger).build_write_url(parse_upload_slot(slot_json()), "image/jpeg")

        assert services.requests == []
