"""
A thin client for the catalog's REST API.

The client is stateless apart from its credentials and the injected httpx
transport. Each method builds one request, sends it, and returns parsed JSON
or a model object. Failures are never retried here: transport errors and
non-2xx responses raise CatalogTransportError, and responses that do not have
the expected shape raise CatalogResponseError.
"""

import json
from typing import Any, Dict, Optional

import httpx
from aws_lambda_powertools import Logger

from .exceptions import CatalogResponseError, CatalogTransportError
from .model import AssetSummary, CatalogAsset, SearchResult

API_KEY_HEADER = "x-globaledit-api-key"
USER_ID_HEADER = "x-globaledit-userid"

SEARCH_TYPE = "workspace"
SCOPE_TYPE = "workspace"
# Match all terms against the name field only, best score first, a single
# page capped at the catalog's maximum page size.
SEARCH_MODE = "all"
SEARCH_FIELDS = "name"
SEARCH_ORDER_BY = "search.score()%20desc"
SEARCH_PAGE_SIZE = 5001


def build_search_query(asset_name: str) -> str:
    return (
        f"search={asset_name}&searchMode={SEARCH_MODE}&$searchFields={SEARCH_FIELDS}"
        f"&$orderby={SEARCH_ORDER_BY}&$top={SEARCH_PAGE_SIZE}&$skip=0"
    )


class CatalogClient:
    def __init__(
        self,
        http: httpx.Client,
        host: str,
        account_id: str,
        api_key: str,
        user_id: str,
        logger: Logger,
    ) -> None:
        self._http = http
        self._base_url = f"https://{host}/v1"
        self._account_id = account_id
        self._headers = {API_KEY_HEADER: api_key, USER_ID_HEADER: user_id}
        self._logger = logger

    def _request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, str]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            response = self._http.request(
                method, url, params=params, json=body, headers=self._headers
            )
        except httpx.HTTPError as e:
            raise CatalogTransportError(f"{method} {path} failed: {e}") from e

        if response.is_error:
            raise CatalogTransportError(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
                body=response.text,
            )

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise CatalogResponseError(f"{method} {path} returned non-JSON content") from e

    def search(self, asset_name: str) -> SearchResult:
        """
        Searches the account's workspaces for assets whose name matches.

        Args:
            asset_name: A decoded file name stem, used verbatim.

        Returns:
            The SearchResult in the catalog's ranking order.
        """
        data = self._request(
            "POST",
            f"/accounts/{self._account_id}/search/assets",
            body={"query": build_search_query(asset_name), "searchType": SEARCH_TYPE},
        )
        try:
            count = int(data["count"])
            assets = tuple(CatalogAsset.from_json(a) for a in data.get("assets") or [])
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogResponseError(f"Unexpected search response shape: {e!r}") from e

        if count >= 1 and not assets:
            raise CatalogResponseError(
                f"Search reported {count} assets but returned none."
            )
        self._logger.debug(
            "Catalog search completed.", extra={"query": asset_name, "count": count}
        )
        return SearchResult(count=count, assets=assets)

    def initiate_upload(
        self, file_name: str, file_size: int, asset: CatalogAsset
    ) -> Dict[str, Any]:
        """Reserves an attachment upload slot on an asset and returns the raw slot JSON."""
        return self._request(
            "POST",
            f"/assets/{asset.id}/attachments",
            params={"scopeType": SCOPE_TYPE, "scopeId": asset.workspace_id},
            body={"upload": {"fileName": file_name, "fileSize": file_size}},
        )

    def get_asset_summary(self, asset: CatalogAsset) -> AssetSummary:
        data = self._request(
            "GET",
            f"/assets/{asset.id}/summary",
            params={"scopeType": SCOPE_TYPE, "scopeId": asset.workspace_id},
        )
        try:
            return AssetSummary(
                id=str(data["id"]),
                workspace_id=str(data["workspaceId"]),
                workspace_name=str(data["workspaceName"]),
                folder_id=str(data["ancestry"][0]["folderId"]),
            )
        except (KeyError, IndexError, TypeError) as e:
            raise CatalogResponseError(f"Unexpected asset summary shape: {e!r}") from e

    def initiate_version_upload(
        self, summary: AssetSummary, file_name: str, file_size: int
    ) -> Dict[str, Any]:
        """Reserves a slot for a new version of an asset and returns the raw slot JSON."""
        try:
            workspace_id = int(summary.workspace_id)
        except ValueError as e:
            raise CatalogResponseError(
                f"Workspace id {summary.workspace_id!r} is not numeric"
            ) from e

        return self._request(
            "POST",
            f"/assets/{summary.id}/versions",
            params={
                "scopeType": SCOPE_TYPE,
                "scopeId": summary.workspace_id,
                "folderId": summary.folder_id,
            },
            body={
                "workspaceId": workspace_id,
                "workspaceName": summary.workspace_name,
                "upload": {"fileName": file_name, "fileSize": file_size},
            },
        )

    def get_current_user(self) -> Dict[str, Any]:
        """Returns the profile of the API user, which confirms the credentials work."""
        return self._request("GET", "/users/me")
