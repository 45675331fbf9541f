"""HTTP client and view-model for the asset dashboard.

`AssetDashboardClient` wraps the REST surface. `DashboardSession` holds the
snapshot of assets the dashboard renders plus the filter state of one viewing
session, and runs the filter engine locally on every change.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx

from backend.config import settings
from backend.core.asset_filter import Facets, FilterSpec, derive_facets, filter_assets

logger = logging.getLogger(__name__)

Asset = Dict[str, Any]


class DashboardError(Exception):
    """Raised when a dashboard request fails.

    Attributes:
        status_code: HTTP status of the failed response, None for transport errors
        code: Machine-readable error code from the response body, if any
    """

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @property
    def not_found(self) -> bool:
        return self.status_code == 404


class AssetDashboardClient:
    """Synchronous client for the asset REST API.

    Args:
        base_url: Base URL of the backend (defaults to the configured public base URL)
        timeout: Request timeout in seconds
        transport: Optional httpx transport, used by tests
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.public_base_url).rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        """Lazy-load HTTP client."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.base_url,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "AssetDashboardClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        response = self.client.request(method, url, **kwargs)
        if response.is_error:
            code = None
            try:
                body = response.json()
                if isinstance(body, dict):
                    code = body.get("error")
            except ValueError:
                pass
            raise DashboardError(
                f"{method} {url} failed with status {response.status_code}",
                status_code=response.status_code,
                code=code,
            )
        return response

    def list_assets(self, search: Optional[str] = None, type: Optional[str] = None) -> List[Asset]:
        params = {key: value for key, value in (("search", search), ("type", type)) if value}
        return self._request("GET", "/assets", params=params).json()

    def upload_asset(
        self,
        filename: str,
        content: bytes,
        name: Optional[str] = None,
        tags: str = "",
        content_type: str = "application/octet-stream",
    ) -> Asset:
        data = {"name": name or filename, "tags": tags}
        files = {"file": (filename, content, content_type)}
        return self._request("POST", "/assets", data=data, files=files).json()

    def update_asset(self, asset_id: str, name: Optional[str] = None, tags: Optional[List[str]] = None) -> Asset:
        payload: Dict[str, Any] = {}
        if name is not None:
            payload["name"] = name
        if tags is not None:
            payload["tags"] = tags
        return self._request("PUT", f"/assets/{asset_id}", json=payload).json()

    def delete_asset(self, asset_id: str) -> None:
        self._request("DELETE", f"/assets/{asset_id}")


class DashboardSession:
    """Assets snapshot and filter state for one dashboard view.

    Filter state lives only as long as the session object.
    """

    def __init__(self, client: AssetDashboardClient) -> None:
        self.client = client
        self.assets: List[Asset] = []
        self.filters = FilterSpec()
        self.error: Optional[str] = None

    def load(self) -> List[Asset]:
        """Initial load. Failures are kept in `error` and raised."""
        self.error = None
        try:
            self.assets = self.client.list_assets()
        except (httpx.HTTPError, DashboardError) as e:
            logger.error(f"Failed to fetch assets: {e}")
            self.error = "Failed to load assets. Please try again later."
            if isinstance(e, DashboardError):
                raise
            raise DashboardError(str(e)) from e
        return self.assets

    def sync(self) -> bool:
        """Background refresh. Failures keep the previous snapshot.

        Returns:
            bool: True if the snapshot was refreshed
        """
        try:
            self.assets = self.client.list_assets()
        except (httpx.HTTPError, DashboardError) as e:
            logger.warning(f"Background sync failed, keeping {len(self.assets)} cached assets: {e}")
            return False
        return True

    @property
    def visible_assets(self) -> List[Asset]:
        return filter_assets(self.assets, self.filters)

    @property
    def facets(self) -> Facets:
        return derive_facets(self.assets)

    def set_term(self, term: str) -> None:
        self.filters = self.filters.model_copy(update={"term": term})

    def toggle_tag(self, tag: str) -> None:
        self.filters = self.filters.model_copy(update={"tags": _toggle(self.filters.tags, tag)})

    def toggle_type(self, asset_type: str) -> None:
        self.filters = self.filters.model_copy(update={"types": _toggle(self.filters.types, asset_type)})

    def set_date_range(self, start_date: Optional[date] = None, end_date: Optional[date] = None) -> None:
        self.filters = self.filters.model_copy(update={"start_date": start_date, "end_date": end_date})

    def clear_filters(self) -> None:
        self.filters = FilterSpec()

    def upload(self, filename: str, content: bytes, name: Optional[str] = None, tags: str = "") -> Asset:
        asset = self.client.upload_asset(filename, content, name=name, tags=tags)
        self.sync()
        return asset

    def update(self, asset_id: str, name: Optional[str] = None, tags: Optional[List[str]] = None) -> Asset:
        updated = self.client.update_asset(asset_id, name=name, tags=tags)
        self.assets = [updated if asset.get("id") == updated.get("id") else asset for asset in self.assets]
        self.sync()
        return updated

    def delete(self, asset_id: str) -> None:
        self.client.delete_asset(asset_id)
        self.assets = [asset for asset in self.assets if asset.get("id") != asset_id]


def _toggle(values: List[str], value: str) -> List[str]:
    if value in values:
        return [v for v in values if v != value]
    return [*values, value]
