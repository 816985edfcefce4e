"""Microsoft Graph client for SharePoint/OneDrive metadata and content."""

from typing import Any
from urllib.parse import quote

from file_proxy.core.downstream import DownstreamClient
from file_proxy.core.logging import get_logger

logger = get_logger(__name__)


def segment(value: str) -> str:
    """Percent-encode one URL path segment."""
    return quote(value, safe="")


class GraphClient(DownstreamClient):
    """Read-only Graph API client.

    Paths are relative to the Graph base URL, e.g.
    ``/drives/{drive-id}/items/{item-id}``.
    """

    service = "graph"

    async def get_json(
        self,
        path: str,
        token: str,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Fetch a JSON resource.

        Raises:
            UpstreamError: On any failure, including 404
        """
        return await self._get_json(path, token, params=params)

    async def get_content(self, path: str, token: str) -> bytes:
        """Fetch raw bytes, following Graph's redirect to the download URL.

        Raises:
            UpstreamError: On any failure, including 404
        """
        response = await self._request("GET", path, token)
        logger.info(
            "graph_content_downloaded",
            path=path,
            size=len(response.content),
        )
        return response.content
