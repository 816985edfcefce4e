"""File content retrieval and response header assembly."""

import unicodedata
from typing import Literal
from urllib.parse import quote

from file_proxy.core.graph import GraphClient, segment
from file_proxy.core.logging import get_logger, truncate_id
from file_proxy.schemas.files import FileContent

logger = get_logger(__name__)


def _ascii_fallback(file_name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", file_name)
    ascii_name = decomposed.encode("ascii", "ignore").decode("ascii")
    # Header values cannot carry control characters
    ascii_name = "".join(ch if ch.isprintable() else "_" for ch in ascii_name)
    return ascii_name.replace("\\", "\\\\").replace('"', '\\"') or "file"


def build_content_disposition(
    file_name: str,
    mode: Literal["inline", "attachment"] = "inline",
) -> str:
    """Build a Content-Disposition value with a quoted file name.

    Non-ASCII names get an RFC 5987 ``filename*`` parameter alongside an
    ASCII ``filename`` fallback.

    Args:
        file_name: Display name of the file
        mode: Disposition type

    Returns:
        Header value, e.g. ``inline; filename="report.pdf"``
    """
    value = f'{mode}; filename="{_ascii_fallback(file_name)}"'
    if not file_name.isascii():
        value += f"; filename*=UTF-8''{quote(file_name, safe='')}"
    return value


class ContentStreamer:
    """Downloads file bytes from the document store.

    The whole payload is buffered before the response is sent; byte
    ranges are not supported.
    """

    def __init__(
        self,
        graph: GraphClient,
        disposition: Literal["inline", "attachment"] = "inline",
    ) -> None:
        self._graph = graph
        self._disposition = disposition

    async def stream(
        self,
        container_id: str,
        item_id: str,
        token: str,
        *,
        file_name: str,
        content_type: str,
    ) -> FileContent:
        """Fetch a file's bytes and build the response metadata.

        Args:
            container_id: Drive id
            item_id: Drive item id
            token: Graph bearer token (never the Dataverse token)
            file_name: Resolved display name
            content_type: Resolved MIME type

        Returns:
            FileContent with body and headers

        Raises:
            UpstreamError: If the content cannot be downloaded
        """
        body = await self._graph.get_content(
            f"/drives/{segment(container_id)}/items/{segment(item_id)}/content",
            token,
        )

        logger.info(
            "content_streamed",
            item_id=truncate_id(item_id),
            size=len(body),
            content_type=content_type,
        )
        return FileContent(
            body=body,
            content_type=content_type,
            file_name=file_name,
            content_disposition=build_content_disposition(file_name, self._disposition),
        )
