"""Shared HTTP plumbing for downstream service clients.

Every call carries its own bearer token; clients never hold one. Any
transport failure or non-2xx response becomes an UpstreamError carrying
the HTTP status and URL. There is no retry: a failed call fails the
request.
"""

from typing import Any

import httpx

from file_proxy.core.exceptions import UpstreamError
from file_proxy.core.logging import get_logger

logger = get_logger(__name__)


def create_http_client(timeout: float) -> httpx.AsyncClient:
    """Create the process-wide HTTP client used by all downstream clients.

    Args:
        timeout: Timeout in seconds applied to every downstream call

    Returns:
        httpx.AsyncClient following redirects
    """
    return httpx.AsyncClient(timeout=timeout, follow_redirects=True)


class DownstreamClient:
    """Base class issuing bearer-authenticated requests to one service.

    Attributes:
        service: Short service name used in log events
    """

    service = "downstream"

    def __init__(self, http: httpx.AsyncClient, base_url: str) -> None:
        self._http = http
        self._base_url = base_url.rstrip("/")

    def url_for(self, path: str) -> str:
        """Join a path onto the service base URL.

        Absolute URLs, such as paging links returned by the service, are
        used as they are but must stay under the base URL.

        Raises:
            UpstreamError: If an absolute URL points outside the base URL
        """
        if path.startswith(("https://", "http://")):
            if not path.startswith(f"{self._base_url}/"):
                raise UpstreamError(
                    f"{self.service} link points outside {self._base_url}",
                    url=path,
                )
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def _request(
        self,
        method: str,
        path: str,
        token: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request and classify failures.

        Args:
            method: HTTP method
            path: Path relative to the service base URL
            token: Bearer token for this call
            headers: Extra request headers
            params: Query string parameters

        Returns:
            httpx.Response with a 2xx status

        Raises:
            UpstreamError: On transport failure or non-2xx status
        """
        url = self.url_for(path)
        request_headers = {"Authorization": f"Bearer {token}"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self._http.request(
                method,
                url,
                headers=request_headers,
                params=params,
            )
        except httpx.HTTPError as e:
            logger.error(
                f"{self.service}_connection_error",
                method=method,
                path=path,
                error_type=type(e).__name__,
            )
            raise UpstreamError(
                f"{self.service} request failed: {type(e).__name__}",
                url=url,
            ) from e

        if response.is_success:
            logger.debug(
                f"{self.service}_request_success",
                method=method,
                path=path,
                status_code=response.status_code,
            )
            return response

        log = logger.warning if response.status_code == 404 else logger.error
        log(
            f"{self.service}_request_failed",
            method=method,
            path=path,
            status_code=response.status_code,
            response=response.text[:300],
        )
        raise UpstreamError(
            f"{self.service} returned {response.status_code} for {path}",
            upstream_status=response.status_code,
            url=url,
        )

    async def _get_json(
        self,
        path: str,
        token: str,
        *,
        headers: dict[str, str] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        response = await self._request(
            "GET", path, token, headers=headers, params=params
        )
        try:
            payload = response.json()
        except ValueError as e:
            raise UpstreamError(
                f"{self.service} returned a non-JSON body for {path}",
                upstream_status=response.status_code,
                url=self.url_for(path),
            ) from e
        if not isinstance(payload, dict):
            raise UpstreamError(
                f"{self.service} returned an unexpected JSON shape for {path}",
                upstream_status=response.status_code,
                url=self.url_for(path),
            )
        return payload
