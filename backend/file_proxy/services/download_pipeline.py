"""Authorized download pipeline.

Runs the per-request steps strictly in order:

    identity -> tokens -> locate -> entitlement -> content

Each step either produces the input of the next or raises a
FileProxyError that ends the request. Nothing is cached between
requests: every call performs a full resolution.
"""

from file_proxy.core.credentials import TokenProvider
from file_proxy.core.exceptions import AccessDeniedError
from file_proxy.core.logging import get_logger, truncate_id
from file_proxy.schemas.access import CallerIdentity
from file_proxy.schemas.files import FileContent, FileReference
from file_proxy.services.content_streamer import ContentStreamer
from file_proxy.services.entitlement_resolver import EntitlementResolver
from file_proxy.services.file_locator import FileLocator

logger = get_logger(__name__)


class DownloadPipeline:
    """Resolves, authorizes and fetches one file for one caller."""

    def __init__(
        self,
        tokens: TokenProvider,
        locator: FileLocator,
        resolver: EntitlementResolver,
        streamer: ContentStreamer,
        *,
        graph_scope: str,
        dataverse_scope: str,
    ) -> None:
        self._tokens = tokens
        self._locator = locator
        self._resolver = resolver
        self._streamer = streamer
        self._graph_scope = graph_scope
        self._dataverse_scope = dataverse_scope

    async def run(self, identity: CallerIdentity, ref: FileReference) -> FileContent:
        """Serve a file to a caller if the linked record allows it.

        Args:
            identity: Already-extracted caller identity
            ref: File reference in either addressing scheme

        Returns:
            FileContent ready to be returned

        Raises:
            AuthProviderError: If a token cannot be acquired
            NotFoundError: If the file reference cannot be resolved
            AccessDeniedError: If entitlement resolution does not allow access
            UpstreamError: On unexpected downstream failures
        """
        graph_token = await self._tokens.get_token(self._graph_scope)
        record_token = await self._tokens.get_token(self._dataverse_scope)

        resolved = await self._locator.locate(ref, graph_token)

        entitlement = await self._resolver.resolve(
            identity, resolved.business_record_id, record_token
        )
        if not entitlement.decision.is_allowed:
            raise AccessDeniedError(entitlement.decision)

        content = await self._streamer.stream(
            resolved.container_id,
            resolved.item_id,
            graph_token,
            file_name=resolved.display_name,
            content_type=resolved.content_type,
        )

        logger.info(
            "download_served",
            subject_key=truncate_id(identity.subject_key),
            item_id=truncate_id(resolved.item_id),
            size=len(content.body),
        )
        return content
