"""API dependencies for caller identity, file references and the pipeline."""

from typing import Annotated

import httpx
from fastapi import Depends, Query, Request
from pydantic import TypeAdapter, ValidationError

from file_proxy.config import Settings, get_settings
from file_proxy.core.credentials import get_token_provider
from file_proxy.core.dataverse import DataverseClient
from file_proxy.core.exceptions import BadRequestError, ConfigurationError
from file_proxy.core.graph import GraphClient
from file_proxy.core.identity import CLIENT_PRINCIPAL_HEADER, extract_caller_identity
from file_proxy.core.logging import get_logger
from file_proxy.schemas.access import CallerIdentity
from file_proxy.schemas.files import FileReference
from file_proxy.services.content_streamer import ContentStreamer
from file_proxy.services.download_pipeline import DownloadPipeline
from file_proxy.services.entitlement_resolver import EntitlementResolver
from file_proxy.services.file_locator import FileLocator

logger = get_logger(__name__)

LIST_ENTRY_MODE = "spitem"

_file_reference_adapter: TypeAdapter[FileReference] = TypeAdapter(FileReference)


def get_caller_identity(request: Request) -> CallerIdentity:
    """Extract the caller identity; raises UnauthenticatedError when absent."""
    return extract_caller_identity(request.headers.get(CLIENT_PRINCIPAL_HEADER))


def get_file_reference(
    settings: Annotated[Settings, Depends(get_settings)],
    mode: str | None = None,
    drive_id: Annotated[str | None, Query(alias="driveId")] = None,
    item_id: Annotated[str | None, Query(alias="itemId")] = None,
    site_host: Annotated[str | None, Query(alias="siteHost")] = None,
    site_path: Annotated[str | None, Query(alias="sitePath")] = None,
    sp_item_id: Annotated[str | None, Query(alias="spItemId")] = None,
    list_id: Annotated[str | None, Query(alias="listId")] = None,
    list_title: Annotated[str | None, Query(alias="listTitle")] = None,
) -> FileReference:
    """Build the file reference selected by ``mode``.

    ``mode=spitem`` selects list-entry addressing, with site host, site
    path and list id defaulting to configuration. Any other value selects
    drive and item addressing.

    Raises:
        BadRequestError: If the selected scheme's parameters are incomplete
    """
    if (mode or "").lower() == LIST_ENTRY_MODE:
        raw = {
            "kind": "list_entry",
            "site_host": site_host or settings.default_site_host,
            "site_path": site_path or settings.default_site_path,
            "list_id": list_id or settings.default_list_id or None,
            "list_title": list_title or None,
            "entry_id": sp_item_id,
        }
        # An explicit title wins over the configured default list id
        if list_title and not list_id:
            raw["list_id"] = None
        missing_message = (
            "Required parameters: siteHost, sitePath, spItemId and listId or listTitle."
        )
    else:
        raw = {"kind": "container_item", "container_id": drive_id, "item_id": item_id}
        missing_message = "Required parameters: driveId, itemId."

    try:
        return _file_reference_adapter.validate_python(raw)
    except ValidationError as e:
        logger.info("file_reference_invalid", mode=mode, error_count=e.error_count())
        raise BadRequestError(missing_message) from e


def get_http_client(request: Request) -> httpx.AsyncClient:
    """Get the process-wide HTTP client created at startup.

    Raises:
        ConfigurationError: If the application lifespan did not run
    """
    http = getattr(request.app.state, "http_client", None)
    if http is None:
        logger.error("http_client_not_initialized")
        raise ConfigurationError("HTTP client is created during application startup")
    return http


def get_download_pipeline(
    http: Annotated[httpx.AsyncClient, Depends(get_http_client)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> DownloadPipeline:
    """Assemble the pipeline for one request from process-wide parts."""
    graph = GraphClient(http, settings.graph_base_url)
    dataverse = DataverseClient(http, settings.dataverse_api_base)
    return DownloadPipeline(
        tokens=get_token_provider(),
        locator=FileLocator(graph, settings.record_link_field),
        resolver=EntitlementResolver(
            dataverse,
            settings.record_entity_set,
            settings.principal_fallback_fields,
        ),
        streamer=ContentStreamer(graph, settings.default_disposition),
        graph_scope=settings.graph_scope,
        dataverse_scope=settings.dataverse_scope,
    )


# Type aliases for dependency injection
Identity = Annotated[CallerIdentity, Depends(get_caller_identity)]
FileRef = Annotated[FileReference, Depends(get_file_reference)]
Pipeline = Annotated[DownloadPipeline, Depends(get_download_pipeline)]
