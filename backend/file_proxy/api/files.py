"""File proxy endpoint."""

from fastapi import APIRouter, Response

from file_proxy.api.deps import FileRef, Identity, Pipeline
from file_proxy.core.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["files"])

CACHE_CONTROL = "private, max-age=60"


@router.get("/FileProxy", response_class=Response)
async def download_file(
    identity: Identity,
    ref: FileRef,
    pipeline: Pipeline,
) -> Response:
    """Stream a SharePoint file to an authorized caller.

    The caller must be able to read the business record linked to the
    file in Dataverse. Errors are returned as short plain-text bodies.
    """
    content = await pipeline.run(identity, ref)

    return Response(
        content=content.body,
        headers={
            "Content-Type": content.content_type,
            "Content-Disposition": content.content_disposition,
            "Cache-Control": CACHE_CONTROL,
        },
    )
