"""File location service.

Resolves a file reference into its canonical drive and item ids, the
metadata needed to serve it, and the id of the business record linked
to it through the list entry's custom fields.

Two addressing schemes are supported:
- By drive and item id: metadata is read straight from the drive item;
  the record link comes from the item's list entry and may be missing.
- By list entry: the site and list are resolved first, then the entry
  and the file it links to; the record link is required to be readable.
"""

from typing import Any
from urllib.parse import quote

from file_proxy.core.exceptions import NotFoundError, UpstreamError
from file_proxy.core.graph import GraphClient, segment
from file_proxy.core.logging import get_logger, truncate_id
from file_proxy.schemas.files import (
    DEFAULT_CONTENT_TYPE,
    ByContainerItem,
    ByListEntry,
    FileReference,
    ResolvedFile,
)

logger = get_logger(__name__)

DEFAULT_FILE_NAME = "file"


def normalize_record_id(value: Any) -> str | None:
    """Strip whitespace and enclosing braces from a record id.

    Returns:
        The bare id, or None when nothing usable is left
    """
    if value is None:
        return None
    normalized = str(value).strip().strip("{}").strip()
    return normalized or None


def _file_name(item: dict[str, Any]) -> str:
    return item.get("name") or DEFAULT_FILE_NAME


def _content_type(item: dict[str, Any]) -> str:
    return (item.get("file") or {}).get("mimeType") or DEFAULT_CONTENT_TYPE


class FileLocator:
    """Resolves file references through the Graph API."""

    def __init__(self, graph: GraphClient, record_link_field: str) -> None:
        self._graph = graph
        self._record_link_field = record_link_field

    async def locate(self, ref: FileReference, token: str) -> ResolvedFile:
        """Resolve a file reference.

        Args:
            ref: File reference in either addressing scheme
            token: Graph bearer token

        Returns:
            ResolvedFile; business_record_id is None when the file has
            no linked record

        Raises:
            NotFoundError: If the item, list or list entry does not exist,
                or the entry links to no file
            UpstreamError: On any other Graph failure
        """
        if isinstance(ref, ByListEntry):
            resolved = await self._locate_by_list_entry(ref, token)
        else:
            resolved = await self._locate_by_container_item(ref, token)

        logger.info(
            "file_located",
            scheme=ref.kind,
            container_id=truncate_id(resolved.container_id),
            item_id=truncate_id(resolved.item_id),
            content_type=resolved.content_type,
            has_record_link=resolved.business_record_id is not None,
        )
        return resolved

    def _record_id_from_fields(self, fields: dict[str, Any]) -> str | None:
        return normalize_record_id(fields.get(self._record_link_field))

    async def _locate_by_container_item(
        self, ref: ByContainerItem, token: str
    ) -> ResolvedFile:
        item_path = f"/drives/{segment(ref.container_id)}/items/{segment(ref.item_id)}"

        try:
            item = await self._graph.get_json(
                item_path, token, params={"$select": "id,name,file"}
            )
        except UpstreamError as e:
            if e.upstream_status == 404:
                raise NotFoundError("File not found.") from e
            raise

        # An unlinked file is legitimate here; access is denied later
        record_id: str | None = None
        try:
            fields = await self._graph.get_json(f"{item_path}/listItem/fields", token)
            record_id = self._record_id_from_fields(fields)
        except UpstreamError as e:
            logger.warning(
                "file_record_fields_unavailable",
                item_id=truncate_id(ref.item_id),
                upstream_status=e.upstream_status,
            )

        return ResolvedFile(
            container_id=ref.container_id,
            item_id=ref.item_id,
            display_name=_file_name(item),
            content_type=_content_type(item),
            business_record_id=record_id,
        )

    async def _locate_by_list_entry(self, ref: ByListEntry, token: str) -> ResolvedFile:
        site_id = await self._resolve_site_id(ref.site_host, ref.site_path, token)
        list_id = ref.list_id or await self._resolve_list_id(
            site_id, ref.list_title or "", token
        )

        entry_path = (
            f"/sites/{segment(site_id)}/lists/{segment(list_id)}"
            f"/items/{segment(ref.entry_id)}"
        )
        try:
            entry = await self._graph.get_json(
                entry_path, token, params={"$expand": "driveItem"}
            )
        except UpstreamError as e:
            if e.upstream_status == 404:
                raise NotFoundError("List entry not found.") from e
            raise

        drive_item = entry.get("driveItem") or {}
        container_id = (drive_item.get("parentReference") or {}).get("driveId")
        item_id = drive_item.get("id")
        if not container_id or not item_id:
            logger.warning("list_entry_has_no_file", entry_id=ref.entry_id)
            raise NotFoundError("List entry has no linked file.")

        # Unlike the drive-item path, the fields are the only way to find
        # the record link here, so a failure is fatal
        fields = await self._graph.get_json(f"{entry_path}/fields", token)

        return ResolvedFile(
            container_id=container_id,
            item_id=item_id,
            display_name=_file_name(drive_item),
            content_type=_content_type(drive_item),
            business_record_id=self._record_id_from_fields(fields),
        )

    async def _resolve_site_id(self, site_host: str, site_path: str, token: str) -> str:
        path = f"/sites/{segment(site_host)}:/{quote(site_path.strip('/'), safe='/')}"
        try:
            site = await self._graph.get_json(path, token, params={"$select": "id"})
        except UpstreamError as e:
            if e.upstream_status == 404:
                raise NotFoundError("Site not found.") from e
            raise

        site_id = site.get("id")
        if not site_id:
            raise UpstreamError("Graph site response has no id", url=path)
        return site_id

    async def _resolve_list_id(self, site_id: str, list_title: str, token: str) -> str:
        page = await self._graph.get_json(
            f"/sites/{segment(site_id)}/lists",
            token,
            params={"$select": "id,displayName"},
        )
        while True:
            for candidate in page.get("value") or []:
                if candidate.get("displayName") == list_title and candidate.get("id"):
                    return candidate["id"]

            next_link = page.get("@odata.nextLink")
            if not next_link:
                break
            page = await self._graph.get_json(next_link, token)

        logger.info("list_title_not_found", list_title=list_title)
        raise NotFoundError("List not found.")
