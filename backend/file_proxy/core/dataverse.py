"""Dataverse Web API client for principal and business-record reads."""

from typing import Any

from file_proxy.core.downstream import DownstreamClient
from file_proxy.core.graph import segment
from file_proxy.core.logging import get_logger, truncate_id

logger = get_logger(__name__)

# Header that makes Dataverse evaluate a request as another systemuser
IMPERSONATION_HEADER = "MSCRMCallerID"

ODATA_HEADERS = {
    "Accept": "application/json",
    "OData-MaxVersion": "4.0",
    "OData-Version": "4.0",
}


def odata_string(value: str) -> str:
    """Render a value as an OData string literal."""
    return "'" + value.replace("'", "''") + "'"


class DataverseClient(DownstreamClient):
    """Read-only Dataverse client.

    Paths are relative to the Web API base, e.g.
    ``https://contoso.crm4.dynamics.com/api/data/v9.2``.
    """

    service = "dataverse"

    async def query(
        self,
        entity_set: str,
        filter_expr: str,
        token: str,
        select: list[str] | None = None,
        top: int | None = None,
    ) -> list[dict[str, Any]]:
        """Query an entity set with an OData filter.

        Args:
            entity_set: Collection name, e.g. systemusers
            filter_expr: OData $filter expression
            token: Bearer token for the Dataverse environment
            select: Columns to return
            top: Maximum number of rows

        Returns:
            Matching rows (the ``value`` array)

        Raises:
            UpstreamError: On any failure
        """
        params: dict[str, Any] = {"$filter": filter_expr}
        if select:
            params["$select"] = ",".join(select)
        if top is not None:
            params["$top"] = top

        payload = await self._get_json(
            segment(entity_set), token, headers=ODATA_HEADERS, params=params
        )
        rows = payload.get("value") or []
        logger.debug("dataverse_query_complete", entity_set=entity_set, count=len(rows))
        return rows

    async def get_record(
        self,
        entity_set: str,
        record_id: str,
        token: str,
        impersonate: str | None = None,
    ) -> dict[str, Any]:
        """Fetch one record by primary key.

        Args:
            entity_set: Collection name of the record's table
            record_id: Primary key (GUID without braces)
            token: Bearer token for the Dataverse environment
            impersonate: systemuserid to evaluate the read as; the
                downstream security model then decides visibility

        Returns:
            Record payload

        Raises:
            UpstreamError: On any failure, including 401/403/404
        """
        headers = dict(ODATA_HEADERS)
        if impersonate:
            headers[IMPERSONATION_HEADER] = impersonate

        logger.debug(
            "dataverse_get_record",
            entity_set=entity_set,
            record_id=truncate_id(record_id),
            impersonated=impersonate is not None,
        )
        return await self._get_json(
            f"{segment(entity_set)}({segment(record_id)})",
            token,
            headers=headers,
        )
