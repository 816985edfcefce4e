"""Entitlement resolution against the business-record store.

Access is never computed locally. The caller is mapped to a Dataverse
systemuser, and the linked record is read as that user through
impersonation; Dataverse's own security roles decide whether the read
succeeds. Every path that cannot establish access fails closed.
"""

from typing import Any
from uuid import UUID

from file_proxy.core.dataverse import DataverseClient, odata_string
from file_proxy.core.exceptions import UpstreamError
from file_proxy.core.logging import get_logger, truncate_id
from file_proxy.schemas.access import (
    AccessDecision,
    CallerIdentity,
    EntitlementResult,
    Principal,
)

logger = get_logger(__name__)

PRINCIPAL_ENTITY_SET = "systemusers"
PRINCIPAL_ID_FIELD = "systemuserid"
PRINCIPAL_DISABLED_FIELD = "isdisabled"
PRINCIPAL_OBJECT_ID_FIELD = "azureactivedirectoryobjectid"


class PrincipalLookupError(Exception):
    """Raised internally when a principal query itself fails."""


class EntitlementResolver:
    """Decides whether a caller may read a business record."""

    def __init__(
        self,
        dataverse: DataverseClient,
        record_entity_set: str,
        fallback_fields: list[str],
    ) -> None:
        self._dataverse = dataverse
        self._record_entity_set = record_entity_set
        self._fallback_fields = fallback_fields

    async def resolve(
        self,
        identity: CallerIdentity,
        record_id: str | None,
        token: str,
    ) -> EntitlementResult:
        """Resolve the caller's access to a record.

        Args:
            identity: Caller identity from the edge assertion
            record_id: Normalized id of the linked record, or None
            token: Dataverse bearer token

        Returns:
            EntitlementResult; on ALLOWED it carries the record payload

        Raises:
            UpstreamError: If the impersonated read fails with a status
                other than 401, 403 or 404
        """
        if not record_id:
            return self._deny(AccessDecision.DENIED_NO_RECORD_LINK, identity)

        try:
            principal = await self._find_principal(identity, token)
        except PrincipalLookupError:
            return self._deny(AccessDecision.DENIED_NO_PRINCIPAL, identity)

        if principal is None:
            return self._deny(AccessDecision.DENIED_NO_PRINCIPAL, identity)

        if not principal.active:
            return self._deny(
                AccessDecision.DENIED_INACTIVE_PRINCIPAL, identity, principal
            )

        try:
            record = await self._dataverse.get_record(
                self._record_entity_set,
                record_id,
                token,
                impersonate=principal.principal_id,
            )
        except UpstreamError as e:
            if e.upstream_status == 404:
                return self._deny(AccessDecision.RECORD_NOT_FOUND, identity, principal)
            if e.upstream_status in (401, 403):
                return self._deny(
                    AccessDecision.DENIED_RECORD_UNREADABLE, identity, principal
                )
            raise

        logger.info(
            "entitlement_allowed",
            subject_key=truncate_id(identity.subject_key),
            principal_id=truncate_id(principal.principal_id),
            record_id=truncate_id(record_id),
        )
        return EntitlementResult(
            decision=AccessDecision.ALLOWED,
            principal=principal,
            record=record,
        )

    def _deny(
        self,
        decision: AccessDecision,
        identity: CallerIdentity,
        principal: Principal | None = None,
    ) -> EntitlementResult:
        logger.info(
            "entitlement_denied",
            decision=decision.value,
            subject_key=truncate_id(identity.subject_key),
            principal_id=truncate_id(principal.principal_id if principal else None),
        )
        return EntitlementResult(decision=decision, principal=principal)

    async def _find_principal(
        self, identity: CallerIdentity, token: str
    ) -> Principal | None:
        """Look up the caller by object id, then once by display principal.

        The fallback covers directory-sync lag, where the object id has
        not reached Dataverse yet. It only runs after a successful,
        empty primary lookup.

        Raises:
            PrincipalLookupError: If a lookup query fails
        """
        rows = await self._query_by_object_id(identity.subject_key, token)

        if not rows and identity.display_principal and self._fallback_fields:
            logger.info(
                "principal_fallback_lookup",
                subject_key=truncate_id(identity.subject_key),
                fields=self._fallback_fields,
            )
            literal = odata_string(identity.display_principal)
            filter_expr = " or ".join(
                f"{field} eq {literal}" for field in self._fallback_fields
            )
            rows = await self._query_principals(filter_expr, token)

        if not rows:
            return None

        if len(rows) > 1:
            logger.warning(
                "principal_lookup_ambiguous",
                subject_key=truncate_id(identity.subject_key),
                count=len(rows),
            )
        return self._to_principal(rows[0])

    async def _query_by_object_id(
        self, subject_key: str, token: str
    ) -> list[dict[str, Any]]:
        try:
            object_id = UUID(subject_key)
        except ValueError:
            # A non-GUID object id cannot match the Edm.Guid column
            logger.warning(
                "principal_subject_key_not_guid",
                subject_key=truncate_id(subject_key),
            )
            return []
        return await self._query_principals(
            f"{PRINCIPAL_OBJECT_ID_FIELD} eq {object_id}", token
        )

    async def _query_principals(
        self, filter_expr: str, token: str
    ) -> list[dict[str, Any]]:
        try:
            rows = await self._dataverse.query(
                PRINCIPAL_ENTITY_SET,
                filter_expr,
                token,
                select=[PRINCIPAL_ID_FIELD, PRINCIPAL_DISABLED_FIELD],
            )
        except UpstreamError as e:
            logger.warning(
                "principal_lookup_failed",
                upstream_status=e.upstream_status,
            )
            raise PrincipalLookupError(str(e)) from e
        # Without an id there is nobody to impersonate
        return [row for row in rows if row.get(PRINCIPAL_ID_FIELD)]

    @staticmethod
    def _to_principal(row: dict[str, Any]) -> Principal:
        return Principal(
            principal_id=str(row[PRINCIPAL_ID_FIELD]),
            active=row.get(PRINCIPAL_DISABLED_FIELD) is False,
        )
