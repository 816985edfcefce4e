"""Caller identity extraction from the edge authentication header.

The hosting platform authenticates the caller and forwards the validated
claims as a base64-encoded JSON document in ``X-MS-CLIENT-PRINCIPAL``.
Only that header is trusted for identity.
"""

import base64
import binascii
import json
from typing import Any

from file_proxy.core.exceptions import UnauthenticatedError
from file_proxy.core.logging import get_logger, truncate_id
from file_proxy.schemas.access import CallerIdentity

logger = get_logger(__name__)

CLIENT_PRINCIPAL_HEADER = "x-ms-client-principal"

OBJECT_ID_CLAIMS = (
    "http://schemas.microsoft.com/identity/claims/objectidentifier",
    "oid",
)
UPN_CLAIMS = (
    "http://schemas.xmlsoap.org/ws/2005/05/identity/claims/upn",
    "upn",
    "preferred_username",
)


def _decode_payload(header_value: str | bytes) -> dict[str, Any]:
    try:
        raw = base64.b64decode(header_value, validate=False)
        payload = json.loads(raw.decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("identity_header_undecodable", error_type=type(e).__name__)
        raise UnauthenticatedError("Identity assertion could not be decoded") from e

    if not isinstance(payload, dict):
        logger.warning("identity_header_not_an_object")
        raise UnauthenticatedError("Identity assertion is not a claims object")
    return payload


def _claims_by_type(payload: dict[str, Any]) -> dict[str, str]:
    raw_claims = payload.get("claims") or []
    if not isinstance(raw_claims, list):
        logger.warning("identity_claims_not_a_list")
        raise UnauthenticatedError("Identity assertion claims are not a list")

    claims: dict[str, str] = {}
    for claim in raw_claims:
        if not isinstance(claim, dict):
            continue
        claim_type = claim.get("typ")
        value = claim.get("val")
        if not isinstance(claim_type, str) or not isinstance(value, str):
            continue
        # First occurrence wins for repeated claim types
        if claim_type and value and claim_type not in claims:
            claims[claim_type] = value
    return claims


def _first_claim(claims: dict[str, str], types: tuple[str, ...]) -> str | None:
    for claim_type in types:
        if claims.get(claim_type):
            return claims[claim_type]
    return None


def extract_caller_identity(header_value: str | bytes | None) -> CallerIdentity:
    """Build the caller identity from the client principal header.

    Args:
        header_value: Raw ``X-MS-CLIENT-PRINCIPAL`` header value, or None
            when the header is absent

    Returns:
        CallerIdentity with the object id as subject key and the UPN,
        when present, as display principal

    Raises:
        UnauthenticatedError: If the header is absent, cannot be decoded,
            or carries no object identifier claim
    """
    if not header_value:
        logger.info("identity_header_missing")
        raise UnauthenticatedError("Identity assertion header is missing")

    claims = _claims_by_type(_decode_payload(header_value))

    subject_key = _first_claim(claims, OBJECT_ID_CLAIMS)
    if not subject_key:
        logger.warning("identity_object_id_missing", claim_count=len(claims))
        raise UnauthenticatedError("Identity assertion has no object identifier")

    display_principal = _first_claim(claims, UPN_CLAIMS)

    logger.debug(
        "identity_extracted",
        subject_key=truncate_id(subject_key),
        has_display_principal=display_principal is not None,
    )
    return CallerIdentity(subject_key=subject_key, display_principal=display_principal)
