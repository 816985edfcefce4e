"""Identity and entitlement schemas."""

from enum import Enum
from typing import Any

from pydantic import BaseModel


class CallerIdentity(BaseModel):
    """Federated identity of the caller, parsed from the edge assertion."""

    subject_key: str
    display_principal: str | None = None

    model_config = {"frozen": True}


class Principal(BaseModel):
    """A user as known to the business-record store."""

    principal_id: str
    active: bool

    model_config = {"frozen": True}


class AccessDecision(str, Enum):
    """Terminal outcome of entitlement resolution."""

    ALLOWED = "allowed"
    DENIED_NO_RECORD_LINK = "denied_no_record_link"
    DENIED_NO_PRINCIPAL = "denied_no_principal"
    DENIED_INACTIVE_PRINCIPAL = "denied_inactive_principal"
    DENIED_RECORD_UNREADABLE = "denied_record_unreadable"
    RECORD_NOT_FOUND = "record_not_found"

    @property
    def is_allowed(self) -> bool:
        return self is AccessDecision.ALLOWED


class EntitlementResult(BaseModel):
    """Decision plus the principal and record it was based on."""

    decision: AccessDecision
    principal: Principal | None = None
    record: dict[str, Any] | None = None

    model_config = {"frozen": True}
