"""Core application exception classes.

Every failure in the download pipeline is classified at the point where
it happens into one of these exceptions. Each class carries the HTTP
status it maps to and a short public message, so the response layer
never has to interpret an unclassified error.

Exception Hierarchy:
    FileProxyError (base, 500)
    +-- UnauthenticatedError (401)
    +-- BadRequestError (400)
    +-- NotFoundError (404)
    +-- AccessDeniedError (403, or 404 for a missing record)
    +-- ExternalServiceError (500)
    |   +-- AuthProviderError
    |   +-- UpstreamError
    +-- ConfigurationError (500)
"""

from file_proxy.schemas.access import AccessDecision


class FileProxyError(Exception):
    """Base exception for all file proxy errors.

    Attributes:
        status_code: HTTP status returned to the caller
        public_message: Short plain-text body returned to the caller
    """

    status_code: int = 500
    public_message: str = "Internal error while processing the file."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)


class UnauthenticatedError(FileProxyError):
    """Raised when the identity assertion is absent or unusable."""

    status_code = 401
    public_message = "Not authenticated."


class BadRequestError(FileProxyError):
    """Raised when required request parameters are missing."""

    status_code = 400
    public_message = "Missing required parameters."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message)
        if message:
            self.public_message = message


class NotFoundError(FileProxyError):
    """Raised when a list, list entry or file does not exist."""

    status_code = 404
    public_message = "File not found."

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message)
        if message:
            self.public_message = message


_DECISION_MESSAGES = {
    AccessDecision.DENIED_NO_RECORD_LINK: "File is not linked to a record.",
    AccessDecision.DENIED_NO_PRINCIPAL: "User is not registered in the record system.",
    AccessDecision.DENIED_INACTIVE_PRINCIPAL: "User is disabled in the record system.",
    AccessDecision.DENIED_RECORD_UNREADABLE: "Access to the linked record is denied.",
    AccessDecision.RECORD_NOT_FOUND: "Linked record not found.",
}


class AccessDeniedError(FileProxyError):
    """Raised for every entitlement decision other than allowed.

    A missing record maps to 404; every other denial maps to 403.
    """

    def __init__(self, decision: AccessDecision) -> None:
        if decision.is_allowed:
            raise ValueError("AccessDeniedError requires a denial decision")
        self.decision = decision
        self.status_code = 404 if decision is AccessDecision.RECORD_NOT_FOUND else 403
        self.public_message = _DECISION_MESSAGES[decision]
        super().__init__(f"{decision.value}: {self.public_message}")


class ExternalServiceError(FileProxyError):
    """Base exception for downstream service failures."""

    pass


class AuthProviderError(ExternalServiceError):
    """Raised when a bearer token cannot be obtained.

    This can occur when:
    - The identity provider rejects the credential
    - Managed identity is unavailable on the host
    - The token endpoint is unreachable
    """

    public_message = "Internal error while authenticating to downstream services."

    def __init__(self, message: str, scope: str | None = None) -> None:
        super().__init__(message)
        self.scope = scope


class UpstreamError(ExternalServiceError):
    """Raised when a downstream HTTP call fails unexpectedly.

    Attributes:
        upstream_status: HTTP status of the downstream response, or None
            when the request never produced a response
        url: URL of the failed request
    """

    def __init__(
        self,
        message: str,
        upstream_status: int | None = None,
        url: str | None = None,
    ) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status
        self.url = url


class ConfigurationError(FileProxyError):
    """Raised when required configuration is missing or invalid."""

    pass
