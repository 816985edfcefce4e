"""Bearer token acquisition for downstream services.

One credential strategy is chosen per process:
- Managed identity: no secrets, the host's identity is used
- Client credentials: tenant id, client id and client secret

Tokens are requested per call. azure-identity keeps its own in-memory
cache, so repeated calls for the same scope are cheap.
"""

from azure.core.exceptions import AzureError
from azure.identity.aio import ClientSecretCredential, ManagedIdentityCredential

from file_proxy.config import Settings, get_settings
from file_proxy.core.exceptions import AuthProviderError, ConfigurationError
from file_proxy.core.logging import get_logger, truncate_id

logger = get_logger(__name__)


class TokenProvider:
    """Obtains scoped bearer tokens with an azure-identity credential.

    Subclasses only decide which credential to build.
    """

    strategy = "unknown"

    def __init__(self, credential) -> None:
        self._credential = credential

    async def get_token(self, scope: str) -> str:
        """Acquire a bearer token for a scope.

        Args:
            scope: Resource scope, e.g. https://graph.microsoft.com/.default

        Returns:
            Access token string

        Raises:
            AuthProviderError: If the identity provider rejects the
                credential or cannot be reached
        """
        try:
            access_token = await self._credential.get_token(scope)
        except AzureError as e:
            logger.error(
                "token_acquisition_failed",
                strategy=self.strategy,
                scope=scope,
                error_type=type(e).__name__,
            )
            raise AuthProviderError(
                f"Failed to acquire token for {scope}: {type(e).__name__}",
                scope=scope,
            ) from e

        logger.debug(
            "token_acquired",
            strategy=self.strategy,
            scope=scope,
            expires_on=access_token.expires_on,
        )
        return access_token.token

    async def close(self) -> None:
        """Release the credential's HTTP resources."""
        await self._credential.close()


class ManagedIdentityTokenProvider(TokenProvider):
    """Token provider backed by the host's managed identity."""

    strategy = "managed_identity"

    def __init__(self, client_id: str | None = None) -> None:
        # client_id selects a user-assigned identity
        if client_id:
            credential = ManagedIdentityCredential(client_id=client_id)
        else:
            credential = ManagedIdentityCredential()
        super().__init__(credential)
        logger.info(
            "token_provider_initialized",
            strategy=self.strategy,
            client_id=truncate_id(client_id),
        )


class ClientSecretTokenProvider(TokenProvider):
    """Token provider backed by an app registration's client secret."""

    strategy = "client_secret"

    def __init__(self, tenant_id: str, client_id: str, client_secret: str) -> None:
        super().__init__(
            ClientSecretCredential(
                tenant_id=tenant_id,
                client_id=client_id,
                client_secret=client_secret,
            )
        )
        logger.info(
            "token_provider_initialized",
            strategy=self.strategy,
            tenant_id=truncate_id(tenant_id),
            client_id=truncate_id(client_id),
        )


def build_token_provider(settings: Settings) -> TokenProvider:
    """Select the credential strategy from configuration.

    Raises:
        ConfigurationError: If client credentials are selected but incomplete
    """
    if settings.use_managed_identity:
        return ManagedIdentityTokenProvider(
            client_id=settings.managed_identity_client_id or None
        )

    if not settings.is_client_secret_configured:
        logger.error("token_provider_not_configured", reason="missing_client_secret")
        raise ConfigurationError(
            "TENANT_ID, CLIENT_ID and CLIENT_SECRET are required "
            "when USE_MANAGED_IDENTITY is false"
        )

    return ClientSecretTokenProvider(
        tenant_id=settings.tenant_id,
        client_id=settings.client_id,
        client_secret=settings.client_secret,
    )


# Module-level singleton, built on first use
_token_provider: TokenProvider | None = None


def get_token_provider() -> TokenProvider:
    """Get the process-wide token provider.

    Returns:
        TokenProvider instance
    """
    global _token_provider
    if _token_provider is None:
        _token_provider = build_token_provider(get_settings())
    return _token_provider


async def close_token_provider() -> None:
    """Close and drop the process-wide token provider, if built."""
    global _token_provider
    if _token_provider is not None:
        await _token_provider.close()
        _token_provider = None


def reset_token_provider() -> None:
    """Reset the token provider singleton.

    Used primarily for testing to ensure clean state between tests.
    """
    global _token_provider
    _token_provider = None
