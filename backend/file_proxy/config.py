"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False

    # Logging
    log_level: str = "INFO"

    # Credential strategy (selected once per process)
    use_managed_identity: bool = False
    managed_identity_client_id: str = ""  # Only for user-assigned identities
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""

    # Microsoft Graph (document store)
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    graph_scope: str = "https://graph.microsoft.com/.default"

    # Dataverse (business-record store)
    dataverse_url: str = ""  # e.g. https://contoso.crm4.dynamics.com
    dataverse_api_version: str = "v9.2"
    record_entity_set: str = ""  # e.g. crm_expenses
    record_link_field: str = "CrmExpenseId"
    principal_fallback_fields: Annotated[list[str], NoDecode] = ["domainname"]

    # Response
    default_disposition: Literal["inline", "attachment"] = "inline"

    # List-entry addressing defaults
    default_site_host: str = ""
    default_site_path: str = ""
    default_list_id: str = ""

    # Downstream HTTP
    downstream_timeout_seconds: float = 60.0

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        return v.upper() if isinstance(v, str) else "INFO"

    @field_validator("default_disposition", mode="before")
    @classmethod
    def normalize_disposition(cls, v: str) -> str:
        """Normalize disposition mode to lowercase."""
        return v.strip().lower() if isinstance(v, str) else v

    @field_validator("dataverse_url", "graph_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Strip trailing slashes from base URLs."""
        return v.strip().rstrip("/") if isinstance(v, str) else v

    @field_validator("principal_fallback_fields", mode="before")
    @classmethod
    def parse_fallback_fields(cls, v: str | list[str]) -> list[str]:
        """Parse fallback principal fields from string or list."""
        if isinstance(v, str):
            import json

            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [field.strip() for field in v.split(",") if field.strip()]
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings that must be explicit outside development."""
        if self.environment != "production":
            return self

        errors = []

        if not self.use_managed_identity:
            for name in ("tenant_id", "client_id", "client_secret"):
                value = getattr(self, name)
                if not value or value.startswith("your-"):
                    errors.append(
                        f"{name.upper()} is required in production "
                        "unless USE_MANAGED_IDENTITY is true"
                    )

        if not self.dataverse_url:
            errors.append("DATAVERSE_URL is required in production")

        if not self.record_entity_set:
            errors.append("RECORD_ENTITY_SET is required in production")

        if errors:
            raise ValueError(
                "Production configuration errors:\n"
                + "\n".join(f"  - {e}" for e in errors)
            )

        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment == "development"

    @property
    def is_client_secret_configured(self) -> bool:
        """Check if the client-credential triple is complete."""
        return bool(self.tenant_id and self.client_id and self.client_secret)

    @property
    def dataverse_scope(self) -> str:
        """Token scope for the Dataverse environment."""
        return f"{self.dataverse_url}/.default"

    @property
    def dataverse_api_base(self) -> str:
        """Base URL of the Dataverse Web API."""
        return f"{self.dataverse_url}/api/data/{self.dataverse_api_version}"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
