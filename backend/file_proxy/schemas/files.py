"""File addressing and resolution schemas."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

DEFAULT_CONTENT_TYPE = "application/octet-stream"


class ByContainerItem(BaseModel):
    """File addressed directly by drive (container) and item id."""

    kind: Literal["container_item"] = "container_item"
    container_id: str = Field(min_length=1)
    item_id: str = Field(min_length=1)

    model_config = {"frozen": True}


class ByListEntry(BaseModel):
    """File addressed through a SharePoint list entry that links to it."""

    kind: Literal["list_entry"] = "list_entry"
    site_host: str = Field(min_length=1)
    site_path: str = Field(min_length=1)
    list_id: str | None = None
    list_title: str | None = None
    entry_id: str = Field(min_length=1)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def require_list_selector(self) -> "ByListEntry":
        """A list must be identified by id or by display name."""
        if not self.list_id and not self.list_title:
            raise ValueError("list_id or list_title is required")
        return self


FileReference = Annotated[ByContainerItem | ByListEntry, Field(discriminator="kind")]


class ResolvedFile(BaseModel):
    """Canonical location and metadata of a file, plus its record link."""

    container_id: str
    item_id: str
    display_name: str
    content_type: str = DEFAULT_CONTENT_TYPE
    business_record_id: str | None = None

    model_config = {"frozen": True}


class FileContent(BaseModel):
    """Buffered file payload ready to be returned to the caller."""

    body: bytes
    content_type: str
    file_name: str
    content_disposition: str

    model_config = {"frozen": True}
