"""Wire models for the iTwin Storage API (folders, files and their links)."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ITEM_TYPE_FILE = "file"
ITEM_TYPE_FOLDER = "folder"


class ApiModel(BaseModel):
    """Base for every model exchanged with the API (camelCase on the wire)."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class Link(ApiModel):
    href: str


class ErrorDetails(ApiModel):
    model_config = ConfigDict(coerce_numbers_to_str=True)

    code: str | None = None
    message: str | None = None
    target: str | None = None
    details: Any = None


class ItemLinks(ApiModel):
    created_by: Link | None = None
    last_modified_by: Link | None = None
    parent_folder: Link | None = None


class Item(ApiModel):
    id: str
    display_name: str | None = None
    description: str | None = None
    path: str | None = None
    last_modified_by_display_name: str | None = None
    created_date_time: datetime | None = None
    last_modified_date_time: datetime | None = None
    parent_folder_id: str | None = None
    links: ItemLinks | None = Field(default=None, alias="_links")


class Folder(Item):
    pass


class File(Item):
    size: int | None = None


class PaginationLinks(ApiModel):
    self_: Link | None = Field(default=None, alias="self")
    next: Link | None = None
    prev: Link | None = None


class TopLevelItemsLinks(PaginationLinks):
    """Links of the project top-level listing; ``folder`` points at the root folder."""

    folder: Link | None = None


class FileUploadLinks(ApiModel):
    upload_url: Link
    complete_url: Link


class FolderCreate(ApiModel):
    display_name: str
    description: str | None = None


class FileCreate(ApiModel):
    display_name: str
    description: str | None = None


class FolderUpdate(ApiModel):
    display_name: str | None = None
    description: str | None = None


class FileUpdate(ApiModel):
    display_name: str | None = None
    description: str | None = None
