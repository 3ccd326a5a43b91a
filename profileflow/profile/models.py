"""Profile record and update input models."""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

ListField = Union[List[Any], str]


def has_list_data(field: Optional[ListField]) -> bool:
    """``True`` when ``field`` is a legacy inline list with entries."""
    return isinstance(field, list) and len(field) > 0


def list_data(field: Optional[ListField]) -> List[Any]:
    """Return the inline list of a legacy field, or an empty list."""
    return list(field) if isinstance(field, list) else []


class ProfileRecord(BaseModel):
    """Latest profile message as stored on the ledger.

    Version 1 records embed channel and group lists inline; version 2 records
    reference a separate topic per list.
    """

    model_config = ConfigDict(populate_by_name=True)

    profile_topic: Optional[str] = Field(default=None, alias="ProfileTopic")
    type: str = Field(default="Profile", alias="Type")
    name: str = Field(default="", alias="Name")
    bio: str = Field(default="", alias="Bio")
    website: str = Field(default="", alias="Website")
    channels: ListField = Field(default="", alias="Channels")
    groups: ListField = Field(default="", alias="Groups")
    following_channels: ListField = Field(default="", alias="FollowingChannels")
    following_groups: ListField = Field(default="", alias="FollowingGroups")
    explorer_messages: str = Field(default="", alias="ExplorerMessages")
    billboard_ads: str = Field(default="", alias="BillboardAds")
    private_messages: str = Field(default="", alias="PrivateMessages")
    picture: Optional[str] = Field(default="", alias="Picture")
    banner: Optional[str] = Field(default="", alias="Banner")
    profile_version: Optional[str] = Field(default=None, alias="ProfileVersion")

    @field_validator("profile_version", mode="before")
    @classmethod
    def _version_as_string(cls, v: Any) -> Optional[str]:
        return None if v is None else str(v)

    def is_v2(self) -> bool:
        return self.profile_version == "2"

    def to_message(self) -> dict[str, Any]:
        """Serialize to the wire message written to the profile topic."""
        return self.model_dump(by_alias=True, exclude={"profile_topic"})


class MediaFile(BaseModel):
    """A picture or banner chosen by the user."""

    name: str
    content_type: str = "application/octet-stream"
    data: bytes = b""

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_path(cls, path: Union[str, Path]) -> "MediaFile":
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            content_type=content_type or "application/octet-stream",
            data=path.read_bytes(),
        )


class ProfileUpdate(BaseModel):
    """Values from the edit form."""

    name: str
    bio: str = ""
    website: str = ""
    picture: Optional[MediaFile] = None
    banner: Optional[MediaFile] = None

    def validate_for_submit(self, max_media_bytes: int) -> None:
        """Raise ``ValueError`` when the form cannot be submitted."""
        if not self.name.strip():
            raise ValueError("Name is required")
        if self.picture is not None and self.picture.size > max_media_bytes:
            raise ValueError("The profile picture file exceeds the size limit")
        if self.banner is not None and self.banner.size > max_media_bytes:
            raise ValueError("The banner file exceeds the size limit")
