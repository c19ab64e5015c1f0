"""Wire format of broker request and response messages.

Field names on the wire are camelCase (``userID``, ``contentType``);
models expose them as snake_case attributes.
"""

import enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, NonNegativeInt


class Intention(enum.StrEnum):
    """What a request wants done."""

    CREATE = 'CREATE'
    READ = 'READ'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


class RequestMessage(BaseModel):
    """Envelope every request carries."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    msg_id: int | str
    msg_intention: Intention
    user_id: str = Field(alias='userID', min_length=1)


class CreateFileMessage(RequestMessage):
    name: str
    filename: str
    size: NonNegativeInt
    content_type: str = Field(default='', alias='contentType')


class ReadFileMessage(RequestMessage):
    """Query; every filter is optional."""

    id: str | None = None
    name: str | None = None
    filename: str | None = None
    size: int | None = None
    content_type: str | None = Field(default=None, alias='contentType')
    created_at: int | None = Field(default=None, alias='createdAt')
    owner: str | None = None


class UpdateFileMessage(RequestMessage):
    id: str
    name: str | None = None
    content_type: str | None = Field(default=None, alias='contentType')

    def changed_fields(self) -> dict[str, str]:
        """Fields the request actually sets."""
        changed = {
            'name': self.name,
            'content_type': self.content_type,
        }
        return {
            field: field_value
            for field, field_value in changed.items()
            if field_value is not None
        }


class DeleteFileMessage(RequestMessage):
    id: str


class BindingMessage(RequestMessage):
    """Binding request addressed either by event or by file.

    ``eventID`` selects the by-event direction and ``fileID`` the
    by-file one. The list of the opposite side is required for every
    intention except READ.
    """

    event_id: str | None = Field(default=None, alias='eventID')
    file_id: str | None = Field(default=None, alias='fileID')
    file_ids: list[str] | None = Field(default=None, alias='fileIDs')
    event_ids: list[str] | None = Field(default=None, alias='eventIDs')
    owner_only: bool = Field(default=False, alias='ownerOnly')


class DiscoveryMessage(RequestMessage):
    asset_type: str = Field(alias='assetType')
    asset_id: str = Field(alias='assetID')


class ResponseMessage(BaseModel):
    """Exactly one of these answers every request."""

    model_config = ConfigDict(populate_by_name=True)

    msg_id: int | str | None
    msg_intention: str | None
    user_id: str | None = Field(alias='userID')
    status: int
    result: list[Any] | bool
    upload_uri: str | None = Field(default=None, alias='uploadURI')

    def to_wire(self) -> dict[str, object]:
        """Serialize with wire names, omitting an absent upload URI."""
        return self.model_dump(by_alias=True, exclude_none=True)
