from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    """Stored documents and JSON bodies use camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class Identity(CamelModel):
    id: str
    username: str
    created_at: datetime


class SessionBinding(CamelModel):
    username: str
    expires_at: datetime


class FileRecord(CamelModel):
    id: str
    name: str
    size: int
    uploaded_at: datetime
    updated_at: datetime


class ShareGrant(CamelModel):
    file_id: str
    file_owner: str
    file_name: str
    shared_at: datetime
    expires_at: datetime


FileRecordList = TypeAdapter(list[FileRecord])


class LoginRequest(BaseModel):
    username: str = Field(min_length=1, max_length=256)
    # Accepted for client compatibility; login claims an identity and never checks it.
    password: str | None = None


class LoginResponse(BaseModel):
    token: str
    username: str


class UserResponse(BaseModel):
    username: str


class UploadResponse(BaseModel):
    message: str
    file: FileRecord


class ShareResponse(CamelModel):
    share_url: str


class MessageResponse(BaseModel):
    message: str
