"""Pydantic schemas for batch album requests."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from .batch_models import AlbumDefinition, BatchRequest, RawFile


class BatchFileSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    size: int | None = Field(default=None, ge=0)
    type: str = "application/octet-stream"
    buffer: str = Field(description="Base64 encoded file contents.")

    def to_raw(self) -> RawFile:
        return RawFile(name=self.name, size=self.size, mime_type=self.type, data_base64=self.buffer)


class BatchAlbumSchema(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    event_name: str | None = Field(default=None, alias="eventName")
    files: list[BatchFileSchema] = Field(default_factory=list)

    def to_definition(self) -> AlbumDefinition:
        return AlbumDefinition(
            name=self.name,
            event_name=self.event_name,
            files=[file.to_raw() for file in self.files],
        )


class BatchRequestSchema(BaseModel):
    """Body of both batch endpoints; ``userId`` is only read by the admin route."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    event_name: str | None = Field(default=None, alias="eventName")
    albums: list[BatchAlbumSchema] = Field(default_factory=list)
    session_id: str | None = Field(default=None, alias="sessionId")
    use_queue: bool = Field(default=True, alias="useQueue")

    def to_request(self, *, user_id: str | None = None) -> BatchRequest:
        return BatchRequest(
            user_id=user_id if user_id is not None else self.user_id,
            event_name=self.event_name,
            albums=[album.to_definition() for album in self.albums],
            session_id=self.session_id,
            use_queue=self.use_queue,
        )


class BatchErrorSchema(BaseModel):
    status: str
    error_code: str
    message: str
    details: list[dict] | None = None
