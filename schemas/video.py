from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class VideoRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    stored_name: str = Field(alias="filename")
    original_name: str = Field(alias="originalname")
    mime_type: str = Field(alias="mimetype")
    size_bytes: int = Field(alias="size")
    uploaded_at: datetime = Field(alias="uploadDate")
    view_count: int = Field(default=0, alias="views")


class UploadResult(BaseModel):
    success: bool
    message: str
    video: VideoRecord


class MessageResponse(BaseModel):
    message: str


class HealthStatus(BaseModel):
    status: str
    timestamp: datetime
    videos: int


class ErrorResponse(BaseModel):
    error: str
