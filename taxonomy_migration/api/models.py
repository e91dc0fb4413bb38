"""Pydantic models for API requests and responses."""

from typing import Any, List, Optional
from pydantic import BaseModel, Field
from enum import Enum


class LogTypeEnum(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


# Request Models
class BatchRequest(BaseModel):
    offset: int = Field(default=0, ge=0)
    batch_size: Optional[int] = Field(default=None, ge=1, le=1000)
    dry_run: Optional[bool] = None


class StartRequest(BaseModel):
    batch_size: Optional[int] = Field(default=None, ge=1, le=1000)
    dry_run: Optional[bool] = None


class SettingsUpdate(BaseModel):
    batch_size: int = Field(ge=1, le=1000)


# Response Models
class Envelope(BaseModel):
    """{success, data} wrapper used by every control endpoint."""
    success: bool
    data: Any = Field(default_factory=dict)


class LogEntryResponse(BaseModel):
    timestamp: str
    type: LogTypeEnum
    message: str


class LogResponse(BaseModel):
    entries: List[LogEntryResponse]
    total: int
