"""Scan log entry model, polled by clients to follow a run."""

from datetime import datetime
from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RunStatus(str, Enum):
    """Pipeline run states."""
    CLONING = "cloning"
    SCANNING = "scanning"
    SCANNED = "scanned"
    FIXING = "fixing"
    CREATING_PR = "creating_pr"
    COMPLETED = "completed"
    FAILED = "failed"


class ScanLogEntry(BaseModel):
    """A single timestamped, append-only run event."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    timestamp: datetime = Field(default_factory=datetime.now)
    repo_id: Optional[Union[int, str]] = Field(default=None, alias="repoId")
    username: Optional[str] = None
    status: RunStatus
    message: str
