"""
Data models for Vault Media
"""
from pydantic import BaseModel, Field
from typing import List, Optional, Dict, Any
from datetime import datetime, timezone
from enum import Enum


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class IngestOutcome(str, Enum):
    """Terminal state of one file-creation event"""
    DISABLED = "disabled"
    NOT_A_FILE = "not_a_file"
    STALE = "stale"
    NOT_PASTED_IMAGE = "not_pasted_image"
    READ_FAILED = "read_failed"
    UNRECOGNIZED = "unrecognized"
    COLLISION = "collision"
    DUPLICATE = "duplicate"
    MOVE_FAILED = "move_failed"
    EDIT_FAILED = "edit_failed"
    NO_ACTIVE_EDITOR = "no_active_editor"
    RENAMED = "renamed"


class PageResult(BaseModel):
    """Outcome of processing one document"""
    path: str
    changed: bool


class BatchReport(BaseModel):
    """Aggregate outcome of a corpus run"""
    total: int
    changed: int = 0
    unchanged: int = 0
    failed: int = 0
    failed_paths: List[str] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    processing_time_ms: float = 0.0

    @property
    def processed(self) -> int:
        return self.changed + self.unchanged + self.failed


class OrphanReport(BaseModel):
    orphans: List[str]
    count: int
    report: str = Field(..., description="Plain text block listing orphaned images")


class CreationEvent(BaseModel):
    """A new binary file appeared in the vault"""
    path: str
    name: str
    created_at_ms: Optional[int] = Field(
        None, description="Creation time, epoch milliseconds; read from the file when omitted"
    )
    is_file: bool = True
    active_document: Optional[str] = Field(
        None, description="Document open in the editor when the event fired"
    )


class IngestResult(BaseModel):
    outcome: IngestOutcome
    old_path: str
    new_path: Optional[str] = None
    message: Optional[str] = None


# API request/response models

class ProcessDocumentRequest(BaseModel):
    path: Optional[str] = Field(None, description="Vault path; defaults to the active document")
    silent: bool = False


class ProcessAllRequest(BaseModel):
    included_file_regex: Optional[str] = None
    excluded_folders: Optional[List[str]] = None


class WorkspaceState(BaseModel):
    active_document: Optional[str] = None
    cursor_line: int = Field(0, ge=0)


class NoticeModel(BaseModel):
    id: int
    message: str
    timeout_ms: Optional[int] = None
    created_at: datetime
    updated_at: Optional[datetime] = None
    dismissed: bool = False


class HealthCheck(BaseModel):
    """Health check response"""
    status: str
    timestamp: datetime
    version: str
    vault_path: str
    media_root: str
    realtime_update: bool
    system_metrics: Dict[str, Any]
