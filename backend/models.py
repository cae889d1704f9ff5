from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class Task(BaseModel):
    id: str
    text: str
    completed: bool = False
    created_at: int  # ms since epoch, UTC
    updated_at: Optional[int] = None
    due_at: Optional[int] = None
    extracted_time_description: Optional[str] = None  # e.g. "Tomorrow at 2 PM"

class TaskCreate(BaseModel):
    text: str
    due_at: Optional[int] = None
    extracted_time_description: Optional[str] = None

class TaskUpdate(BaseModel):
    # Partial update: only fields explicitly sent are applied (due_at=None clears the due time)
    text: Optional[str] = None
    completed: Optional[bool] = None
    due_at: Optional[int] = None
    extracted_time_description: Optional[str] = None


# Structured outputs requested from the language model

class DueChange(str, Enum):
    KEEP = "keep"    # due time not mentioned, leave it as it is
    SET = "set"      # a new due time is given in due_at_iso
    CLEAR = "clear"  # the command removes the due time

class TimeExtractionOutput(BaseModel):
    due_at_iso: Optional[str] = None
    time_description: Optional[str] = None

class IntentOutput(BaseModel):
    is_edit: bool
    matched_task_id: Optional[str] = None
    proposed_text: str
    due_change: DueChange = DueChange.KEEP
    due_at_iso: Optional[str] = None
    time_description: Optional[str] = None
    reason: str = ""

class EditOutput(BaseModel):
    updated_text: str
    due_change: DueChange = DueChange.KEEP
    due_at_iso: Optional[str] = None
    time_description: Optional[str] = None
    change_summary: str = ""
    no_changes_made: bool = False

class CompletionOutput(BaseModel):
    completed_task_id: Optional[str] = None
    reason: str = ""

class SuggestionOutput(BaseModel):
    suggested_task_id: Optional[str] = None
    reason: str = ""
    no_specific_suggestion: bool = False


# Resolver results: always fully populated, tagged with how they were produced

class ResolutionStatus(str, Enum):
    RESOLVED = "resolved"
    FALLBACK = "fallback"

class IntentResult(BaseModel):
    status: ResolutionStatus = ResolutionStatus.RESOLVED
    is_edit: bool = False
    matched_task_id: Optional[str] = None
    proposed_text: str
    proposed_due_at: Optional[int] = None
    proposed_time_description: Optional[str] = None
    reason: str = ""

    @model_validator(mode="after")
    def _consistent(self) -> "IntentResult":
        if not self.is_edit:
            self.matched_task_id = None
        if self.proposed_due_at is None:
            self.proposed_time_description = None
        return self

class EditResult(BaseModel):
    status: ResolutionStatus = ResolutionStatus.RESOLVED
    updated_text: str
    new_due_at: Optional[int] = None
    new_time_description: Optional[str] = None
    change_summary: str = ""
    no_changes_made: bool = False
    error: Optional[str] = None

    @model_validator(mode="after")
    def _consistent(self) -> "EditResult":
        if self.new_due_at is None:
            self.new_time_description = None
        return self

class CompletionResult(BaseModel):
    status: ResolutionStatus = ResolutionStatus.RESOLVED
    completed_task_id: Optional[str] = None
    reason: str = ""

class SuggestionResult(BaseModel):
    status: ResolutionStatus = ResolutionStatus.RESOLVED
    suggested_task_id: Optional[str] = None
    suggested_task_text: Optional[str] = None
    reason: str = ""
    no_specific_suggestion: bool = True


# API request/response bodies

class CommandRequest(BaseModel):
    # Either already-transcribed text or a "data:<mime>;base64,..." audio recording
    text: Optional[str] = None
    audio_data_uri: Optional[str] = None

class ConfirmRequest(BaseModel):
    choice: Literal["update", "create_new"]
    proposal: IntentResult

class AddCommandResponse(BaseModel):
    transcript: Optional[str] = None
    intent: Optional[IntentResult] = None
    task: Optional[Task] = None  # set when the command was applied
    pending_confirmation: bool = False
    error: Optional[str] = None

class EditCommandResponse(BaseModel):
    transcript: Optional[str] = None
    result: Optional[EditResult] = None
    task: Optional[Task] = None
    error: Optional[str] = None

class CompleteCommandResponse(BaseModel):
    transcript: Optional[str] = None
    completed_task: Optional[Task] = None
    message: str = ""
    error: Optional[str] = None

class NoticeKind(str, Enum):
    SYSTEM = "system"  # shown as a browser/system notification
    IN_APP = "in_app"  # toast fallback when system notifications are unavailable

class Notice(BaseModel):
    title: str
    body: str
    tag: str
    kind: NoticeKind = NoticeKind.SYSTEM
    created_at: int

class PermissionUpdate(BaseModel):
    granted: bool

class NotificationPermission(BaseModel):
    granted: bool
    pending: int = Field(default=0, description="Notices waiting to be fetched")
