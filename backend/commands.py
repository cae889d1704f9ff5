"""
Voice command workflows: transcription -> resolver -> task store.

Resolver failures come back as fallback results and are applied like any other
result. Only task store errors (ValidationError, NotFoundError) propagate.
"""
import logging
from typing import Callable, Literal, Optional

from errors import TranscriptionError
from models import (
    AddCommandResponse,
    CompleteCommandResponse,
    EditCommandResponse,
    IntentResult,
    SuggestionResult,
    Task,
)
from resolvers import CompletionResolver, IntentResolver, PrioritySuggester, TaskEditResolver
from task_store import TaskStore
from timeutil import now_ms
from transcription import Transcriber, decode_data_uri

logger = logging.getLogger(__name__)


class VoiceTasker:
    def __init__(
        self,
        store: TaskStore,
        transcriber: Transcriber,
        intent_resolver: IntentResolver,
        edit_resolver: TaskEditResolver,
        completion_resolver: CompletionResolver,
        suggester: PrioritySuggester,
        *,
        clock: Callable[[], int] = now_ms,
    ):
        self.store = store
        self._transcriber = transcriber
        self._intent = intent_resolver
        self._edit = edit_resolver
        self._completion = completion_resolver
        self._suggester = suggester
        self._clock = clock

    async def command_text(self, text: Optional[str], audio_data_uri: Optional[str]) -> str:
        """Return the command text, transcribing the recording when no text is given."""
        if text and text.strip():
            return text.strip()
        if not audio_data_uri:
            raise TranscriptionError("No command text or audio provided")
        mime_type, audio = decode_data_uri(audio_data_uri)
        return await self._transcriber.transcribe(audio, mime_type)

    async def add_from_command(self, text: Optional[str] = None, audio_data_uri: Optional[str] = None) -> AddCommandResponse:
        """
        New-task command. A create-intent is applied right away; an edit-intent
        is returned unapplied so the user can confirm it (see confirm()).
        """
        try:
            command = await self.command_text(text, audio_data_uri)
        except TranscriptionError as e:
            logger.warning("Add command not transcribed: %s", e)
            return AddCommandResponse(error=str(e))

        intent = await self._intent.resolve(command, self._clock(), self.store.incomplete())
        logger.info("Intent resolved status=%s is_edit=%s reason=%s", intent.status.value, intent.is_edit, intent.reason)

        if intent.is_edit:
            return AddCommandResponse(transcript=command, intent=intent, pending_confirmation=True)

        task = self.store.add(intent.proposed_text, intent.proposed_due_at, intent.proposed_time_description)
        return AddCommandResponse(transcript=command, intent=intent, task=task)

    def confirm(self, proposal: IntentResult, choice: Literal["update", "create_new"]) -> Task:
        if choice == "update" and proposal.is_edit and proposal.matched_task_id:
            return self.store.edit(
                proposal.matched_task_id,
                {
                    "text": proposal.proposed_text,
                    "due_at": proposal.proposed_due_at,
                    "extracted_time_description": proposal.proposed_time_description,
                },
            )
        return self.store.add(proposal.proposed_text, proposal.proposed_due_at, proposal.proposed_time_description)

    async def edit_from_command(
        self, task_id: str, text: Optional[str] = None, audio_data_uri: Optional[str] = None
    ) -> EditCommandResponse:
        task = self.store.get(task_id)
        try:
            command = await self.command_text(text, audio_data_uri)
        except TranscriptionError as e:
            logger.warning("Edit command not transcribed: %s", e)
            return EditCommandResponse(task=task, error=str(e))

        result = await self._edit.resolve(command, task, self._clock())
        if result.no_changes_made:
            return EditCommandResponse(transcript=command, result=result, task=task)

        updated = self.store.edit(
            task_id,
            {
                "text": result.updated_text,
                "due_at": result.new_due_at,
                "extracted_time_description": result.new_time_description,
            },
        )
        return EditCommandResponse(transcript=command, result=result, task=updated)

    async def complete_from_command(
        self, text: Optional[str] = None, audio_data_uri: Optional[str] = None
    ) -> CompleteCommandResponse:
        incomplete = self.store.incomplete()
        if not incomplete:
            return CompleteCommandResponse(message="No pending tasks to complete.")
        try:
            command = await self.command_text(text, audio_data_uri)
        except TranscriptionError as e:
            logger.warning("Completion command not transcribed: %s", e)
            return CompleteCommandResponse(error="Could not understand voice command for completion.")

        result = await self._completion.resolve(command, incomplete)
        if result.completed_task_id is None:
            return CompleteCommandResponse(
                transcript=command,
                message=result.reason or "Couldn't identify a task to complete from your voice input.",
            )

        task = self.store.get(result.completed_task_id)
        if task.completed:
            return CompleteCommandResponse(transcript=command, message=f'"{task.text}" is already done.')
        task = self.store.toggle(task.id)
        return CompleteCommandResponse(
            transcript=command,
            completed_task=task,
            message=f'"{task.text}" marked as done.',
        )

    async def suggest_next(self) -> SuggestionResult:
        return await self._suggester.suggest(self.store.incomplete(), self._clock())
