"""
Interpretation of voice commands via structured generation.

Each resolver makes one (sometimes two) model calls, validates the result
against the current tasks and always returns a complete result object. Model
failures are turned into fallback results tagged ResolutionStatus.FALLBACK;
nothing in here raises to the caller.
"""
import logging
from typing import Optional, Sequence

from errors import GenerationError, SchemaViolationError
from llm import StructuredGenerator
from models import (
    CompletionOutput,
    CompletionResult,
    DueChange,
    EditOutput,
    EditResult,
    IntentOutput,
    IntentResult,
    ResolutionStatus,
    SuggestionOutput,
    SuggestionResult,
    Task,
    TimeExtractionOutput,
)
from prompts import (
    DISAMBIGUATE_PROMPT,
    EDIT_TASK_PROMPT,
    EXTRACT_TIME_PROMPT,
    FALLBACK_TIME_PROMPT,
    MARK_COMPLETE_PROMPT,
    PRIORITIZE_PROMPT,
)
from timeutil import iso_to_ms, ms_to_iso

logger = logging.getLogger(__name__)

DueTime = tuple[Optional[int], Optional[str]]


def format_task_list(tasks: Sequence[Task], include_created: bool = False) -> str:
    """Render tasks for a prompt: id, text and due time per task."""
    if not tasks:
        return "(No existing tasks)"
    lines = []
    for task in tasks:
        lines.append(f"- Task ID: {task.id}")
        lines.append(f'  Text: "{task.text}"')
        if include_created:
            lines.append(f"  Created At: {ms_to_iso(task.created_at)}")
        if task.due_at is not None:
            lines.append(f"  Current Due: {ms_to_iso(task.due_at)} ({task.extracted_time_description or 'no description'})")
        else:
            lines.append("  No current due date")
    return "\n".join(lines)


def resolve_due(change: DueChange, due_at_iso: Optional[str], description: Optional[str], current: DueTime) -> DueTime:
    """Apply a due_change from the model to the current (due_at, description)."""
    if change == DueChange.KEEP:
        return current
    if change == DueChange.CLEAR:
        return None, None
    if not due_at_iso:
        raise SchemaViolationError("due_change is 'set' but due_at_iso is missing")
    try:
        return iso_to_ms(due_at_iso), description
    except ValueError as e:
        raise SchemaViolationError(f"Unparseable due_at_iso: {due_at_iso!r}") from e


async def extract_time(
    generator: StructuredGenerator,
    text: str,
    reference_time: int,
    prompt: str = EXTRACT_TIME_PROMPT,
) -> DueTime:
    """Ask the model for the due time mentioned in text. Raises GenerationError on failure."""
    output = await generator.generate(
        prompt,
        {"text": text, "reference_time": ms_to_iso(reference_time)},
        TimeExtractionOutput,
    )
    if not output.due_at_iso:
        return None, None
    return resolve_due(DueChange.SET, output.due_at_iso, output.time_description, (None, None))


class IntentResolver:
    """Decides whether a command creates a new task or extends an existing incomplete one."""

    def __init__(self, generator: StructuredGenerator):
        self._generator = generator

    async def resolve(self, command_text: str, reference_time: int, existing_tasks: Sequence[Task]) -> IntentResult:
        if not existing_tasks:
            return await self._new_task_only(command_text, reference_time)

        try:
            output = await self._generator.generate(
                DISAMBIGUATE_PROMPT,
                {
                    "command": command_text,
                    "reference_time": ms_to_iso(reference_time),
                    "task_list": format_task_list(existing_tasks),
                },
                IntentOutput,
            )
            return self._to_result(output, command_text, existing_tasks)
        except GenerationError as e:
            logger.warning("Intent disambiguation failed: %s", e)
            return await self._fallback(command_text, reference_time)
        except Exception:
            logger.exception("Unexpected error in intent disambiguation")
            return await self._fallback(command_text, reference_time)

    def _to_result(self, output: IntentOutput, command_text: str, existing_tasks: Sequence[Task]) -> IntentResult:
        by_id = {task.id: task for task in existing_tasks}
        matched = by_id.get(output.matched_task_id) if output.is_edit and output.matched_task_id else None
        proposed_text = output.proposed_text.strip()

        if matched is not None:
            due_at, description = resolve_due(
                output.due_change,
                output.due_at_iso,
                output.time_description,
                (matched.due_at, matched.extracted_time_description),
            )
            return IntentResult(
                is_edit=True,
                matched_task_id=matched.id,
                proposed_text=proposed_text or matched.text,
                proposed_due_at=due_at,
                proposed_time_description=description,
                reason=output.reason or f"This seems to update the task '{matched.text}'.",
            )

        reason = output.reason or "This appears to be a new task."
        if output.is_edit:
            logger.info("Model matched unknown task id=%s; treating as new task", output.matched_task_id)
            reason = "The suggested task to update was not found; treated as a new task."
        due_at, description = resolve_due(output.due_change, output.due_at_iso, output.time_description, (None, None))
        return IntentResult(
            is_edit=False,
            proposed_text=proposed_text or command_text,
            proposed_due_at=due_at,
            proposed_time_description=description,
            reason=reason,
        )

    async def _new_task_only(self, command_text: str, reference_time: int) -> IntentResult:
        try:
            due_at, description = await extract_time(self._generator, command_text, reference_time)
        except Exception as e:
            logger.warning("Time extraction failed for new task: %s", e)
            return IntentResult(
                status=ResolutionStatus.FALLBACK,
                proposed_text=command_text,
                reason="No existing tasks; treated as new. Time could not be extracted.",
            )
        return IntentResult(
            proposed_text=command_text,
            proposed_due_at=due_at,
            proposed_time_description=description,
            reason="No existing tasks; treated as new.",
        )

    async def _fallback(self, command_text: str, reference_time: int) -> IntentResult:
        # Best effort: a second, simpler call just for the time
        try:
            due_at, description = await extract_time(
                self._generator, command_text, reference_time, prompt=FALLBACK_TIME_PROMPT
            )
        except Exception as e:
            logger.warning("Fallback time extraction failed: %s", e)
            due_at, description = None, None
        return IntentResult(
            status=ResolutionStatus.FALLBACK,
            proposed_text=command_text,
            proposed_due_at=due_at,
            proposed_time_description=description,
            reason="Error in advanced processing; treated as a new task.",
        )


class TaskEditResolver:
    """Works out how a command changes one specific task."""

    def __init__(self, generator: StructuredGenerator):
        self._generator = generator

    async def resolve(self, command_text: str, current_task: Task, reference_time: int) -> EditResult:
        try:
            output = await self._generator.generate(
                EDIT_TASK_PROMPT,
                {
                    "command": command_text,
                    "reference_time": ms_to_iso(reference_time),
                    "current_text": current_task.text,
                    "current_due": ms_to_iso(current_task.due_at) or "none",
                    "current_description": current_task.extracted_time_description or "none",
                },
                EditOutput,
            )
            return self._to_result(output, current_task)
        except Exception as e:
            if isinstance(e, GenerationError):
                logger.warning("Edit resolution failed for task %s: %s", current_task.id, e)
            else:
                logger.exception("Unexpected error resolving edit for task %s", current_task.id)
            return self._unchanged(current_task, f"Error processing edit: {e}", error=str(e))

    def _to_result(self, output: EditOutput, current_task: Task) -> EditResult:
        current_due = (current_task.due_at, current_task.extracted_time_description)
        if output.no_changes_made:
            return EditResult(
                updated_text=current_task.text,
                new_due_at=current_task.due_at,
                new_time_description=current_task.extracted_time_description,
                change_summary=output.change_summary or "No changes detected in the command.",
                no_changes_made=True,
            )

        text = output.updated_text.strip() or current_task.text
        due_at, description = resolve_due(output.due_change, output.due_at_iso, output.time_description, current_due)
        if text == current_task.text and (due_at, description) == current_due:
            return EditResult(
                updated_text=text,
                new_due_at=due_at,
                new_time_description=description,
                change_summary="No changes detected in the command.",
                no_changes_made=True,
            )
        return EditResult(
            updated_text=text,
            new_due_at=due_at,
            new_time_description=description,
            change_summary=output.change_summary or "Task updated.",
        )

    @staticmethod
    def _unchanged(task: Task, summary: str, error: Optional[str] = None) -> EditResult:
        return EditResult(
            status=ResolutionStatus.FALLBACK,
            updated_text=task.text,
            new_due_at=task.due_at,
            new_time_description=task.extracted_time_description,
            change_summary=summary,
            no_changes_made=True,
            error=error,
        )


class CompletionResolver:
    """Finds which incomplete task a "done" command refers to."""

    def __init__(self, generator: StructuredGenerator):
        self._generator = generator

    async def resolve(self, command_text: str, incomplete_tasks: Sequence[Task]) -> CompletionResult:
        if not incomplete_tasks:
            return CompletionResult(reason="No pending tasks to complete.")
        try:
            output = await self._generator.generate(
                MARK_COMPLETE_PROMPT,
                {"command": command_text, "task_list": format_task_list(incomplete_tasks)},
                CompletionOutput,
            )
        except Exception as e:
            logger.warning("Completion resolution failed: %s", e)
            return CompletionResult(status=ResolutionStatus.FALLBACK, reason=f"Failed to process task completion: {e}")

        ids = {task.id for task in incomplete_tasks}
        if output.completed_task_id and output.completed_task_id not in ids:
            logger.info("Model picked unknown task id=%s for completion", output.completed_task_id)
            return CompletionResult(reason="The identified task is not in your pending tasks.")
        return CompletionResult(completed_task_id=output.completed_task_id, reason=output.reason)


class PrioritySuggester:
    """Suggests the single incomplete task to work on next."""

    def __init__(self, generator: StructuredGenerator):
        self._generator = generator

    async def suggest(self, tasks: Sequence[Task], reference_time: int) -> SuggestionResult:
        incomplete = [task for task in tasks if not task.completed]
        if not incomplete:
            return SuggestionResult(reason="You have no pending tasks!")
        try:
            output = await self._generator.generate(
                PRIORITIZE_PROMPT,
                {
                    "reference_time": ms_to_iso(reference_time),
                    "task_list": format_task_list(incomplete, include_created=True),
                },
                SuggestionOutput,
            )
        except Exception as e:
            logger.warning("Priority suggestion failed: %s", e)
            return SuggestionResult(status=ResolutionStatus.FALLBACK, reason=f"Error during prioritization: {e}")

        if output.no_specific_suggestion or not output.suggested_task_id:
            return SuggestionResult(reason=output.reason or "No specific task suggestion at this time.")
        matched = next((task for task in incomplete if task.id == output.suggested_task_id), None)
        if matched is None:
            return SuggestionResult(reason="AI suggested a task ID that was not found in the provided list.")
        return SuggestionResult(
            suggested_task_id=matched.id,
            suggested_task_text=matched.text,
            reason=output.reason,
            no_specific_suggestion=False,
        )
