class VoiceTaskerError(Exception):
    """Base class for all application errors."""


class ValidationError(VoiceTaskerError):
    """Bad input to the task store, e.g. empty task text."""


class NotFoundError(VoiceTaskerError):
    """Operation on an unknown task id."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}")
        self.task_id = task_id


class TranscriptionError(VoiceTaskerError):
    """Audio could not be turned into text."""


class GenerationError(VoiceTaskerError):
    """The language model provider failed or timed out."""


class SchemaViolationError(GenerationError):
    """The model answered, but not in the requested shape."""


class NotificationUnavailableError(VoiceTaskerError):
    """Notification delivery is not possible (e.g. permission not granted)."""
