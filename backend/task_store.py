from __future__ import annotations

import logging
import uuid
from typing import Any, Callable, Iterable, Optional, Protocol, Union

from errors import NotFoundError, ValidationError
from models import Task, TaskUpdate
from notifications import MORE_TASKS_TAG, NotificationScheduler
from timeutil import now_ms

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = ("text", "completed", "due_at", "extracted_time_description")


class TaskPersistence(Protocol):
    def load_all(self) -> list[Task]: ...
    def save_all(self, tasks: Iterable[Task]) -> None: ...


def _sort_key(task: Task) -> tuple:
    # Incomplete first, then by due time (or creation time when undated)
    return (task.completed, task.due_at if task.due_at is not None else task.created_at)


def _new_id() -> str:
    return str(uuid.uuid4())


class TaskStore:
    """
    In-process task collection.

    Owns the tasks and keeps them sorted; the notification scheduler only mirrors
    due times. Not thread-safe: all calls are expected from the event loop thread.
    """

    def __init__(
        self,
        scheduler: Optional[NotificationScheduler] = None,
        persistence: Optional[TaskPersistence] = None,
        *,
        clock: Callable[[], int] = now_ms,
        id_factory: Callable[[], str] = _new_id,
    ):
        self._scheduler = scheduler
        self._persistence = persistence
        self._clock = clock
        self._id_factory = id_factory
        self._tasks: dict[str, Task] = {}

    # ---- queries ----

    def list(self) -> list[Task]:
        return [task.model_copy() for task in self._tasks.values()]

    def incomplete(self) -> list[Task]:
        return [task.model_copy() for task in self._tasks.values() if not task.completed]

    def get(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task.model_copy()

    def __len__(self) -> int:
        return len(self._tasks)

    # ---- mutations ----

    def load(self) -> int:
        """Replace the collection with what persistence holds and re-arm future notifications."""
        if self._persistence is None:
            return 0
        loaded = self._persistence.load_all()
        if self._scheduler is not None:
            for task_id in self._tasks:
                self._scheduler.cancel_for(task_id)
        self._tasks = {task.id: task for task in loaded}
        self._resort()
        if self._scheduler is not None:
            for task in self._tasks.values():
                self._scheduler.schedule_for(task)
        logger.info("Loaded %d tasks", len(self._tasks))
        return len(self._tasks)

    def add(self, text: str, due_at: Optional[int] = None, time_description: Optional[str] = None) -> Task:
        if not text or not text.strip():
            raise ValidationError("Task text must not be empty")

        task_id = self._id_factory()
        while task_id in self._tasks:
            task_id = self._id_factory()

        task = Task(
            id=task_id,
            text=text.strip(),
            completed=False,
            created_at=self._clock(),
            due_at=due_at,
            extracted_time_description=time_description if due_at is not None else None,
        )
        self._tasks[task.id] = task
        self._resort()
        if task.due_at is not None and self._scheduler is not None:
            self._scheduler.schedule_for(task)
        logger.info("Task added id=%s due_at=%s", task.id, task.due_at)
        self._save()
        return task.model_copy()

    def toggle(self, task_id: str) -> Task:
        current = self._tasks.get(task_id)
        if current is None:
            raise NotFoundError(task_id)

        task = current.model_copy(update={"completed": not current.completed, "updated_at": self._clock()})
        self._tasks[task_id] = task
        self._resort()

        if self._scheduler is not None:
            if task.completed:
                self._scheduler.cancel_for(task_id)
                if task.due_at is None and any(not t.completed for t in self._tasks.values()):
                    self._scheduler.notify_now("VoiceTasker", "There are more tasks remaining.", MORE_TASKS_TAG)
            elif task.due_at is not None:
                self._scheduler.schedule_for(task)

        logger.info("Task toggled id=%s completed=%s", task_id, task.completed)
        self._save()
        return task.model_copy()

    def remove(self, task_id: str) -> bool:
        task = self._tasks.pop(task_id, None)
        if task is None:
            return False
        if self._scheduler is not None:
            self._scheduler.cancel_for(task_id)
        logger.info("Task removed id=%s", task_id)
        self._save()
        return True

    def edit(self, task_id: str, changes: Union[TaskUpdate, dict[str, Any]]) -> Task:
        """
        Merge a partial update into a task.

        Only fields present in `changes` are applied. An explicit due_at=None
        clears the due time (and its description).
        """
        current = self._tasks.get(task_id)
        if current is None:
            raise NotFoundError(task_id)

        if isinstance(changes, TaskUpdate):
            updates = changes.model_dump(exclude_unset=True)
        else:
            updates = dict(changes)
        updates = {k: v for k, v in updates.items() if k in EDITABLE_FIELDS}

        if "text" in updates:
            text = updates["text"]
            if text is None or not text.strip():
                raise ValidationError("Task text must not be empty")
            updates["text"] = text.strip()
        if "completed" in updates and updates["completed"] is None:
            del updates["completed"]

        task = current.model_copy(update={**updates, "updated_at": self._clock()})
        if task.due_at is None and task.extracted_time_description is not None:
            task = task.model_copy(update={"extracted_time_description": None})

        self._tasks[task_id] = task
        self._resort()

        if self._scheduler is not None:
            # Armed timers keep the text and description they were armed with
            if updates.get("completed") is True:
                self._scheduler.cancel_for(task_id)
            elif any(field in updates for field in EDITABLE_FIELDS):
                self._scheduler.schedule_for(task)

        logger.info("Task edited id=%s fields=%s", task_id, sorted(updates))
        self._save()
        return task.model_copy()

    # ---- internals ----

    def _resort(self) -> None:
        ordered = sorted(self._tasks.values(), key=_sort_key)
        self._tasks = {task.id: task for task in ordered}

    def _save(self) -> None:
        if self._persistence is None:
            return
        try:
            self._persistence.save_all(self._tasks.values())
        except Exception:
            logger.exception("Failed to save tasks; in-memory state kept")
