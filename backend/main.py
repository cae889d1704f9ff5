import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import database
from commands import VoiceTasker
from config import Settings, get_settings
from errors import NotFoundError, ValidationError
from llm import AnthropicGenerator, StructuredGenerator
from logging_setup import setup_logging
from models import (
    AddCommandResponse,
    CommandRequest,
    CompleteCommandResponse,
    ConfirmRequest,
    EditCommandResponse,
    Notice,
    NotificationPermission,
    PermissionUpdate,
    SuggestionResult,
    Task,
    TaskCreate,
    TaskUpdate,
)
from notifications import AsyncioClock, NotificationInbox, NotificationScheduler
from resolvers import CompletionResolver, IntentResolver, PrioritySuggester, TaskEditResolver
from task_store import TaskStore
from transcription import Transcriber, WhisperTranscriber

logger = logging.getLogger(__name__)


def build_generator(settings: Settings) -> StructuredGenerator:
    return AnthropicGenerator(
        settings.anthropic_api_key,
        model=settings.anthropic_model,
        max_tokens=settings.max_tokens,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def build_transcriber(settings: Settings) -> Transcriber:
    return WhisperTranscriber(settings.openai_api_key, model=settings.transcription_model)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir)
    database.init_db()

    inbox = NotificationInbox(limit=settings.notice_limit)
    scheduler = NotificationScheduler(
        AsyncioClock(asyncio.get_running_loop()),
        inbox,
        fallback=inbox.post_fallback,
        reminder_lead_ms=settings.reminder_lead_minutes * 60 * 1000,
    )
    store = TaskStore(scheduler, database.SqlitePersistence())
    store.load()

    generator = build_generator(settings)
    app.state.inbox = inbox
    app.state.tasker = VoiceTasker(
        store,
        build_transcriber(settings),
        IntentResolver(generator),
        TaskEditResolver(generator),
        CompletionResolver(generator),
        PrioritySuggester(generator),
    )
    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY not configured; voice commands will use fallbacks")
    yield
    # Shutdown
    scheduler.shutdown()

app = FastAPI(lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": "Task not found"})


@app.exception_handler(ValidationError)
async def validation_handler(_request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


def get_tasker(request: Request) -> VoiceTasker:
    return request.app.state.tasker


def get_inbox(request: Request) -> NotificationInbox:
    return request.app.state.inbox


# Handlers touching the store are async so they run on the event loop thread,
# the same thread the notification timers fire on.

@app.get("/tasks")
async def get_tasks(tasker: VoiceTasker = Depends(get_tasker)) -> list[Task]:
    return tasker.store.list()


@app.post("/tasks")
async def create_task(task_data: TaskCreate, tasker: VoiceTasker = Depends(get_tasker)) -> Task:
    return tasker.store.add(task_data.text, task_data.due_at, task_data.extracted_time_description)


@app.patch("/tasks/{task_id}")
async def update_task(task_id: str, task_data: TaskUpdate, tasker: VoiceTasker = Depends(get_tasker)) -> Task:
    return tasker.store.edit(task_id, task_data)


@app.post("/tasks/{task_id}/toggle")
async def toggle_task(task_id: str, tasker: VoiceTasker = Depends(get_tasker)) -> Task:
    return tasker.store.toggle(task_id)


@app.delete("/tasks/{task_id}")
async def delete_task(task_id: str, tasker: VoiceTasker = Depends(get_tasker)) -> dict:
    if not tasker.store.remove(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}


@app.post("/commands/add")
async def add_command(body: CommandRequest, tasker: VoiceTasker = Depends(get_tasker)) -> AddCommandResponse:
    """Add-task voice command: creates a task, or proposes an update to an existing one."""
    return await tasker.add_from_command(body.text, body.audio_data_uri)


@app.post("/commands/confirm")
async def confirm_command(body: ConfirmRequest, tasker: VoiceTasker = Depends(get_tasker)) -> Task:
    """Apply a proposal returned by /commands/add: update the matched task or create a new one."""
    return tasker.confirm(body.proposal, body.choice)


@app.post("/tasks/{task_id}/commands/edit")
async def edit_command(
    task_id: str, body: CommandRequest, tasker: VoiceTasker = Depends(get_tasker)
) -> EditCommandResponse:
    return await tasker.edit_from_command(task_id, body.text, body.audio_data_uri)


@app.post("/commands/complete")
async def complete_command(body: CommandRequest, tasker: VoiceTasker = Depends(get_tasker)) -> CompleteCommandResponse:
    return await tasker.complete_from_command(body.text, body.audio_data_uri)


@app.get("/suggestion")
async def get_suggestion(tasker: VoiceTasker = Depends(get_tasker)) -> SuggestionResult:
    """What should I do next?"""
    return await tasker.suggest_next()


@app.get("/notifications")
async def get_notifications(inbox: NotificationInbox = Depends(get_inbox)) -> list[Notice]:
    """Fetch (and clear) notices produced by reminders since the last poll."""
    return inbox.drain()


@app.get("/notifications/permission")
async def get_permission(inbox: NotificationInbox = Depends(get_inbox)) -> NotificationPermission:
    return NotificationPermission(granted=inbox.permission_granted, pending=inbox.pending())


@app.put("/notifications/permission")
async def set_permission(body: PermissionUpdate, inbox: NotificationInbox = Depends(get_inbox)) -> NotificationPermission:
    inbox.permission_granted = body.granted
    logger.info("Notification permission granted=%s", body.granted)
    return NotificationPermission(granted=inbox.permission_granted, pending=inbox.pending())


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000, log_config=None)
