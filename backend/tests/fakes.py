import heapq
import itertools
from typing import Any, Callable, Optional

from errors import GenerationError, NotificationUnavailableError, TranscriptionError


class FakeTimer:
    def __init__(self, fire_at: int, callback: Callable[[], None]):
        self.fire_at = fire_at
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeClock:
    """
    Manually advanced clock with fire-once timers (epoch ms).
    Timers fire in due order when advance()/advance_to() passes their time.
    """

    def __init__(self, start_ms: int = 1_722_160_800_000):  # 2024-07-28T10:00:00Z
        self.now = start_ms
        self._seq = itertools.count()
        self._heap: list[tuple[int, int, FakeTimer]] = []

    def now_ms(self) -> int:
        return self.now

    def call_later(self, delay_ms: int, callback: Callable[[], None]) -> FakeTimer:
        timer = FakeTimer(self.now + delay_ms, callback)
        heapq.heappush(self._heap, (timer.fire_at, next(self._seq), timer))
        return timer

    def advance(self, ms: int) -> None:
        self.advance_to(self.now + ms)

    def advance_to(self, target_ms: int) -> None:
        while self._heap and self._heap[0][0] <= target_ms:
            fire_at, _, timer = heapq.heappop(self._heap)
            self.now = fire_at
            if not timer.cancelled:
                timer.callback()
        self.now = target_ms

    def armed(self) -> int:
        return sum(1 for _, _, t in self._heap if not t.cancelled)


class RecordingNotifier:
    def __init__(self, available: bool = True):
        self.available = available
        self.delivered: list[tuple[str, str, str]] = []

    def deliver(self, title: str, body: str, tag: str) -> None:
        if not self.available:
            raise NotificationUnavailableError("permission not granted")
        self.delivered.append((title, body, tag))

    def tags(self) -> list[str]:
        return [tag for _, _, tag in self.delivered]


class FakeGenerator:
    """
    Scripted StructuredGenerator.

    Queue responses per output model class with `script(Model, value)`; a value
    may be a model instance, a dict (validated into the model) or an exception
    to raise. Unscripted calls raise GenerationError.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict[str, Any], type]] = []
        self._scripts: dict[type, list[Any]] = {}

    def script(self, output_model: type, *values: Any) -> "FakeGenerator":
        self._scripts.setdefault(output_model, []).extend(values)
        return self

    def calls_for(self, output_model: type) -> list[tuple[str, dict[str, Any], type]]:
        return [c for c in self.calls if c[2] is output_model]

    async def generate(self, prompt: str, payload: dict[str, Any], output_model: type) -> Any:
        self.calls.append((prompt, payload, output_model))
        queue = self._scripts.get(output_model)
        if not queue:
            raise GenerationError(f"no scripted response for {output_model.__name__}")
        value = queue.pop(0)
        if isinstance(value, Exception):
            raise value
        if isinstance(value, dict):
            return output_model.model_validate(value)
        return value


class FakeTranscriber:
    def __init__(self, text: Optional[str] = "buy milk", error: Optional[str] = None):
        self.text = text
        self.error = error
        self.calls: list[tuple[bytes, str]] = []

    async def transcribe(self, audio: bytes, mime_type: str) -> str:
        self.calls.append((audio, mime_type))
        if self.error:
            raise TranscriptionError(self.error)
        return self.text
