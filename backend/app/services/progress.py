"""
Progress reporting for long-running batch initiation.

Events carry a fixed step name and a progress percentage that never
decreases; a stream ends with exactly one `complete` or `error` event.
"""
import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


PROGRESS_STEPS: Dict[str, int] = {
    "validating": 5,
    "fetching_user_data": 10,
    "checking_session": 15,
    "invoking_ai": 25,
    "analyzing": 40,
    "executing_tools": 55,
    "creating_session": 70,
    "enriching_data": 80,
    "finalizing": 90,
    "complete": 100,
}

TERMINAL_STEPS = ("complete", "error")


class ProgressEvent(BaseModel):
    step: str
    message: str
    progress: int = Field(ge=0, le=100)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Optional[Dict[str, Any]] = None

    def to_sse(self) -> str:
        return f"data: {json.dumps(self.model_dump(mode='json', exclude_none=True))}\n\n"


class ProgressReporter:
    """
    Emits ordered progress events to an optional sink.

    Unknown steps are rejected, progress is clamped to be non-decreasing and
    anything emitted after a terminal event is dropped.
    """

    def __init__(self, sink: Optional[Callable[[ProgressEvent], Awaitable[None]]] = None):
        self.sink = sink
        self.progress = 0
        self.finished = False
        self.events = []

    async def emit(self, step: str, message: str, metadata: Optional[Dict[str, Any]] = None):
        if step not in PROGRESS_STEPS and step != "error":
            raise ValueError(f"Unknown progress step: {step}")
        if self.finished:
            logger.warning(f"Dropping progress step '{step}' after terminal event")
            return

        if step != "error":
            self.progress = max(self.progress, PROGRESS_STEPS[step])
        event = ProgressEvent(step=step, message=message, progress=self.progress, metadata=metadata)
        self.events.append(event)
        if step in TERMINAL_STEPS:
            self.finished = True

        if self.sink is not None:
            await self.sink(event)

    async def complete(self, message: str = "Processing complete", metadata: Optional[Dict[str, Any]] = None):
        await self.emit("complete", message, metadata)

    async def error(self, message: str, metadata: Optional[Dict[str, Any]] = None):
        await self.emit("error", message, metadata)


class QueueProgressReporter(ProgressReporter):
    """Reporter feeding an asyncio.Queue, drained by a streaming response."""

    def __init__(self):
        self.queue: "asyncio.Queue[ProgressEvent]" = asyncio.Queue()
        super().__init__(sink=self.queue.put)

    async def stream(self) -> AsyncIterator[ProgressEvent]:
        while True:
            event = await self.queue.get()
            yield event
            if event.step in TERMINAL_STEPS:
                break


async def report(reporter: Optional[ProgressReporter], step: str, message: str, metadata: Optional[Dict[str, Any]] = None):
    """Emit on an optional reporter."""
    if reporter is not None:
        await reporter.emit(step, message, metadata)
