import json
import asyncio
import time
from typing import Callable, Optional, Set
import logging

logger = logging.getLogger(__name__)


class ProgressService:
    """Broadcasts extraction progress events to SSE subscribers."""

    def __init__(self):
        self._subscribers: Set[Callable] = set()
        self._lock = asyncio.Lock()

    async def subscribe(self, send_func: Callable) -> Callable:
        """Subscribe to progress events. Returns unsubscribe function."""
        async with self._lock:
            self._subscribers.add(send_func)

        async def unsubscribe():
            async with self._lock:
                self._subscribers.discard(send_func)

        return unsubscribe

    async def publish(self, stage: str, percent: int, message: str) -> None:
        """Publish a progress event to every subscriber."""
        async with self._lock:
            subscribers = list(self._subscribers)

        if not subscribers:
            return

        event_data = {
            "type": "progress",
            "stage": stage,
            "percent": percent,
            "message": message,
        }
        # SSE events end with a blank line
        message_text = "\n".join([
            "event: progress",
            f"data: {json.dumps(event_data)}",
            "",
        ]) + "\n"

        disconnected = set()
        for send_func in subscribers:
            try:
                await send_func(message_text)
            except Exception as e:
                logger.warning(f"Failed to send progress event to subscriber: {e}")
                disconnected.add(send_func)

        if disconnected:
            async with self._lock:
                self._subscribers.difference_update(disconnected)

    async def get_active_connections_count(self) -> int:
        async with self._lock:
            return len(self._subscribers)


class ProgressTracker:
    """Stage-scoped progress reporting: logs every step and forwards it to the ProgressService."""

    def __init__(self, operation: str, service: Optional[ProgressService] = None):
        self.operation = operation
        self.service = service
        self._start_time = time.time()

    async def _report(self, percent: int, message: str) -> None:
        logger.info(f"[{self.operation}] {percent}% - {message}")
        if self.service is not None:
            await self.service.publish(self.operation, percent, message)

    async def start(self, message: str) -> None:
        self._start_time = time.time()
        await self._report(0, message)

    async def update(self, percent: int, message: str) -> None:
        await self._report(percent, message)

    async def complete(self, message: str) -> None:
        duration_ms = int((time.time() - self._start_time) * 1000)
        await self._report(100, f"{message} ({duration_ms}ms)")

    async def error(self, message: str) -> None:
        await self._report(0, f"ERROR: {message}")
