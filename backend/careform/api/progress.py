from fastapi import APIRouter
from fastapi.responses import StreamingResponse
import asyncio

router = APIRouter()


@router.get("/progress/events")
async def progress_events():
    """SSE endpoint for real-time extraction progress."""
    from careform.main import progress_service

    async def event_generator():
        queue: asyncio.Queue = asyncio.Queue()

        async def send_message(message: str):
            await queue.put(message)

        unsubscribe = await progress_service.subscribe(send_message)

        try:
            yield "event: connected\ndata: {}\n\n"

            while True:
                yield await queue.get()

        except asyncio.CancelledError:
            # Client disconnected
            pass
        finally:
            await unsubscribe()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        }
    )
