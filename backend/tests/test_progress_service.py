"""Tests for progress broadcasting (SSE) and stage trackers."""

import json
import logging

import pytest
from unittest.mock import AsyncMock

from careform.services.progress_service import ProgressTracker


def _event_data(message: str) -> dict:
    data_line = next(line for line in message.split("\n") if line.startswith("data: "))
    return json.loads(data_line[len("data: "):])


class TestProgressService:
    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, progress_service):
        """Subscribing adds a connection; the returned callable removes it."""
        unsubscribe = await progress_service.subscribe(AsyncMock())
        assert await progress_service.get_active_connections_count() == 1

        await unsubscribe()
        assert await progress_service.get_active_connections_count() == 0

    @pytest.mark.asyncio
    async def test_publish_formats_sse_event(self, progress_service):
        mock_send = AsyncMock()
        await progress_service.subscribe(mock_send)

        await progress_service.publish("OCR", 50, "OCR page 1 of 2")

        mock_send.assert_called_once()
        message = mock_send.call_args[0][0]
        assert message.startswith("event: progress\n")
        assert message.endswith("\n\n")
        assert _event_data(message) == {
            "type": "progress", "stage": "OCR", "percent": 50, "message": "OCR page 1 of 2",
        }

    @pytest.mark.asyncio
    async def test_multiple_subscribers(self, progress_service):
        mock_send1 = AsyncMock()
        mock_send2 = AsyncMock()
        await progress_service.subscribe(mock_send1)
        await progress_service.subscribe(mock_send2)

        await progress_service.publish("PARSER", 100, "done")

        mock_send1.assert_called_once()
        mock_send2.assert_called_once()

    @pytest.mark.asyncio
    async def test_publish_without_subscribers(self, progress_service):
        # Should not raise an error
        await progress_service.publish("PARSER", 0, "start")

    @pytest.mark.asyncio
    async def test_disconnected_subscriber_removed(self, progress_service):
        mock_send = AsyncMock(side_effect=Exception("Connection closed"))
        await progress_service.subscribe(mock_send)

        await progress_service.publish("PARSER", 10, "checking")

        assert await progress_service.get_active_connections_count() == 0


class TestProgressTracker:
    @pytest.mark.asyncio
    async def test_stages_logged_and_published(self, progress_service, caplog):
        mock_send = AsyncMock()
        await progress_service.subscribe(mock_send)
        tracker = ProgressTracker("FILL", progress_service)

        with caplog.at_level(logging.INFO, logger="careform.services.progress_service"):
            await tracker.start("Starting AI form filling")
            await tracker.update(20, "AI is analyzing the notes")
            await tracker.complete("Form ready")

        assert "[FILL] 0% - Starting AI form filling" in caplog.text
        assert "[FILL] 20% - AI is analyzing the notes" in caplog.text

        events = [_event_data(call.args[0]) for call in mock_send.call_args_list]
        assert [e["percent"] for e in events] == [0, 20, 100]
        assert events[-1]["message"].startswith("Form ready (")
        assert events[-1]["message"].endswith("ms)")

    @pytest.mark.asyncio
    async def test_error_resets_percent(self, progress_service):
        mock_send = AsyncMock()
        await progress_service.subscribe(mock_send)

        await ProgressTracker("EXTRACT", progress_service).error("OCR failed")

        event = _event_data(mock_send.call_args[0][0])
        assert event["percent"] == 0
        assert event["message"] == "ERROR: OCR failed"

    @pytest.mark.asyncio
    async def test_tracker_without_service(self, caplog):
        with caplog.at_level(logging.INFO, logger="careform.services.progress_service"):
            await ProgressTracker("OCR").update(30, "Recognizing text")
        assert "[OCR] 30% - Recognizing text" in caplog.text
