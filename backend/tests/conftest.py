from pathlib import Path

import pytest
from unittest.mock import AsyncMock

from careform.services.llm_client import LLMClient
from careform.services.pipeline import SessionUnavailableLatch
from careform.services.progress_service import ProgressService

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"


@pytest.fixture
def mock_llm_client():
    """Mock LLM client: reachable, text-only model, no canned completion."""
    client = AsyncMock(spec=LLMClient)
    client.check_health.return_value = True
    client.list_models.return_value = ["qwen2.5:0.5b"]
    client.is_multimodal_model.return_value = False
    client.model = "qwen2.5:0.5b"
    return client


@pytest.fixture
def latch():
    return SessionUnavailableLatch()


@pytest.fixture
def progress_service():
    return ProgressService()


@pytest.fixture
def templates_dir():
    return TEMPLATES_DIR


@pytest.fixture
def populated_form_data():
    """A fully populated wire-format record, including multi-line narrative text."""
    return {
        "header": {
            "recipientName": "Bob Smith",
            "date": "03/15/2024",
            "time": "10:30 AM",
            "recipientIdentifier": "A-1234",
            "dob": "01/02/1950",
            "location": "Home",
        },
        "careCoordinationType": {"sih": True, "hcbw": False},
        "narrative": {
            "recipientAndVisitObservations": "Client doing well.\nWatching TV & \"happy\" today.",
            "healthEmotionalStatus": "BP 140/90; new med: lisinopril 10mg",
            "reviewOfServices": "Services reviewed, no changes.",
            "progressTowardGoals": "Walking 10 minutes/day, goal met (100%).",
            "additionalNotes": "",
            "followUpTasks": "Call pharmacy\n- refill by 03/20",
        },
        "signature": {
            "careCoordinatorName": "Jane Roe",
            "signature": "J. Roe",
            "dateSigned": "03/15/2024",
        },
    }
