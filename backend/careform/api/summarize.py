from fastapi import APIRouter, HTTPException
import logging
import uuid
from careform.models.schemas import SummarizeRequest, SummaryResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/summarize", response_model=SummaryResponse)
async def summarize_notes(request: SummarizeRequest):
    """Human-readable summary of caregiver notes, shown before the form is filled."""
    from careform.main import summarizer

    request_id = uuid.uuid4().hex[:8]
    if not request.text:
        raise HTTPException(status_code=400, detail="No text provided")

    logger.info(f"Generating summary: request_id={request_id}, text_length={len(request.text)}")
    summary = await summarizer.summarize(request.text)
    logger.info(f"Summary complete (request_id={request_id})")
    return summary
