import logging
from typing import Any, List, Optional

from careform.config import settings
from careform.models.schemas import SummaryResponse
from careform.services.json_parsing import parse_llm_json_object
from careform.services.llm_client import LLMClient, LLMClientError
from careform.services.llm_extractor import PROMPT_TEXT_LIMIT

logger = logging.getLogger(__name__)

UNPARSEABLE_SUMMARY = SummaryResponse(
    summary="Unable to generate structured summary from the provided notes.",
    key_points=["OCR text captured but summary generation failed"],
    concerns=[],
    actions=["Review original OCR text manually"],
)

FAILED_SUMMARY = SummaryResponse(
    summary="Summary generation failed. Please review the OCR text below.",
    key_points=["Error occurred during AI processing"],
    concerns=["Unable to auto-detect concerns - please review manually"],
    actions=["Review OCR text and fill form manually or try again"],
)


def build_summary_prompt(text: str) -> str:
    return f"""You are a care coordinator assistant. Read these caregiver notes and create a comprehensive, detailed summary for the care team.

SUMMARY REQUIREMENTS:
1. Write a DETAILED paragraph (4-6 sentences) describing:
   - Overall client status and demeanor
   - Specific observations about health, behavior, and environment
   - Any notable changes from previous visits
   - Quality of interactions and communication

2. Extract key facts as bullet points - be specific with numbers, dates, names when available

3. Identify ALL concerns - health, safety, behavioral, environmental, medication, social

4. List specific follow-up actions with WHO should do WHAT and BY WHEN if mentioned

OUTPUT FORMAT (JSON):
{{
  "summary": "Detailed paragraph covering client status, observations, changes, and interactions",
  "keyPoints": ["Specific fact with details"],
  "concerns": ["Specific concern with context"],
  "actions": ["Specific action item with who/when"]
}}

IMPORTANT:
- Be thorough and detailed - include specific information from the notes
- If there are no concerns, return empty array for "concerns"
- If there are no actions needed, return empty array for "actions"
- Use direct quotes from notes when helpful

CAREGIVER NOTES TO SUMMARIZE:
{(text or "")[:PROMPT_TEXT_LIMIT]}

OUTPUT ONLY VALID JSON:"""


def _string_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item not in (None, "")]


class Summarizer:
    """Free-text summary of caregiver notes. Never raises; failures produce a fallback summary."""

    def __init__(self, llm_client: LLMClient, timeout: Optional[float] = None):
        self.llm = llm_client
        self.timeout = settings.llm_summary_timeout if timeout is None else timeout

    async def summarize(self, text: str) -> SummaryResponse:
        logger.info(f"Generating summary of caregiver notes ({len(text or '')} chars)")

        try:
            response_text = await self.llm.generate(
                build_summary_prompt(text),
                temperature=0.3,
                num_predict=2500,
                timeout=self.timeout,
                json_format=True,
            )
        except LLMClientError as e:
            logger.error(f"Summary generation failed: {type(e).__name__}: {e}")
            return FAILED_SUMMARY.model_copy(deep=True)

        try:
            parsed = parse_llm_json_object(response_text)
        except LLMClientError:
            logger.warning("Failed to parse summary JSON, using fallback")
            return UNPARSEABLE_SUMMARY.model_copy(deep=True)

        summary = SummaryResponse(
            summary=str(parsed.get("summary") or "No summary available"),
            key_points=_string_list(parsed.get("keyPoints")),
            concerns=_string_list(parsed.get("concerns")),
            actions=_string_list(parsed.get("actions")),
        )
        logger.info(
            f"Summary generated: key_points={len(summary.key_points)}, "
            f"concerns={len(summary.concerns)}, actions={len(summary.actions)}"
        )
        return summary
