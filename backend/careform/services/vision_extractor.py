import asyncio
import base64
import logging
import time
from pathlib import Path
from typing import Optional, Union

from careform.config import settings
from careform.models.form import ExtractionMethod, ParseResult
from careform.services.json_parsing import parse_llm_json
from careform.services.llm_client import LLMClient
from careform.services.llm_extractor import build_parse_result, example_form_json

logger = logging.getLogger(__name__)

OCR_HINT_LIMIT = 500
OCR_HINT_MIN_CHARS = 10

VISION_PROMPT_SHAPE = example_form_json(
    header__recipientName="...",
    header__date="...",
    header__time="...",
    header__recipientIdentifier="...",
    header__dob="...",
    header__location="...",
    narrative__recipientAndVisitObservations="...",
    narrative__healthEmotionalStatus="...",
    narrative__reviewOfServices="...",
    narrative__progressTowardGoals="...",
    narrative__additionalNotes="...",
    narrative__followUpTasks="...",
    signature__careCoordinatorName="...",
    signature__signature="...",
    signature__dateSigned="...",
)


def build_vision_prompt(ocr_text: Optional[str] = None) -> str:
    """Vision prompt; the OCR transcript is only a low-weight hint."""
    ocr_hint = ""
    if ocr_text and len(ocr_text) > OCR_HINT_MIN_CHARS:
        ocr_hint = (
            f"\nOCR hint (may be inaccurate): {ocr_text[:OCR_HINT_LIMIT]}"
            "\nDo not copy the OCR hint unless the image agrees with it."
        )

    return f"""Look at this handwritten form image and extract data into JSON.{ocr_hint}

Read the handwriting in the image directly.

Extract:
- Name, Date (MM/DD/YYYY), Time, ID, DOB, Location
- SIH: true/false, HCBW: true/false
- All handwritten notes text
- Use empty string "" for anything you cannot read

Return ONLY JSON like:
{VISION_PROMPT_SHAPE}

JSON OUTPUT:"""


class VisionExtractor:
    """Sends the page image to a multimodal model that reads the handwriting itself."""

    method = ExtractionMethod.vision_llm

    def __init__(self, llm_client: LLMClient, timeout: Optional[float] = None):
        self.llm = llm_client
        self.timeout = settings.llm_vision_timeout if timeout is None else timeout

    async def _encode_image(self, image_path: Union[str, Path]) -> str:
        image_bytes = await asyncio.to_thread(Path(image_path).read_bytes)
        return base64.b64encode(image_bytes).decode("ascii")

    async def extract(self, image_path: Union[str, Path], ocr_text: str, ocr_confidence: float) -> ParseResult:
        logger.info(f"Using vision LLM for handwriting recognition (ocr_confidence={ocr_confidence})")

        encoded_image = await self._encode_image(image_path)
        prompt = build_vision_prompt(ocr_text)

        start_time = time.time()
        response_text = await self.llm.generate(
            prompt,
            images=[encoded_image],
            temperature=0.1,
            num_predict=2000,
            stop=["\n\n"],
            timeout=self.timeout,
        )
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"Vision LLM raw response: {len(response_text)} chars in {duration_ms}ms")

        parsed = parse_llm_json(response_text)
        result = build_parse_result(parsed, ocr_confidence, self.method)

        logger.info(f"Vision LLM extraction successful ({duration_ms}ms)")
        return result
