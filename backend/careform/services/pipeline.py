"""
Extraction pipeline.

Strategies are tried in order of decreasing cost-effectiveness for the
given OCR signal, first success wins:

1. vision LLM (image available, multimodal model, OCR confidence < 50)
2. LLM categorizer (OCR confidence < 80)
3. LLM text structuring
4. rule-based extraction, which cannot fail

Any LLM timeout trips the session latch, after which every later LLM step
(in this request and all following ones) is skipped without a network call.
"""

import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, Union

from careform.config import settings
from careform.models.form import ExtractionResult, ParseResult
from careform.services.categorizer import LLMCategorizer
from careform.services.llm_client import LLMClient, is_timeout_error
from careform.services.llm_extractor import LLMTextExtractor
from careform.services.progress_service import ProgressService, ProgressTracker
from careform.services.rule_extractor import RuleBasedExtractor
from careform.services.vision_extractor import VisionExtractor

logger = logging.getLogger(__name__)

VISION_CONFIDENCE_THRESHOLD = 50
CATEGORIZER_CONFIDENCE_THRESHOLD = 80


class SessionUnavailableLatch:
    """One-way flag: once tripped, LLM strategies stay disabled for the process lifetime.

    Only ever flips False -> True, so concurrent requests can share it without
    a lock; a lost race costs one extra timeout at most.
    """

    def __init__(self):
        self._tripped = False

    @property
    def tripped(self) -> bool:
        return self._tripped

    def trip(self) -> None:
        if not self._tripped:
            logger.warning("LLM marked unavailable for this session after a timeout")
        self._tripped = True

    def reset(self) -> None:
        """Test hook; never called by the service itself."""
        self._tripped = False


class ExtractionPipeline:
    def __init__(
        self,
        llm_client: LLMClient,
        latch: SessionUnavailableLatch,
        progress_service: Optional[ProgressService] = None,
        disable_llm: Optional[bool] = None,
        vision_extractor: Optional[VisionExtractor] = None,
        categorizer: Optional[LLMCategorizer] = None,
        text_extractor: Optional[LLMTextExtractor] = None,
        rule_extractor: Optional[RuleBasedExtractor] = None,
    ):
        self.llm = llm_client
        self.latch = latch
        self.progress_service = progress_service
        self.disable_llm = settings.disable_llm if disable_llm is None else disable_llm
        self.vision_extractor = vision_extractor or VisionExtractor(llm_client)
        self.categorizer = categorizer or LLMCategorizer(llm_client, progress_service)
        self.text_extractor = text_extractor or LLMTextExtractor(llm_client)
        self.rule_extractor = rule_extractor or RuleBasedExtractor()

    async def is_llm_available(self) -> bool:
        """Liveness probe, short-circuited by the latch and the disable switch."""
        if self.latch.tripped or self.disable_llm:
            return False
        return await self.llm.check_health()

    def _llm_usable(self, reachable: bool) -> bool:
        return reachable and not self.latch.tripped

    async def _attempt(self, name: str, step: Callable[[], Awaitable[ParseResult]]) -> Optional[ParseResult]:
        try:
            return await step()
        except Exception as e:
            if is_timeout_error(e):
                self.latch.trip()
            logger.warning(f"{name} failed, falling back: {type(e).__name__}: {e}")
            return None

    async def extract(
        self,
        text: str,
        ocr_confidence: float,
        image_path: Optional[Union[str, Path]] = None,
    ) -> ExtractionResult:
        text = text or ""
        progress = ProgressTracker("PARSER", self.progress_service)
        await progress.start("Starting form extraction pipeline")

        await progress.update(10, "Checking Ollama availability")
        reachable = await self.is_llm_available()
        logger.info(
            f"Extraction request: text_length={len(text)}, ocr_confidence={ocr_confidence}, "
            f"image={'yes' if image_path else 'no'}, llm_available={reachable}"
        )

        result: Optional[ParseResult] = None

        if (
            self._llm_usable(reachable)
            and image_path
            and self.llm.is_multimodal_model()
            and ocr_confidence < VISION_CONFIDENCE_THRESHOLD
        ):
            await progress.update(20, "Low OCR confidence - using Vision LLM")
            result = await self._attempt(
                "Vision LLM", lambda: self.vision_extractor.extract(image_path, text, ocr_confidence),
            )
            if result is None:
                await progress.update(30, "Vision LLM failed, falling back")

        if result is None and self._llm_usable(reachable) and ocr_confidence < CATEGORIZER_CONFIDENCE_THRESHOLD:
            await progress.update(25, "Using LLM for intelligent categorization")
            result = await self._attempt(
                "LLM categorizer", lambda: self.categorizer.extract(text, ocr_confidence),
            )
            if result is None:
                await progress.update(50, "LLM categorizer failed, falling back")

        if result is None and self._llm_usable(reachable):
            await progress.update(30, "Using standard LLM structuring")
            result = await self._attempt(
                "LLM structuring", lambda: self.text_extractor.extract(text, ocr_confidence),
            )
            if result is None:
                await progress.update(50, "LLM failed, falling back to rule-based parsing")

        if result is None:
            if not reachable:
                await progress.update(30, "Ollama not available, using rule-based parsing")
            await progress.update(60, "Running pattern matching on OCR text")
            result = self.rule_extractor.extract(text, ocr_confidence, reachable)

        await progress.complete(f"Extraction complete ({result.extraction_method.value})")
        logger.info(
            f"Extraction finished: method={result.extraction_method.value}, "
            f"validation_issues={len(result.validation_issues or [])}"
        )
        return ExtractionResult(**dict(result), raw_text=text)
