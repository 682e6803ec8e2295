import asyncio
import logging
from io import BytesIO
from pathlib import Path
from typing import List, NamedTuple, Optional, Tuple, Union

import fitz  # PyMuPDF
import pytesseract
from PIL import Image

from careform.config import settings
from careform.services.progress_service import ProgressService, ProgressTracker

logger = logging.getLogger(__name__)

# Global semaphore for heavy OCR/PDF operations
OCR_SEMAPHORE = asyncio.Semaphore(2)

TEXT_LAYER_MIN_CHARS = 100
TEXT_LAYER_CONFIDENCE = 95.0
PAGE_BREAK = "\n\n--- Page Break ---\n\n"

PDF_MIME_TYPE = "application/pdf"


class UnsupportedFileTypeError(ValueError):
    pass


class OCROutput(NamedTuple):
    text: str
    confidence: float
    page_count: int
    method: str  # pdf-text | pdf-ocr | image-ocr


def is_supported_mime_type(mime_type: Optional[str]) -> bool:
    return bool(mime_type) and (mime_type == PDF_MIME_TYPE or mime_type.startswith("image/"))


def _ocr_image(img: Image.Image) -> Tuple[str, float]:
    """Run Tesseract once for the text and once for per-word confidences (blocking)."""
    tesseract_config = settings.tesseract_config
    text = pytesseract.image_to_string(img, config=tesseract_config)
    data = pytesseract.image_to_data(img, config=tesseract_config, output_type=pytesseract.Output.DICT)

    # Non-word boxes report conf -1
    word_confidences = [
        float(conf)
        for conf, word in zip(data.get("conf", []), data.get("text", []))
        if str(word).strip() and float(conf) >= 0
    ]
    confidence = sum(word_confidences) / len(word_confidences) if word_confidences else 0.0
    return text, confidence


class OCRService:
    """Turns an uploaded PDF or image into a transcript plus a 0-100 confidence score."""

    def __init__(self, progress_service: Optional[ProgressService] = None, dpi: Optional[int] = None):
        self.progress_service = progress_service
        self.dpi = dpi or settings.ocr_render_dpi

    async def extract_text(self, file_path: Union[str, Path], mime_type: str) -> OCROutput:
        file_path = Path(file_path)
        progress = ProgressTracker("OCR", self.progress_service)

        if mime_type == PDF_MIME_TYPE:
            return await self._extract_pdf(file_path, progress)
        if mime_type and mime_type.startswith("image/"):
            return await self._extract_image(file_path, progress)

        raise UnsupportedFileTypeError(f"Unsupported file type: {mime_type}")

    async def _ocr(self, img: Image.Image) -> Tuple[str, float]:
        async with OCR_SEMAPHORE:
            return await asyncio.to_thread(_ocr_image, img)

    async def _extract_pdf(self, file_path: Path, progress: ProgressTracker) -> OCROutput:
        await progress.start("Starting PDF extraction")

        await progress.update(10, "Reading PDF text layer")
        doc = await asyncio.to_thread(fitz.open, str(file_path))
        try:
            page_count = len(doc)
            text = "".join(page.get_text("text") for page in doc)

            await progress.update(50, f"Found {page_count} pages, checking for text content")
            if len(text.strip()) > TEXT_LAYER_MIN_CHARS:
                await progress.complete(f"Extracted {len(text)} chars via text layer")
                logger.info(f"PDF extraction complete (text layer): pages={page_count}, chars={len(text)}")
                return OCROutput(text=text, confidence=TEXT_LAYER_CONFIDENCE, page_count=page_count, method="pdf-text")

            await progress.update(60, "Text layer empty, rendering pages for OCR")
            results: List[Tuple[str, float]] = []
            for page_num in range(page_count):
                page = doc.load_page(page_num)
                async with OCR_SEMAPHORE:
                    pix = await asyncio.to_thread(page.get_pixmap, dpi=self.dpi)
                img = Image.open(BytesIO(pix.tobytes("png")))

                percent = 60 + int((page_num / page_count) * 35)
                await progress.update(percent, f"OCR page {page_num + 1} of {page_count}")
                page_text, page_confidence = await self._ocr(img)
                logger.debug(f"Page {page_num + 1} OCR confidence: {page_confidence:.1f}%")
                results.append((page_text, page_confidence))
        finally:
            doc.close()

        full_text = PAGE_BREAK.join(page_text for page_text, _ in results)
        avg_confidence = sum(conf for _, conf in results) / len(results) if results else 0.0

        await progress.complete(f"OCR complete: {avg_confidence:.1f}% confidence")
        logger.info(
            f"PDF extraction complete (OCR): pages={page_count}, chars={len(full_text)}, "
            f"confidence={avg_confidence:.1f}"
        )
        return OCROutput(text=full_text, confidence=avg_confidence, page_count=page_count, method="pdf-ocr")

    async def _extract_image(self, file_path: Path, progress: ProgressTracker) -> OCROutput:
        await progress.start("Starting image OCR")

        img = await asyncio.to_thread(Image.open, file_path)
        await progress.update(30, "Recognizing text")
        text, confidence = await self._ocr(img)

        await progress.complete(f"OCR complete: {confidence:.1f}% confidence")
        logger.info(f"Image OCR complete: chars={len(text)}, confidence={confidence:.1f}")
        return OCROutput(text=text, confidence=confidence, page_count=1, method="image-ocr")
