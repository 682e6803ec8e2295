from fastapi import APIRouter, HTTPException, UploadFile, File
import asyncio
import logging
import mimetypes
import re
import tempfile
import unicodedata
import uuid
from pathlib import Path
from careform.models.form import ExtractionResult
from careform.models.schemas import FillRequest
from careform.services.ocr import UnsupportedFileTypeError, is_supported_mime_type
from careform.services.progress_service import ProgressTracker
from careform.config import settings

router = APIRouter()
logger = logging.getLogger(__name__)

# Forces the categorizer step for hand-pasted notes
FILL_OCR_CONFIDENCE = 40
VISION_OCR_CONFIDENCE = 50


def _sanitize_filename(filename: str) -> str:
    # Remove null bytes first (prevents "embedded null byte" crashes).
    filename = (filename or "").replace("\x00", "")
    filename = unicodedata.normalize("NFKC", filename)

    # Drop any path components.
    filename = filename.split("/")[-1].split("\\")[-1]
    filename = re.sub(r"[^A-Za-z0-9.\- _()]+", "_", filename).strip()

    if not filename or filename in {".", ".."}:
        return "upload"
    return filename[-180:]


def _resolve_mime_type(file: UploadFile, filename: str) -> str:
    content_type = file.content_type or ""
    if content_type and content_type != "application/octet-stream":
        return content_type
    guessed, _ = mimetypes.guess_type(filename)
    return guessed or content_type


def _write_temp_file(content: bytes, suffix: str) -> Path:
    with tempfile.NamedTemporaryFile(prefix="careform-", suffix=suffix, delete=False) as handle:
        handle.write(content)
        return Path(handle.name)


@router.post("/extract/pdf", response_model=ExtractionResult)
async def extract_from_file(file: UploadFile = File(None, description="Scanned form (PDF or image)")):
    """OCR an uploaded scan and run the extraction pipeline on the transcript."""
    from careform.main import ocr_service, pipeline, progress_service

    request_id = uuid.uuid4().hex[:8]
    if file is None:
        logger.warning(f"Extract request without file (request_id={request_id})")
        raise HTTPException(status_code=400, detail="No file provided")

    safe_filename = _sanitize_filename(file.filename or "")
    mime_type = _resolve_mime_type(file, safe_filename)
    if not is_supported_mime_type(mime_type):
        raise HTTPException(status_code=400, detail=f"Unsupported file type: {mime_type or 'unknown'}. Allowed: PDF, images")

    file_content = await file.read()
    max_size = settings.max_upload_mb * 1024 * 1024
    if len(file_content) > max_size:
        raise HTTPException(status_code=400, detail=f"File too large (max {settings.max_upload_mb}MB)")
    if not file_content:
        raise HTTPException(status_code=400, detail="Empty file")

    logger.info(
        f"Starting extraction: request_id={request_id}, type={mime_type}, "
        f"size={len(file_content) / 1024 / 1024:.2f}MB"
    )
    progress = ProgressTracker("EXTRACT", progress_service)
    await progress.start(f"Processing {safe_filename}")

    temp_path = await asyncio.to_thread(_write_temp_file, file_content, Path(safe_filename).suffix)
    try:
        await progress.update(5, "File uploaded, starting OCR")
        try:
            ocr_result = await ocr_service.extract_text(temp_path, mime_type)
        except UnsupportedFileTypeError as e:
            raise HTTPException(status_code=400, detail=str(e))
        await progress.update(50, f"OCR complete ({ocr_result.confidence:.1f}% confidence)")
        logger.info(
            f"OCR complete: request_id={request_id}, method={ocr_result.method}, "
            f"confidence={ocr_result.confidence:.1f}, pages={ocr_result.page_count}, "
            f"text_length={len(ocr_result.text)}"
        )

        use_vision = mime_type.startswith("image/") and ocr_result.confidence < VISION_OCR_CONFIDENCE
        if use_vision:
            logger.info(f"Low OCR confidence, image passed to pipeline (request_id={request_id})")

        await progress.update(55, "Parsing form data")
        result = await pipeline.extract(
            ocr_result.text,
            ocr_result.confidence,
            image_path=temp_path if use_vision else None,
        )
    except HTTPException:
        await progress.error("Extraction rejected")
        raise
    except Exception as e:
        await progress.error(type(e).__name__)
        logger.error(f"Extraction error (request_id={request_id}): {e}", exc_info=True)
        raise
    finally:
        await asyncio.to_thread(temp_path.unlink, missing_ok=True)

    await progress.complete("Extraction successful")
    logger.info(
        f"Request complete: request_id={request_id}, method={result.extraction_method.value}, "
        f"ollama_available={result.ollama_available}"
    )
    return result


@router.post("/extract/fill", response_model=ExtractionResult)
async def fill_from_text(request: FillRequest):
    """Fill the form from pasted notes. Requires the local LLM."""
    from careform.main import pipeline, progress_service

    request_id = uuid.uuid4().hex[:8]
    if not request.raw_text:
        raise HTTPException(status_code=400, detail="No raw text provided")

    logger.info(f"Filling form from text: request_id={request_id}, text_length={len(request.raw_text)}")
    progress = ProgressTracker("FILL", progress_service)
    await progress.start("Starting AI form filling")

    if not await pipeline.is_llm_available():
        logger.warning(f"Ollama not available for form filling (request_id={request_id})")
        await progress.error("AI filling not available")
        raise HTTPException(
            status_code=503,
            detail="AI filling not available. Ollama is not running. Please start Ollama or use manual fill.",
        )

    await progress.update(20, "AI is analyzing the notes")
    result = await pipeline.extract(request.raw_text, FILL_OCR_CONFIDENCE)

    await progress.complete("Form ready")
    logger.info(f"Form filling complete: request_id={request_id}, method={result.extraction_method.value}")
    return result
