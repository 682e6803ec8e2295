from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
import logging

from careform.config import settings
from careform.services.llm_client import LLMClient
from careform.services.ocr import OCRService
from careform.services.pipeline import ExtractionPipeline, SessionUnavailableLatch
from careform.services.progress_service import ProgressService
from careform.services.summarizer import Summarizer
from careform.services.template_mapping import TemplateMappingService
from careform.api import health, extract, summarize, templates, progress

# Configure logging
logging.basicConfig(level=settings.log_level.upper())
logger = logging.getLogger(__name__)

# Global services
llm_client = LLMClient()
progress_service = ProgressService()
latch = SessionUnavailableLatch()
pipeline = ExtractionPipeline(llm_client, latch, progress_service)
ocr_service = OCRService(progress_service)
summarizer = Summarizer(llm_client)
template_service = TemplateMappingService()


@asynccontextmanager
async def lifespan(app: FastAPI):
    llm_config = settings.get_llm_config()
    logger.info(
        f"Application started: model={llm_config['model']}, base_url={llm_config['base_url']}, "
        f"llm_disabled={llm_config['disabled']}, multimodal={llm_client.is_multimodal_model()}"
    )

    yield

    logger.info("Application shutdown")


# Create FastAPI app
app = FastAPI(
    title="Careform API",
    description="Care coordination form extraction - OCR, local LLM structuring and rule-based fallback",
    version="1.0.0",
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc):
    return JSONResponse(status_code=422, content={"detail": jsonable_encoder(exc.errors())})


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


@app.exception_handler(Exception)
async def generic_exception_handler(request, exc):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(extract.router, tags=["extract"])
app.include_router(summarize.router, tags=["summarize"])
app.include_router(templates.router, tags=["templates"])
app.include_router(progress.router, tags=["progress"])
