"""Main FastAPI application."""

import asyncio
import logging
import sys
import time
from functools import lru_cache
from typing import List, Optional

from fastapi import Depends, FastAPI, File, Form, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from glucimiam.config import ALLOW_ALL_ORIGINS, CORS_ORIGINS, AnalysisSettings
from glucimiam.errors import (
    AnalysisError,
    ConfigurationError,
    MalformedPayload,
    ModelDeclinedAnalysis,
    NetworkTimeout,
    ProviderAuthFailure,
    ProviderError,
    ProviderQuotaFailure,
)
from glucimiam.pipeline import AnalysisPipeline

# -----------------------------------
# App initialization
# -----------------------------------

app = FastAPI(title="GluciMiam")

logging.basicConfig(
    level=logging.INFO,
    stream=sys.stdout,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# -----------------------------------
# CORS
# -----------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=not ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)

ALLOWED_CONTENT_TYPES = ("image/jpeg", "image/png")


@lru_cache(maxsize=1)
def get_pipeline() -> AnalysisPipeline:
    """Settings are read from the environment once, on first request."""
    return AnalysisPipeline(AnalysisSettings.from_env())


def _http_error(e: AnalysisError) -> HTTPException:
    if isinstance(e, NetworkTimeout):
        return HTTPException(504, str(e))
    if isinstance(e, ProviderAuthFailure):
        return HTTPException(401, f"Provider authentication failed: {e}")
    if isinstance(e, ProviderQuotaFailure):
        return HTTPException(429, f"Provider quota exceeded: {e}")
    if isinstance(e, ModelDeclinedAnalysis):
        return HTTPException(
            422, {"error": e.reason, "needsRetake": e.needs_retake}
        )
    if isinstance(e, (MalformedPayload, ProviderError)):
        return HTTPException(502, f"Provider response unusable: {e}")
    if isinstance(e, ConfigurationError):
        return HTTPException(500, f"Server misconfigured: {e}")
    return HTTPException(500, str(e))


async def _read_image(image: Optional[UploadFile]) -> bytes:
    if not image:
        raise HTTPException(422, "Image field is required")
    if image.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(422, "Unsupported format (use jpeg/png)")
    content = await image.read()
    if not content:
        raise HTTPException(422, f"Empty image: {image.filename}")
    return content


# -----------------------------------
# Technical endpoints
# -----------------------------------

@app.get("/health")
def health():
    return {"status": "ok"}


# -----------------------------------
# /analyze: two-pass carb estimation
# -----------------------------------

@app.post("/analyze")
async def analyze_meal(
    images: List[UploadFile] = File(None),
    finger_length_mm: float = Form(...),
    user_context: Optional[str] = Form(None),
    user_id: Optional[str] = Form(None),
    skip_cache: bool = Form(False),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    if not images:
        raise HTTPException(422, "At least one image is required")
    if finger_length_mm <= 0:
        raise HTTPException(422, "finger_length_mm must be positive")

    total_start = time.time()
    logger.info(
        "[PIPELINE] Starting /analyze endpoint for files: %s",
        [image.filename for image in images],
    )
    contents = [await _read_image(image) for image in images]

    try:
        result = await pipeline.analyze(
            contents,
            finger_length_mm,
            user_context=user_context,
            user_id=user_id,
            use_cache=not skip_cache,
        )
    except AnalysisError as e:
        logger.warning("[PIPELINE] /analyze failed: %s: %s", type(e).__name__, e)
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(422, f"Invalid input: {e}")
    except Exception as e:
        logger.exception("Error in /analyze")
        raise HTTPException(500, f"Analysis error: {str(e)}")

    logger.info(
        "[PIPELINE] /analyze completed successfully, total time: %sms",
        round((time.time() - total_start) * 1000, 2),
    )
    return result.to_dict()


# -----------------------------------
# /cache/lookup: reuse a previous analysis of the same meal
# -----------------------------------

@app.post("/cache/lookup")
async def cache_lookup(
    image: UploadFile = File(None),
    user_id: str = Form(...),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    content = await _read_image(image)
    try:
        entry = await asyncio.to_thread(pipeline.find_cached_analysis, content, user_id)
    except ValueError as e:
        raise HTTPException(422, f"Invalid input: {e}")
    return {"hit": entry is not None, "entry": entry.to_dict() if entry else None}


# -----------------------------------
# /corrections: user edits feeding personalization
# -----------------------------------

class CorrectionRequest(BaseModel):
    user_id: str = Field(alias="userId")
    food_name: str = Field(alias="foodName")
    weight_ratio: float = Field(1.0, alias="weightRatio")
    carbs_ratio: float = Field(1.0, alias="carbsRatio")


@app.post("/corrections", status_code=201)
def record_correction(
    payload: CorrectionRequest, pipeline: AnalysisPipeline = Depends(get_pipeline)
):
    try:
        sample = pipeline.record_correction(
            payload.user_id, payload.food_name, payload.weight_ratio, payload.carbs_ratio
        )
    except ValueError as e:
        raise HTTPException(422, str(e))
    return {
        "userId": sample.user_id,
        "foodName": sample.food_name,
        "weightRatio": sample.weight_ratio,
        "carbsRatio": sample.carbs_ratio,
        "createdAt": sample.created_at.isoformat(),
    }


# -----------------------------------
# /foods/search: nutrition reference
# -----------------------------------

@app.get("/foods/search")
async def search_foods(
    q: str = Query(..., min_length=1),
    public: bool = Query(False),
    pipeline: AnalysisPipeline = Depends(get_pipeline),
):
    reference = pipeline.reference
    results = [record.to_dict() for record in reference.search_local(q)]
    if not results and public:
        try:
            record = await asyncio.to_thread(reference.search_public, q)
        except AnalysisError as e:
            logger.warning("Public food search failed for %r: %s", q, e)
            record = None
        if record is not None:
            results.append(record.to_dict())
    return {"query": q, "results": results, "stats": reference.dictionary.stats()}
