"""
Case Linkage API
================

FastAPI endpoints over the case-linkage core.

Endpoints:
- GET  /health                - Health check
- POST /similarity            - Score a target case against a corpus
- POST /patterns              - Cross-case patterns for a target case
- POST /analyze               - Full case analysis (optionally with a reasoning chain)
- POST /feedback              - Submit a verified case outcome
- GET  /feedback              - Learning metrics and current strategy
- GET  /feedback/{case_id}    - Stored outcome for a case
- GET  /reasoning/{case_id}   - Cached reasoning chain for a case

Run with:
    uvicorn detective_core.api:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import Body, Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from .analysis import CaseAnalysisService
from .config import get_settings, get_llm_mode
from .exceptions import FeedbackValidationError, OutcomeNotFoundError
from .improvement import TARGET_ACCURACY, progress_to_target
from .schemas import (
    AnalyzeCaseRequest,
    CaseAnalysis,
    CaseOutcome,
    ErrorResponse,
    FeedbackResponse,
    HealthResponse,
    MetricsResponse,
    PatternAnalysis,
    PatternRequest,
    ReasoningChain,
    SimilarityRequest,
    SimilarityResponse,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

for warning in get_settings().validate_llm_config():
    logger.warning(warning)


app = FastAPI(
    title="Case Linkage Service",
    description="Cross-record case similarity, pattern detection, reasoning chains and outcome feedback",
    version=get_settings().service_version,
    docs_url="/docs",
    redoc_url="/redoc",
)


def _parse_cors_origins(raw: str) -> List[str]:
    origins: List[str] = []
    for item in raw.split(","):
        origin = item.strip().strip('"').strip("'").rstrip("/")
        if origin:
            origins.append(origin)
    return origins


_cors_raw = os.environ.get(
    "CORS_ALLOW_ORIGINS",
    "http://localhost:3000,http://127.0.0.1:3000,http://localhost:8000,http://127.0.0.1:8000"
)
CORS_ALLOW_ORIGINS = _parse_cors_origins(_cors_raw)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)


# =============================================================================
# SERVICE SINGLETON
# =============================================================================

_service: Optional[CaseAnalysisService] = None


def get_service() -> CaseAnalysisService:
    """Get or create the shared analysis service"""
    global _service
    if _service is None:
        _service = CaseAnalysisService()
    return _service


def reset_service():
    """Drop the shared service (primarily for tests)."""
    global _service
    _service = None


# =============================================================================
# ENDPOINTS
# =============================================================================

@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint"""
    settings = get_settings()
    return HealthResponse(
        status="healthy",
        version=settings.service_version,
        llm_mode=get_llm_mode(),
        timestamp=datetime.now()
    )


@app.post(
    "/similarity",
    response_model=SimilarityResponse,
    tags=["Analysis"],
    summary="Score a target case against a corpus",
)
async def similarity(request: SimilarityRequest, service: CaseAnalysisService = Depends(get_service)):
    """
    Composite similarity of every corpus case against the target.

    Sorted by score descending, ties by case id. The target itself is excluded.
    """
    matches = service.find_matches(request.target, request.corpus, min_score=request.min_score)
    return SimilarityResponse(matches=matches)


@app.post("/patterns", response_model=PatternAnalysis, tags=["Analysis"])
async def patterns(request: PatternRequest, service: CaseAnalysisService = Depends(get_service)):
    """Serial-offender, geographic, temporal, evidence-chain and suspect-link patterns"""
    return service.find_patterns(request.target, request.corpus)


@app.post(
    "/analyze",
    response_model=CaseAnalysis,
    tags=["Analysis"],
    summary="Full analysis of one case",
    responses={
        200: {"description": "Successful analysis"},
        500: {"model": ErrorResponse, "description": "Internal error"},
    }
)
async def analyze_case(request: AnalyzeCaseRequest, service: CaseAnalysisService = Depends(get_service)):
    """
    Matches, patterns, anomalies, hypotheses and (when an LLM is configured)
    a reasoning chain, shaped by the current improvement strategy.
    """
    try:
        return await service.analyze(request.case, request.corpus, use_reasoning=request.use_reasoning)
    except Exception as e:
        logger.error(f"Analysis failed for {request.case.id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Analysis failed")


@app.post(
    "/feedback",
    response_model=FeedbackResponse,
    tags=["Feedback"],
    responses={400: {"model": ErrorResponse, "description": "Invalid outcome"}},
)
async def submit_feedback(
    payload: Dict[str, Any] = Body(...),
    service: CaseAnalysisService = Depends(get_service),
):
    """
    Record a verified case outcome and refine the improvement strategy.

    Missing or invalid fields return 400 and nothing is recorded.
    """
    try:
        result = service.submit_feedback(payload)
    except FeedbackValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return FeedbackResponse(
        success=True,
        message="Feedback recorded successfully",
        metrics=result.metrics,
        progress_to_target=progress_to_target(result.metrics),
    )


@app.get("/feedback", response_model=MetricsResponse, tags=["Feedback"])
async def feedback_metrics(service: CaseAnalysisService = Depends(get_service)):
    """Learning metrics over all stored outcomes"""
    metrics = service.feedback.calculate_metrics()
    return MetricsResponse(
        metrics=metrics,
        progress_to_target=progress_to_target(metrics),
        target_accuracy=TARGET_ACCURACY,
        current_strategy=service.improvement.current,
    )


@app.get(
    "/feedback/{case_id}",
    response_model=CaseOutcome,
    tags=["Feedback"],
    responses={404: {"model": ErrorResponse, "description": "No outcome for case"}},
)
async def get_feedback(case_id: str, service: CaseAnalysisService = Depends(get_service)):
    try:
        return service.feedback.get_outcome(case_id)
    except OutcomeNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@app.get(
    "/reasoning/{case_id}",
    response_model=ReasoningChain,
    tags=["Reasoning"],
    responses={404: {"model": ErrorResponse, "description": "No cached chain"}},
)
async def get_reasoning(case_id: str, service: CaseAnalysisService = Depends(get_service)):
    chain = service.get_chain(case_id)
    if chain is None:
        raise HTTPException(status_code=404, detail=f"No reasoning chain cached for case {case_id}")
    return chain
