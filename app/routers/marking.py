"""
Marking API endpoints.

Provides local rule-based marking, remote (Gemini) marking, batch planning
and document size profiling. Marking errors raised here are translated to
HTTP responses by the exception handlers registered in app.main.
"""

import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response, status

from app.config import get_settings
from app.middleware.rate_limit import get_limiter, RATE_LIMITS
from app.models.batch import BatchPlanRequest
from app.models.document import Document
from app.models.marking import LocalMarkRequest, ProfileRequest, RemoteMarkRequest
from app.services.batch_advisor import estimate_processing_time, recommend_batch, validate_batch
from app.services.document_profiler import profile_document, will_document_be_chunked
from app.services.gemini_client import GeminiCompletionClient
from app.services.rubric_engine import RubricEngine, extract_score_from_marking
from app.utils.errors import MarkingValidationError

router = APIRouter(prefix="/api", tags=["marking"])
limiter = get_limiter()
logger = logging.getLogger(__name__)

REMOTE_MARKING_METHOD = "Remote AI Marking"


def get_local_engine() -> RubricEngine:
    """Engine for local marking; needs no remote client."""
    return RubricEngine()


def get_remote_engine() -> Optional[RubricEngine]:
    """Engine backed by Gemini, or None when GEMINI_API_KEY is not set."""
    if not get_settings().gemini_configured:
        return None
    return RubricEngine(client=GeminiCompletionClient())


def _json_response(payload: dict, headers: Optional[dict] = None) -> Response:
    return Response(
        content=json.dumps(payload),
        media_type="application/json",
        status_code=status.HTTP_200_OK,
        headers=headers,
    )


@router.post("/mark/local")
@limiter.limit(RATE_LIMITS["mark_local"])  # type: ignore[untyped-decorator]
async def mark_local(
    request: Request,
    body: LocalMarkRequest,
    engine: RubricEngine = Depends(get_local_engine),
) -> Response:
    """
    Mark a document with the local rule-based engine (zero tokens).

    Returns:
        200: Report, totals, per-unit analysis and rubric alignment
        400: Missing document content, student name or assignment title
    """
    document = Document(
        text=body.document_content,
        student_name=body.student_name,
        assignment_title=body.assignment_title,
    )
    result = engine.mark_locally(document, body.memo)

    payload = {
        "marking_result": result.report,
        "total_marks": result.unit_scores.total_awarded,
        "total_available": result.unit_scores.total_available,
        "percentage": result.unit_scores.percentage,
        "grade": result.grade,
        "assessment_type": result.assessment_type,
        "tokens_saved": result.tokens_saved,
        "method": result.marking_method,
        "total_questions": len(result.unit_scores.items),
        "question_analysis": [item.model_dump() for item in result.unit_scores.items],
        "rubric_analysis": result.rubric_scores.model_dump(),
    }
    headers = {"X-Marking-Method": "local"}
    if result.unit_scores.percentage is not None:
        headers["X-Marking-Percentage"] = str(result.unit_scores.percentage)
    return _json_response(payload, headers)


@router.post("/mark/remote")
@limiter.limit(RATE_LIMITS["mark_remote"])  # type: ignore[untyped-decorator]
async def mark_remote(
    request: Request,
    body: RemoteMarkRequest,
    engine: Optional[RubricEngine] = Depends(get_remote_engine),
) -> Response:
    """
    Mark a document with Gemini, chunking it when it exceeds one request.

    Returns:
        200: Marking text with any recovered totals
        400: Missing prompt/content, or remote marking not configured
        413: Document needs more chunks than allowed
        429: Remote rate limit persisted through retries
        502: Other remote failure
    """
    if engine is None:
        raise MarkingValidationError("Remote marking is not configured: GEMINI_API_KEY not set")

    document = Document(
        text=body.document_content,
        student_name=body.student_name,
        assignment_title=body.assignment_title,
    )
    marking = await engine.mark_remotely(body.prompt, document, body.assessment_type, body.memo)
    total_marks, percentage = extract_score_from_marking(marking)

    payload = {
        "marking_result": marking,
        "total_marks": total_marks,
        "percentage": percentage,
        "method": REMOTE_MARKING_METHOD,
    }
    headers = {"X-Marking-Method": "remote"}
    if percentage is not None:
        headers["X-Marking-Percentage"] = str(percentage)
    return _json_response(payload, headers)


@router.post("/batch/plan")
@limiter.limit(RATE_LIMITS["plan"])  # type: ignore[untyped-decorator]
async def plan_batch(request: Request, body: BatchPlanRequest) -> Response:
    """
    Recommend a batch size and report problems for a set of documents.

    Returns:
        200: Batch plan, validation report and processing time estimate
    """
    plan = recommend_batch(body.documents)
    payload = {
        "plan": plan.model_dump(),
        "validation": validate_batch(body.documents).model_dump(),
        "estimated_processing_time": estimate_processing_time(body.documents),
    }
    return _json_response(payload)


@router.post("/documents/profile")
@limiter.limit(RATE_LIMITS["plan"])  # type: ignore[untyped-decorator]
async def profile(request: Request, body: ProfileRequest) -> Response:
    """Size profile of one document, plus whether remote marking would chunk it."""
    payload = profile_document(body.document_content).model_dump()
    payload["will_chunk_remotely"] = will_document_be_chunked(
        body.document_content, has_prompt=True, has_memo=bool(body.memo)
    )
    return _json_response(payload)
