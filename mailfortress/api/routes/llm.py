"""
LLM endpoints.

Missing required fields answer 400 ``{error}``; generation failures answer
500 ``{error}``; unparseable model output still answers 200 with the
operation's fallback body.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from mailfortress.api.dependencies import get_triage_service
from mailfortress.api.models import (
    ChatRequest,
    ChatResponse,
    DetectSpamRequest,
    GenerateResponseRequest,
    GenerateResponseResponse,
    ProcessEmailRequest,
    SpamResponse,
)
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter
from mailfortress.triage.service import TriageService

router = APIRouter(prefix="/llm", tags=["llm"])
logger = get_logger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _blank(value: str | None) -> bool:
    return not (value or "").strip()


async def _run(endpoint: str, func: Any, *args: Any) -> Any:
    try:
        return await run_in_threadpool(func, *args)
    except Exception as e:
        counter(f"api.llm.{endpoint}.error")
        logger.error("/llm/%s failed: %s", endpoint, e)
        return _error(500, str(e) or type(e).__name__)


@router.post("/process-email")
async def process_email(
    request: ProcessEmailRequest,
    triage: TriageService = Depends(get_triage_service),
) -> Any:
    """Categorize an email and extract its action items."""
    if _blank(request.emailBody):
        return _error(400, "emailBody is required")
    return await _run(
        "process-email",
        triage.process_email,
        request.emailBody,
        request.categorizationPrompt,
        request.actionItemPrompt,
        request.response_schema,
    )


@router.post("/chat", response_model=ChatResponse)
async def chat(
    request: ChatRequest,
    triage: TriageService = Depends(get_triage_service),
) -> Any:
    if _blank(request.userQuery):
        return _error(400, "userQuery is required")
    return await _run("chat", triage.chat, request.emailBody, request.chatInstruction, request.userQuery)


@router.post("/detect-spam", response_model=SpamResponse)
async def detect_spam(
    request: DetectSpamRequest,
    triage: TriageService = Depends(get_triage_service),
) -> Any:
    if _blank(request.emailBody) and _blank(request.subject):
        return _error(400, "emailBody or subject is required")
    return await _run("detect-spam", triage.detect_spam, request.emailBody, request.subject, request.fromEmail)


@router.post("/generate-response", response_model=GenerateResponseResponse)
async def generate_response(
    request: GenerateResponseRequest,
    triage: TriageService = Depends(get_triage_service),
) -> Any:
    """Draft an eight-part structured reply."""
    if _blank(request.emailBody) and _blank(request.subject):
        return _error(400, "emailBody or subject is required")
    return await _run(
        "generate-response",
        triage.generate_response,
        request.fromEmail,
        request.subject,
        request.emailBody,
    )
