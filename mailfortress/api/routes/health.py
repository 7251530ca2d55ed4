"""Health check endpoint.

Reports credential presence only; no LLM or database call is made.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Depends

from mailfortress.api.dependencies import get_inbox_state, get_triage_service
from mailfortress.config import APP_NAME, APP_VERSION
from mailfortress.inbox.state import InboxState
from mailfortress.triage.service import TriageService

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(
    triage: TriageService = Depends(get_triage_service),
    state: InboxState = Depends(get_inbox_state),
) -> dict[str, Any]:
    return {
        "status": "ok",
        "service": APP_NAME,
        "version": APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "llm": triage.gateway.describe(),
        "store": {"configured": state.store.configured},
        "mode": state.mode.value,
    }
