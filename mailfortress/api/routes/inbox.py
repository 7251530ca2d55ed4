"""
Inbox API - JSON surface over the application state store.

Handlers are plain ``def`` so Starlette runs them in its threadpool; the
state store blocks on LLM and Supabase calls.
"""

from __future__ import annotations

import contextlib
import json
from collections.abc import Iterator
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, File, HTTPException, Query, UploadFile
from fastapi.responses import JSONResponse

from mailfortress.api.dependencies import get_inbox_state
from mailfortress.api.models import (
    AgentChatRequest,
    BatchResult,
    CategoryRequest,
    EmailIdsRequest,
    ImportResult,
    SendEmailRequest,
)
from mailfortress.inbox.policy import Mailbox
from mailfortress.inbox.state import EmailNotFoundError, InboxState, PromptNotFoundError
from mailfortress.llm.gateway import GenerationError
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter
from mailfortress.storage.client import DataStoreError
from mailfortress.storage.models import Email

router = APIRouter(prefix="/api", tags=["inbox"])
logger = get_logger(__name__)


@contextlib.contextmanager
def translate_errors(action: str) -> Iterator[None]:
    """Map state-store exceptions onto HTTP status codes."""
    try:
        yield
    except HTTPException:
        raise
    except (EmailNotFoundError, PromptNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e)) from None
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from None
    except (GenerationError, DataStoreError) as e:
        counter(f"api.inbox.{action}.upstream_error")
        logger.error("%s failed upstream: %s", action, e)
        raise HTTPException(status_code=502, detail=f"{action} failed: {e}") from None
    except Exception as e:
        counter(f"api.inbox.{action}.error")
        logger.error("%s failed: %s", action, e)
        raise HTTPException(status_code=500, detail=f"{action} failed") from None


def _dump(email: Email) -> dict[str, Any]:
    return email.model_dump(mode="json", by_alias=True)


def _parse_json_upload(raw: bytes) -> Any:
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Uploaded file is not valid JSON: {e}") from None


# ============================================================================
# Loading
# ============================================================================


@router.post("/initialize")
def initialize(background_tasks: BackgroundTasks, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    """Seed empty tables, fetch, and start an auto-process pass in the background."""
    with translate_errors("initialize"):
        emails = state.initialize_data()
    background_tasks.add_task(state.auto_process)
    return {"emails": len(emails), "prompts": len(state.prompts)}


@router.post("/refresh")
def refresh(background_tasks: BackgroundTasks, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    with translate_errors("refresh"):
        emails = state.fetch_data()
    background_tasks.add_task(state.auto_process)
    return {"emails": len(emails)}


@router.get("/state")
def get_state(state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    return state.snapshot()


# ============================================================================
# Emails
# ============================================================================


@router.get("/emails")
def list_emails(
    mailbox: Mailbox = Query(Mailbox.ALL),
    state: InboxState = Depends(get_inbox_state),
) -> list[dict[str, Any]]:
    return [_dump(email) for email in state.filter_emails(mailbox)]


@router.get("/emails/counts")
def email_counts(state: InboxState = Depends(get_inbox_state)) -> dict[str, int]:
    return state.mailbox_counts()


@router.post("/emails/process", response_model=BatchResult)
def process_emails(
    request: EmailIdsRequest | None = None,
    state: InboxState = Depends(get_inbox_state),
) -> BatchResult:
    with translate_errors("process"):
        return BatchResult(updated=state.process_inbox(request.email_ids if request else None))


@router.post("/emails/detect-spam", response_model=BatchResult)
def detect_spam(
    request: EmailIdsRequest | None = None,
    state: InboxState = Depends(get_inbox_state),
) -> BatchResult:
    with translate_errors("detect-spam"):
        return BatchResult(updated=state.detect_spam(request.email_ids if request else None))


@router.post("/emails/send")
def send_email(request: SendEmailRequest, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    """Log an outgoing message to the Sent folder."""
    with translate_errors("send"):
        return _dump(state.log_sent_email(request.to_email, request.subject, request.body))


@router.post("/emails/import", response_model=ImportResult)
def import_emails(
    background_tasks: BackgroundTasks,
    items: list[Any] = Body(...),
    state: InboxState = Depends(get_inbox_state),
) -> ImportResult:
    with translate_errors("import"):
        imported = state.import_emails_to_database(items)
    background_tasks.add_task(state.auto_process)
    return ImportResult(imported=imported)


@router.post("/emails/import-file", response_model=ImportResult)
def import_emails_file(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    state: InboxState = Depends(get_inbox_state),
) -> ImportResult:
    with translate_errors("import"):
        items = _parse_json_upload(file.file.read())
        imported = state.import_emails_to_database(items)
    background_tasks.add_task(state.auto_process)
    return ImportResult(imported=imported)


@router.post("/emails/mock")
def load_mock(state: InboxState = Depends(get_inbox_state)) -> list[dict[str, Any]]:
    """Replace the local list with the mock inbox (nothing is written)."""
    return [_dump(email) for email in state.load_mock_locally()]


@router.get("/emails/{email_id}")
def get_email(email_id: str, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    with translate_errors("get-email"):
        return _dump(state.get_email(email_id))


@router.put("/emails/{email_id}/category")
def set_category(
    email_id: str,
    request: CategoryRequest,
    state: InboxState = Depends(get_inbox_state),
) -> dict[str, Any]:
    with translate_errors("set-category"):
        return _dump(state.persist_email_category(email_id, request.category))


@router.post("/emails/{email_id}/chat")
def chat_about_email(
    email_id: str,
    request: AgentChatRequest,
    state: InboxState = Depends(get_inbox_state),
) -> dict[str, Any]:
    with translate_errors("chat"):
        return state.chat_with_agent(email_id, request.chat_instruction, request.user_query, request.context_body)


@router.post("/compose")
def compose(request: AgentChatRequest, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    """Draft a new email from an instruction; nothing is stored."""
    with translate_errors("compose"):
        return state.chat_with_agent(None, request.chat_instruction, request.user_query, request.context_body)


@router.post("/emails/{email_id}/generate-response")
def generate_response(email_id: str, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    with translate_errors("generate-response"):
        return state.generate_response(email_id)


# ============================================================================
# Selection
# ============================================================================


@router.post("/selection/all")
def select_all(
    mailbox: Mailbox = Query(Mailbox.ALL),
    state: InboxState = Depends(get_inbox_state),
) -> dict[str, Any]:
    return {"selected_ids": state.select_all_emails(mailbox)}


@router.delete("/selection")
def clear_selection(state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    state.deselect_all_emails()
    return {"selected_ids": []}


@router.post("/selection/mark-spam", response_model=BatchResult)
def mark_selection_spam(state: InboxState = Depends(get_inbox_state)) -> BatchResult:
    with translate_errors("bulk-mark-spam"):
        return BatchResult(updated=state.bulk_mark_spam())


@router.post("/selection/process", response_model=BatchResult)
def process_selection(state: InboxState = Depends(get_inbox_state)) -> BatchResult:
    with translate_errors("bulk-process"):
        return BatchResult(updated=state.bulk_process())


@router.post("/selection/{email_id}/toggle")
def toggle_selection(email_id: str, state: InboxState = Depends(get_inbox_state)) -> dict[str, Any]:
    return {"selected_ids": state.toggle_email_selection(email_id)}


# ============================================================================
# Prompts
# ============================================================================


@router.get("/prompts")
def list_prompts(state: InboxState = Depends(get_inbox_state)) -> list[dict[str, Any]]:
    return [prompt.model_dump(mode="json") for prompt in state.prompts]


@router.get("/prompts/export")
def export_prompts(state: InboxState = Depends(get_inbox_state)) -> JSONResponse:
    return JSONResponse(
        content={"prompts": state.export_prompts()},
        headers={"Content-Disposition": 'attachment; filename="mailfortress-prompts.json"'},
    )


@router.post("/prompts/import")
def import_prompts(payload: Any = Body(...), state: InboxState = Depends(get_inbox_state)) -> dict[str, int]:
    """Accepts either a bare array or the ``{"prompts": [...]}`` export shape."""
    items = payload.get("prompts") if isinstance(payload, dict) else payload
    with translate_errors("import-prompts"):
        return {"updated": state.import_prompts(items)}


@router.patch("/prompts/{prompt_id}")
def update_prompt(
    prompt_id: str,
    updates: dict[str, Any] = Body(...),
    state: InboxState = Depends(get_inbox_state),
) -> dict[str, Any]:
    with translate_errors("update-prompt"):
        return state.update_prompt(prompt_id, updates).model_dump(mode="json")
