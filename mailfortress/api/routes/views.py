"""
Server-rendered pages: inbox, compose, respond and prompt configuration.

Every form action redirects back with 303; failures are shown as a notice
on the next page instead of an error status.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from mailfortress.api.dependencies import get_inbox_state
from mailfortress.config import APP_VERSION
from mailfortress.formatting.normalizer import format_mail_payload, normalize
from mailfortress.inbox.policy import Mailbox
from mailfortress.inbox.state import InboxState
from mailfortress.llm.gateway import GenerationError
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter
from mailfortress.storage.client import DataStoreError
from mailfortress.storage.models import PromptType
from mailfortress.storage.seed import EMAIL_TOPICS

router = APIRouter(tags=["views"], include_in_schema=False)
logger = get_logger(__name__)

_TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates"
templates = Jinja2Templates(directory=str(_TEMPLATES_DIR))
templates.env.filters["mail"] = format_mail_payload
templates.env.filters["normalize"] = normalize

# Failures a page action reports back to the user rather than raising
_EXPECTED_ERRORS = (LookupError, ValueError, GenerationError, DataStoreError)


def _redirect(path: str, **params: Any) -> RedirectResponse:
    query = urlencode({k: v for k, v in params.items() if v not in (None, "")})
    return RedirectResponse(f"{path}?{query}" if query else path, status_code=303)


def _attempt(action: str, func: Callable[..., Any], *args: Any) -> tuple[Any, str | None]:
    """Run a state operation; returns (result, notice) with notice set on failure."""
    try:
        return func(*args), None
    except _EXPECTED_ERRORS as e:
        counter(f"views.{action}.error")
        logger.warning("%s failed: %s", action, e)
        return None, f"{action} failed: {e}"


def _render(request: Request, name: str, context: dict[str, Any]) -> HTMLResponse:
    context.setdefault("version", APP_VERSION)
    return templates.TemplateResponse(request, name, context)


# ============================================================================
# Inbox
# ============================================================================


@router.get("/", response_class=HTMLResponse)
def inbox_page(
    request: Request,
    background_tasks: BackgroundTasks,
    mailbox: Mailbox = Query(Mailbox.ALL),
    email_id: str | None = Query(None),
    notice: str | None = Query(None),
    state: InboxState = Depends(get_inbox_state),
) -> HTMLResponse:
    if not state.emails and not state.loading:
        loaded, failure = _attempt("Loading", state.initialize_data)
        notice = notice or failure
        if loaded is not None:
            background_tasks.add_task(state.auto_process)

    selected = None
    if email_id:
        selected, failure = _attempt("Opening email", state.get_email, email_id)
        notice = notice or failure

    return _render(
        request,
        "inbox.html",
        {
            "mailbox": mailbox.value,
            "mailboxes": [m.value for m in Mailbox],
            "counts": state.mailbox_counts(),
            "emails": state.filter_emails(mailbox),
            "selected": selected,
            "selected_ids": set(state.selected_ids),
            "mode": state.mode.value,
            "notice": notice or state.error,
        },
    )


@router.post("/actions/refresh")
def refresh_action(state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    summary, notice = _attempt("Refresh", state.refresh)
    if summary is not None and summary.error:
        notice = f"Auto-process stopped: {summary.error}"
    return _redirect("/", notice=notice)


@router.post("/actions/process")
def process_action(mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    count, notice = _attempt("Processing", state.process_inbox)
    return _redirect("/", mailbox=mailbox, notice=notice or f"Processed {count} emails")


@router.post("/actions/detect-spam")
def detect_spam_action(mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    count, notice = _attempt("Spam detection", state.detect_spam)
    return _redirect("/", mailbox=mailbox, notice=notice or f"Checked {count} emails for spam")


@router.post("/actions/select-all")
def select_all_action(mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    state.select_all_emails(mailbox)
    return _redirect("/", mailbox=mailbox)


@router.post("/actions/clear-selection")
def clear_selection_action(
    mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)
) -> RedirectResponse:
    state.deselect_all_emails()
    return _redirect("/", mailbox=mailbox)


@router.post("/actions/mark-spam")
def mark_spam_action(mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    count, notice = _attempt("Mark as spam", state.bulk_mark_spam)
    return _redirect("/", mailbox=mailbox, notice=notice or f"Marked {count} emails as spam")


@router.post("/actions/process-selected")
def process_selected_action(
    mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)
) -> RedirectResponse:
    count, notice = _attempt("Processing", state.bulk_process)
    return _redirect("/", mailbox=mailbox, notice=notice or f"Processed {count} emails")


@router.post("/actions/import")
def import_action(
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    try:
        items = json.loads(file.file.read().decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return _redirect("/", notice=f"Import failed: file is not valid JSON ({e})")
    count, notice = _attempt("Import", state.import_emails_to_database, items)
    if count:
        background_tasks.add_task(state.auto_process)
    return _redirect("/", notice=notice or f"Imported {count} emails")


@router.post("/emails/{email_id}/toggle")
def toggle_action(
    email_id: str, mailbox: str = Form("all"), state: InboxState = Depends(get_inbox_state)
) -> RedirectResponse:
    state.toggle_email_selection(email_id)
    return _redirect("/", mailbox=mailbox)


@router.post("/emails/{email_id}/category")
def category_action(
    email_id: str,
    category: str = Form(""),
    mailbox: str = Form("all"),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    _, notice = _attempt("Saving category", state.persist_email_category, email_id, category.strip() or None)
    return _redirect("/", mailbox=mailbox, email_id=email_id, notice=notice)


@router.post("/emails/{email_id}/chat")
def chat_action(
    email_id: str,
    user_query: str = Form(""),
    mailbox: str = Form("all"),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    instruction = state.prompt_text_for(PromptType.REPLY_GENERATE)
    _, notice = _attempt("Agent chat", state.chat_with_agent, email_id, instruction, user_query)
    return _redirect("/", mailbox=mailbox, email_id=email_id, notice=notice)


# ============================================================================
# Compose
# ============================================================================


@router.get("/compose", response_class=HTMLResponse)
def compose_page(request: Request, notice: str | None = Query(None)) -> HTMLResponse:
    return _render(request, "compose.html", {"topics": EMAIL_TOPICS, "notice": notice, "draft": None})


@router.post("/compose", response_class=HTMLResponse)
def compose_draft(
    request: Request,
    topic: str = Form(""),
    details: str = Form(""),
    state: InboxState = Depends(get_inbox_state),
) -> HTMLResponse:
    query = "\n\n".join(part for part in (topic.strip(), details.strip()) if part)
    instruction = "Write a complete, ready-to-send email for the topic and details below."
    result, notice = _attempt("Drafting", state.chat_with_agent, None, instruction, query)
    return _render(
        request,
        "compose.html",
        {
            "topics": EMAIL_TOPICS,
            "topic": topic,
            "details": details,
            "draft": result["draft"] if result else None,
            "notice": notice,
        },
    )


@router.post("/compose/send")
def compose_send(
    to_email: str = Form(""),
    subject: str = Form(""),
    body: str = Form(""),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    sent, notice = _attempt("Sending", state.log_sent_email, to_email, subject, body)
    if sent is None:
        return _redirect("/compose", notice=notice)
    return _redirect("/", mailbox=Mailbox.SENT.value, email_id=sent.id, notice="Email sent")


# ============================================================================
# Respond
# ============================================================================


@router.get("/respond", response_class=HTMLResponse)
def respond_page(
    request: Request,
    email_id: str | None = Query(None),
    notice: str | None = Query(None),
    state: InboxState = Depends(get_inbox_state),
) -> HTMLResponse:
    candidates = [email for email in state.filter_emails(Mailbox.INBOX) if email.id]
    context: dict[str, Any] = {"emails": candidates, "email": None, "reply": None, "notice": notice}
    if email_id:
        email, failure = _attempt("Opening email", state.get_email, email_id)
        context["email"] = email
        context["notice"] = notice or failure
    return _render(request, "respond.html", context)


@router.post("/respond", response_class=HTMLResponse)
def respond_generate(
    request: Request,
    email_id: str = Form(...),
    state: InboxState = Depends(get_inbox_state),
) -> HTMLResponse:
    candidates = [email for email in state.filter_emails(Mailbox.INBOX) if email.id]
    email, notice = _attempt("Opening email", state.get_email, email_id)
    reply = None
    if email is not None:
        reply, notice = _attempt("Generating response", state.generate_response, email_id)
    return _render(
        request,
        "respond.html",
        {"emails": candidates, "email": email, "reply": reply, "notice": notice},
    )


@router.post("/respond/send")
def respond_send(
    email_id: str = Form(""),
    to_email: str = Form(""),
    subject: str = Form(""),
    body: str = Form(""),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    sent, notice = _attempt("Sending", state.log_sent_email, to_email, subject, body)
    if sent is None:
        return _redirect("/respond", email_id=email_id, notice=notice)
    return _redirect("/", mailbox=Mailbox.SENT.value, email_id=sent.id, notice="Reply sent")


# ============================================================================
# Prompts
# ============================================================================


@router.get("/prompts", response_class=HTMLResponse)
def prompts_page(
    request: Request,
    notice: str | None = Query(None),
    state: InboxState = Depends(get_inbox_state),
) -> HTMLResponse:
    return _render(request, "prompts.html", {"prompts": state.prompts, "notice": notice})


@router.post("/prompts/import")
def prompts_import(file: UploadFile = File(...), state: InboxState = Depends(get_inbox_state)) -> RedirectResponse:
    try:
        payload = json.loads(file.file.read().decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        return _redirect("/prompts", notice=f"Import failed: file is not valid JSON ({e})")
    items = payload.get("prompts") if isinstance(payload, dict) else payload
    count, notice = _attempt("Prompt import", state.import_prompts, items)
    return _redirect("/prompts", notice=notice or f"Updated {count} prompts")


@router.post("/prompts/{prompt_id}")
def prompts_update(
    prompt_id: str,
    prompt_text: str = Form(""),
    model: str = Form(""),
    state: InboxState = Depends(get_inbox_state),
) -> RedirectResponse:
    updates = {"prompt_text": prompt_text or None, "model": model.strip() or None}
    _, notice = _attempt("Saving prompt", state.update_prompt, prompt_id, updates)
    return _redirect("/prompts", notice=notice or "Prompt saved")
