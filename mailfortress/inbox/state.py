"""
Application State Store.

Holds the in-memory view of both tables plus the multi-select set, and
orchestrates load -> fetch -> auto-process, the batch LLM operations and the
bulk actions. One instance is shared by the API and the HTML views.

Auto-processing is tracked by an explicit ``ProcessingMode``; only one pass
runs at a time per process. Other sessions writing the same rows resolve
last-write-wins through upsert.
"""

from __future__ import annotations

import contextlib
import threading
from collections.abc import Iterator
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from pydantic import ValidationError

from mailfortress.config import (
    BATCH_MAX_WORKERS,
    EMAILS_TABLE,
    MAILBOX_ADDRESS,
    PROCESS_BATCH_LIMIT,
    PROMPTS_TABLE,
    SENT_CATEGORY,
    SPAM_CATEGORY,
    SPAM_DEFAULT_CONFIDENCE,
)
from mailfortress.formatting.envelopes import coerce_to_plain_text
from mailfortress.inbox.batch import run_bounded
from mailfortress.inbox.policy import Mailbox, apply_spam_verdict, filter_mailbox, mailbox_counts
from mailfortress.llm.gateway import GenerationError
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter, log_event, snapshot_counters, snapshot_latencies
from mailfortress.storage.client import DataStore, DataStoreError
from mailfortress.storage.models import (
    CategorySource,
    Draft,
    Email,
    Prompt,
    PromptType,
    PromptUpdate,
    utc_now_iso,
)
from mailfortress.storage.seed import MOCK_INBOX, seed_emails_if_empty, seed_prompts_if_empty
from mailfortress.triage.service import PROCESS_PARSE_WARNING, TriageService

logger = get_logger(__name__)


class ProcessingMode(str, Enum):
    IDLE = "idle"
    AUTO_PROCESSING = "auto_processing"


class EmailNotFoundError(LookupError):
    """No email with the requested id."""


class PromptNotFoundError(LookupError):
    """No prompt with the requested id."""


@dataclass
class AutoProcessSummary:
    ran: bool
    processed: int = 0
    spam_checked: int = 0
    error: str | None = None


class InboxState:
    def __init__(
        self,
        store: DataStore,
        triage: TriageService,
        max_workers: int = BATCH_MAX_WORKERS,
    ) -> None:
        self.store = store
        self.triage = triage
        self.max_workers = max_workers

        self.emails: list[Email] = []
        self.prompts: list[Prompt] = []
        self.selected_ids: list[str] = []
        self.loading: bool = False
        self.error: str | None = None

        self._mode = ProcessingMode.IDLE
        self._mode_lock = threading.Lock()
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Processing mode
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ProcessingMode:
        return self._mode

    @contextlib.contextmanager
    def _auto_processing(self) -> Iterator[bool]:
        """Enter AUTO_PROCESSING; yields False (and changes nothing) if a pass is in flight."""
        with self._mode_lock:
            entered = self._mode is ProcessingMode.IDLE
            if entered:
                self._mode = ProcessingMode.AUTO_PROCESSING
        try:
            yield entered
        finally:
            if entered:
                with self._mode_lock:
                    self._mode = ProcessingMode.IDLE

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def fetch_data(self) -> list[Email]:
        """Reload both tables from the store."""
        with self._lock:
            self.loading = True
        try:
            email_rows = self.store.select(EMAILS_TABLE, order=("inserted_at", True))
            prompt_rows = self.store.select(PROMPTS_TABLE)
        except DataStoreError as e:
            with self._lock:
                self.error = str(e)
            raise
        finally:
            with self._lock:
                self.loading = False

        emails = _parse_rows(Email, email_rows)
        prompts = _parse_rows(Prompt, prompt_rows)
        with self._lock:
            self.emails = emails
            self.prompts = prompts
            self.error = None
            known = {email.id for email in emails}
            self.selected_ids = [email_id for email_id in self.selected_ids if email_id in known]
            return list(self.emails)

    def initialize_data(self) -> list[Email]:
        """Seed empty tables with the mock inbox and default prompts, then fetch."""
        seed_emails_if_empty(self.store)
        seed_prompts_if_empty(self.store)
        return self.fetch_data()

    def auto_process(self) -> AutoProcessSummary:
        """Fill in missing category/action items and spam verdicts for fetched rows."""
        with self._auto_processing() as entered:
            if not entered:
                counter("inbox.auto_process.skipped")
                return AutoProcessSummary(ran=False)

            summary = AutoProcessSummary(ran=True)
            try:
                pending = [e.id for e in self.emails if e.id and not e.processed and not e.is_sent]
                if pending:
                    summary.processed = self.process_inbox(pending)

                unchecked = [e.id for e in self.emails if e.id and e.spam_confidence is None and not e.is_sent]
                if unchecked:
                    summary.spam_checked = self.detect_spam(unchecked)
            except (DataStoreError, GenerationError) as e:
                logger.warning("Auto-process pass stopped: %s", e)
                summary.error = str(e)

            log_event("inbox.auto_process.completed", **asdict(summary))
            return summary

    def refresh(self) -> AutoProcessSummary:
        self.fetch_data()
        return self.auto_process()

    def load_mock_locally(self) -> list[Email]:
        return self.set_emails_local(MOCK_INBOX)

    def set_emails_local(self, items: list[dict[str, Any]]) -> list[Email]:
        """Replace the local email list without touching the store."""
        emails = [Email.from_import(item, index=idx) for idx, item in enumerate(items)]
        with self._lock:
            self.emails = emails
            self.selected_ids = []
            return list(self.emails)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_email(self, email_id: str) -> Email:
        with self._lock:
            for email in self.emails:
                if email.id == email_id:
                    return email
        rows = self.store.select(EMAILS_TABLE, eq={"id": email_id}, limit=1)
        if not rows:
            raise EmailNotFoundError(f"Email {email_id} not found")
        return Email.from_row(rows[0])

    def _load_email(self, email_id: str) -> Email:
        """Fresh copy from the store, for read-modify-write."""
        rows = self.store.select(EMAILS_TABLE, eq={"id": email_id}, limit=1)
        if not rows:
            raise EmailNotFoundError(f"Email {email_id} not found")
        return Email.from_row(rows[0])

    def filter_emails(self, mailbox: Mailbox | str = Mailbox.ALL) -> list[Email]:
        with self._lock:
            return filter_mailbox(self.emails, mailbox)

    def mailbox_counts(self) -> dict[str, int]:
        with self._lock:
            return mailbox_counts(self.emails)

    def prompt_text_for(self, prompt_type: PromptType) -> str | None:
        with self._lock:
            for prompt in self.prompts:
                if prompt.prompt_type == prompt_type.value and prompt.prompt_text:
                    return prompt.prompt_text
        return None

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def set_email_category_local(self, email_id: str, category: str | None) -> None:
        with self._lock:
            for email in self.emails:
                if email.id == email_id:
                    email.category = category
                    email.category_source = CategorySource.MANUAL
                    return
        raise EmailNotFoundError(f"Email {email_id} not found")

    def persist_email_category(self, email_id: str, category: str | None) -> Email:
        """Save a user-chosen category; falls back to upsert when no row matched."""
        with contextlib.suppress(EmailNotFoundError):
            self.set_email_category_local(email_id, category)
        values = {"category": category, "category_source": CategorySource.MANUAL.value}
        updated = self.store.update(EMAILS_TABLE, values, eq={"id": email_id})
        if not updated:
            logger.info("No row updated for email %s, upserting category", email_id)
            self.store.upsert(
                EMAILS_TABLE,
                [{"id": email_id, **values, "processed": True, "processed_at": utc_now_iso()}],
            )
        counter("inbox.category.manual")
        self.fetch_data()
        return self.get_email(email_id)

    # ------------------------------------------------------------------
    # Batch LLM operations
    # ------------------------------------------------------------------

    def process_inbox(self, email_ids: list[str] | None = None) -> int:
        """Categorize and extract action items; returns the number of rows updated.

        Without ``email_ids`` the oldest unprocessed rows are taken, up to
        PROCESS_BATCH_LIMIT. Rows whose LLM call fails or returns no JSON are
        skipped and stay unprocessed.
        """
        if email_ids is not None:
            if not email_ids:
                return 0
            rows = self.store.select(EMAILS_TABLE, in_={"id": list(email_ids)})
        else:
            rows = self.store.select(EMAILS_TABLE, not_true=["processed"], limit=PROCESS_BATCH_LIMIT)
        emails = _parse_rows(Email, rows)

        categorize_prompt = self.prompt_text_for(PromptType.CATEGORIZE)
        action_prompt = self.prompt_text_for(PromptType.ACTION_ITEMS)

        def work(email: Email) -> dict[str, Any]:
            return self.triage.process_email(email.body or email.subject, categorize_prompt, action_prompt)

        outcomes = run_bounded(emails, work, self.max_workers, name="inbox.process")

        processed_at = utc_now_iso()
        updates: list[dict[str, Any]] = []
        for outcome in outcomes:
            email, result = outcome.item, outcome.result
            if not outcome.ok or result is None:
                continue
            if result.get("warning") == PROCESS_PARSE_WARNING:
                counter("inbox.process.unparsed")
                logger.warning("Skipping email %s: model reply was not JSON", email.id)
                continue

            category, source = _auto_category(email, result.get("category"))
            action_items = result.get("action_items") or result.get("tasks") or []
            updates.append(
                {
                    "id": email.id,
                    "category": category,
                    "category_source": source,
                    "action_items": action_items if isinstance(action_items, list) else [action_items],
                    "processed": True,
                    "processed_at": processed_at,
                }
            )

        if updates:
            self.store.upsert(EMAILS_TABLE, updates, on_conflict="id")
        log_event("inbox.process.completed", selected=len(emails), updated=len(updates))
        self.fetch_data()
        return len(updates)

    def detect_spam(self, email_ids: list[str] | None = None) -> int:
        """Run spam detection over the given (or all) non-Sent emails; returns rows updated."""
        if email_ids is not None:
            if not email_ids:
                return 0
            rows = self.store.select(EMAILS_TABLE, in_={"id": list(email_ids)})
        else:
            rows = self.store.select(EMAILS_TABLE)
        candidates = [email for email in _parse_rows(Email, rows) if not email.is_sent]

        def work(email: Email) -> dict[str, Any]:
            return self.triage.detect_spam(email.body, email.subject, email.from_email)

        outcomes = run_bounded(candidates, work, self.max_workers, name="inbox.spam")

        updates: list[dict[str, Any]] = []
        for outcome in outcomes:
            email, verdict = outcome.item, outcome.result
            if not outcome.ok or verdict is None:
                continue

            confidence = _confidence(verdict.get("confidence"))
            category = apply_spam_verdict(
                email.category,
                bool(verdict.get("isSpam")),
                confidence,
                category_source=email.category_source,
            )
            if category != email.category:
                source = CategorySource.AUTO.value
                counter("inbox.spam.recategorized")
            else:
                source = email.category_source.value if email.category_source else None
            updates.append(
                {
                    "id": email.id,
                    "category": category,
                    "category_source": source,
                    "spam_confidence": confidence,
                    "spam_reason": verdict.get("reason") or None,
                }
            )

        if updates:
            self.store.upsert(EMAILS_TABLE, updates, on_conflict="id")
        log_event("inbox.spam.completed", selected=len(candidates), updated=len(updates))
        self.fetch_data()
        return len(updates)

    # ------------------------------------------------------------------
    # Interactive operations
    # ------------------------------------------------------------------

    def chat_with_agent(
        self,
        email_id: str | None,
        chat_instruction: str | None,
        user_query: str,
        context_body: str | None = None,
    ) -> dict[str, Any]:
        """Ask the assistant about an email and append the answer as a draft.

        With no ``email_id`` (composing a new email) the draft is returned
        without being stored.
        """
        if not (user_query or "").strip():
            raise ValueError("user_query is required")

        if email_id is None:
            result = self.triage.chat(context_body, chat_instruction, user_query)
            draft = Draft(text=result["text"], suggested_follow_ups=result["suggestedFollowUps"])
            return {"email_id": None, "draft": draft.to_row()}

        email = self._load_email(email_id)
        result = self.triage.chat(context_body or email.body, chat_instruction, user_query)
        draft = Draft(text=result["text"], suggested_follow_ups=result["suggestedFollowUps"])
        drafts = [existing.to_row() for existing in email.drafts] + [draft.to_row()]
        self.store.update(EMAILS_TABLE, {"drafts": drafts}, eq={"id": email_id})
        counter("inbox.chat.draft_saved")
        self.fetch_data()
        return {"email_id": email_id, "draft": draft.to_row()}

    def generate_response(self, email_id: str) -> dict[str, Any]:
        email = self.get_email(email_id)
        result = self.triage.generate_response(email.from_email, email.subject, email.body)
        return {
            "email_id": email_id,
            "to_email": email.from_email,
            "subject": f"Re: {email.subject}",
            "responseText": result["responseText"],
        }

    def log_sent_email(self, to_email: str, subject: str | None, body: str) -> Email:
        """Record an outgoing message in the Sent folder."""
        if not (to_email or "").strip():
            raise ValueError("to_email is required")
        if not (body or "").strip():
            raise ValueError("body is required")

        now = utc_now_iso()
        email = Email(
            from_email=MAILBOX_ADDRESS,
            to_email=to_email.strip(),
            subject=(subject or "").strip() or "(no subject)",
            body=body,
            category=SENT_CATEGORY,
            category_source=CategorySource.MANUAL,
            processed=True,
            inserted_at=now,
            processed_at=now,
        )
        inserted = self.store.insert(EMAILS_TABLE, [email.to_row(include_id=False)])
        log_event("inbox.sent.logged", to_domain=email.to_email.rsplit("@", 1)[-1])
        self.fetch_data()
        return Email.from_row(inserted[0]) if inserted else email

    def import_emails_to_database(self, items: list[Any]) -> int:
        """Insert one row per imported object; returns the number of rows created."""
        if not isinstance(items, list):
            raise ValueError("Import payload must be a JSON array of email objects")
        emails = [Email.from_import(item) for item in items]
        rows = [email.to_row(include_id=False) for email in emails]
        inserted = self.store.insert(EMAILS_TABLE, rows)
        log_event("inbox.import.completed", received=len(items), inserted=len(inserted))
        self.fetch_data()
        return len(inserted)

    # ------------------------------------------------------------------
    # Prompts
    # ------------------------------------------------------------------

    def update_prompt(self, prompt_id: str, updates: PromptUpdate | dict[str, Any]) -> Prompt:
        if isinstance(updates, dict):
            try:
                updates = PromptUpdate.model_validate(updates)
            except ValidationError as e:
                raise ValueError(f"Invalid prompt update: {e.errors()[0]['msg']}") from None
        changes = updates.changes()
        if not changes:
            raise ValueError("No prompt fields to update")

        rows = self.store.update(PROMPTS_TABLE, changes, eq={"id": prompt_id})
        if not rows:
            raise PromptNotFoundError(f"Prompt {prompt_id} not found")

        prompt = Prompt.from_row(rows[0])
        with self._lock:
            self.prompts = [prompt if p.id == prompt_id else p for p in self.prompts]
        return prompt

    def export_prompts(self) -> list[dict[str, Any]]:
        with self._lock:
            return [prompt.export() for prompt in self.prompts]

    def import_prompts(self, items: list[Any]) -> int:
        """Update existing prompts matched by prompt_type; returns how many changed."""
        if not isinstance(items, list):
            raise ValueError("Prompt import must be a JSON array")

        with self._lock:
            by_type = {prompt.prompt_type: prompt for prompt in self.prompts}

        updated = 0
        for item in items:
            if not isinstance(item, dict) or not item.get("prompt_type"):
                raise ValueError("Each imported prompt needs a prompt_type")
            existing = by_type.get(item["prompt_type"])
            if existing is None or existing.id is None:
                logger.warning("Skipping unknown prompt_type %r on import", item["prompt_type"])
                continue
            changes = {key: item[key] for key in ("prompt_text", "model") if item.get(key)}
            if not changes:
                continue
            self.update_prompt(existing.id, changes)
            updated += 1
        return updated

    # ------------------------------------------------------------------
    # Selection and bulk actions
    # ------------------------------------------------------------------

    def toggle_email_selection(self, email_id: str) -> list[str]:
        with self._lock:
            if email_id in self.selected_ids:
                self.selected_ids.remove(email_id)
            else:
                self.selected_ids.append(email_id)
            return list(self.selected_ids)

    def select_all_emails(self, mailbox: Mailbox | str = Mailbox.ALL) -> list[str]:
        with self._lock:
            self.selected_ids = [e.id for e in filter_mailbox(self.emails, mailbox) if e.id]
            return list(self.selected_ids)

    def deselect_all_emails(self) -> None:
        with self._lock:
            self.selected_ids = []

    def _take_selection(self) -> list[str]:
        with self._lock:
            selected, self.selected_ids = list(self.selected_ids), []
            return selected

    def bulk_mark_spam(self) -> int:
        selected = self._take_selection()
        if not selected:
            return 0
        self.store.upsert(
            EMAILS_TABLE,
            [
                {"id": email_id, "category": SPAM_CATEGORY, "category_source": CategorySource.MANUAL.value}
                for email_id in selected
            ],
            on_conflict="id",
        )
        counter("inbox.bulk.mark_spam", len(selected))
        self.fetch_data()
        return len(selected)

    def bulk_process(self) -> int:
        selected = self._take_selection()
        if not selected:
            return 0
        return self.process_inbox(selected)

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "mode": self._mode.value,
                "loading": self.loading,
                "error": self.error,
                "selected_ids": list(self.selected_ids),
                "counts": mailbox_counts(self.emails),
                "prompts": len(self.prompts),
                "counters": snapshot_counters(),
                "latencies": snapshot_latencies(),
            }


def _parse_rows(model: Any, rows: list[dict[str, Any]]) -> list[Any]:
    parsed = []
    for row in rows:
        try:
            parsed.append(model.from_row(row))
        except ValidationError as e:
            logger.warning("Skipping malformed %s row %s: %s", model.__name__, row.get("id"), e.errors()[0]["msg"])
    return parsed


def _auto_category(email: Email, proposed: Any) -> tuple[str | None, str | None]:
    """Category to store after processing; manual, Spam and Sent categories are kept."""
    if email.category_source is CategorySource.MANUAL or email.category in (SPAM_CATEGORY, SENT_CATEGORY):
        return email.category, email.category_source.value if email.category_source else None
    if isinstance(proposed, (dict, list)):
        proposed = coerce_to_plain_text(proposed)
    category = str(proposed).strip() if proposed not in (None, "") else None
    return category, CategorySource.AUTO.value if category else None


def _confidence(value: Any) -> float:
    try:
        confidence = float(value)
    except (TypeError, ValueError):
        return SPAM_DEFAULT_CONFIDENCE
    return min(1.0, max(0.0, confidence))
