"""
Pytest configuration for MailFortress tests

Provides an in-memory stand-in for the Supabase-backed DataStore and a
scripted LLM gateway, so no test needs network access or credentials.
"""

from __future__ import annotations

import copy
import json
import threading
from collections.abc import Callable
from typing import Any

import pytest

from mailfortress.api import dependencies
from mailfortress.config import EMAILS_TABLE, PROMPTS_TABLE
from mailfortress.inbox.state import InboxState
from mailfortress.llm.gateway import GenerationError, GenerationOptions
from mailfortress.observability import telemetry
from mailfortress.triage.service import TriageService


def _matches(row: dict[str, Any], column: str, value: Any) -> bool:
    # ids are bigint in Postgres but travel as strings through the app
    return str(row.get(column)) == str(value)


class FakeDataStore:
    """Dict-backed implementation of the DataStore surface used by the app."""

    configured = True

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {EMAILS_TABLE: [], PROMPTS_TABLE: []}
        self.calls: list[tuple[str, str]] = []
        self._next_id = 1
        self._lock = threading.Lock()

    def _assign_id(self, row: dict[str, Any]) -> dict[str, Any]:
        row = copy.deepcopy(row)
        if row.get("id") is None:
            row["id"] = self._next_id
            self._next_id += 1
        return row

    def select(
        self,
        table: str,
        eq: dict[str, Any] | None = None,
        in_: dict[str, list[Any]] | None = None,
        not_true: list[str] | None = None,
        limit: int | None = None,
        order: tuple[str, bool] | None = None,
    ) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(("select", table))
            rows = list(self.tables.setdefault(table, []))
            for column, value in (eq or {}).items():
                rows = [row for row in rows if _matches(row, column, value)]
            for column, values in (in_ or {}).items():
                wanted = {str(v) for v in values}
                rows = [row for row in rows if str(row.get(column)) in wanted]
            for column in not_true or []:
                rows = [row for row in rows if row.get(column) is not True]
            if order is not None:
                column, descending = order
                rows.sort(key=lambda row: str(row.get(column) or ""), reverse=descending)
            if limit is not None:
                rows = rows[:limit]
            return copy.deepcopy(rows)

    def insert(self, table: str, rows: list[dict[str, Any]]) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(("insert", table))
            inserted = [self._assign_id(row) for row in rows]
            self.tables.setdefault(table, []).extend(inserted)
            return copy.deepcopy(inserted)

    def update(self, table: str, values: dict[str, Any], eq: dict[str, Any]) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(("update", table))
            updated = []
            for row in self.tables.setdefault(table, []):
                if all(_matches(row, column, value) for column, value in eq.items()):
                    row.update(copy.deepcopy(values))
                    updated.append(copy.deepcopy(row))
            return updated

    def upsert(self, table: str, rows: list[dict[str, Any]], on_conflict: str = "id") -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(("upsert", table))
            existing = self.tables.setdefault(table, [])
            result = []
            for row in rows:
                match = next((r for r in existing if _matches(r, on_conflict, row.get(on_conflict))), None)
                if match is None:
                    match = self._assign_id(row)
                    existing.append(match)
                else:
                    match.update(copy.deepcopy(row))
                result.append(copy.deepcopy(match))
            return result

    def delete_all(self, table: str) -> list[dict[str, Any]]:
        with self._lock:
            self.calls.append(("delete", table))
            deleted, self.tables[table] = self.tables.get(table, []), []
            return deleted

    def add_email(self, **fields: Any) -> dict[str, Any]:
        row = {
            "from_email": "sender@example.com",
            "subject": "Hello",
            "body": "Body text",
            "category": None,
            "category_source": None,
            "action_items": [],
            "drafts": [],
            "processed": False,
            "spam_confidence": None,
            "spam_reason": None,
            "inserted_at": "2024-01-01T00:00:00+00:00",
        }
        row.update(fields)
        return self.insert(EMAILS_TABLE, [row])[0]


class StubGateway:
    """Scripted LLM gateway.

    ``responder`` receives (prompt, options) and returns the raw reply text, or
    raises. Calls are recorded for assertions.
    """

    def __init__(self, responder: Callable[[str, GenerationOptions], str] | str | None = None) -> None:
        self.responder = responder
        self.calls: list[tuple[str, GenerationOptions]] = []
        self._lock = threading.Lock()

    def generate(self, prompt: str, options: GenerationOptions | None = None) -> str:
        options = options or GenerationOptions()
        with self._lock:
            self.calls.append((prompt, options))
        if self.responder is None:
            raise GenerationError("generation failed: all Gemini endpoints failed")
        if isinstance(self.responder, str):
            return self.responder
        return self.responder(prompt, options)

    def describe(self) -> dict[str, Any]:
        return {"ready": self.responder is not None, "api_key": False, "rest_endpoints": 0}


def reply_by_operation(
    process: dict[str, Any] | str | None = None,
    spam: dict[str, Any] | str | None = None,
    chat: dict[str, Any] | str | None = None,
    response: dict[str, Any] | str | None = None,
) -> Callable[[str, GenerationOptions], str]:
    """Responder that answers each triage operation with its own canned reply."""

    def as_text(value: Any) -> str:
        return value if isinstance(value, str) else json.dumps(value)

    def respond(prompt: str, options: GenerationOptions) -> str:
        if "email security analyst" in prompt:
            value = spam
        elif "executive assistant drafting a reply" in prompt:
            value = response
        elif "User Query:" in prompt:
            value = chat
        else:
            value = process
        if value is None:
            raise GenerationError("generation failed: all Gemini endpoints failed")
        return as_text(value)

    return respond


@pytest.fixture(autouse=True)
def reset_telemetry():
    telemetry.reset()
    yield
    telemetry.reset()


@pytest.fixture
def store() -> FakeDataStore:
    return FakeDataStore()


@pytest.fixture
def gateway() -> StubGateway:
    return StubGateway(
        reply_by_operation(
            process={"category": "Work", "action_items": [{"task": "Reply by Friday"}]},
            spam={"isSpam": False, "confidence": 0.9, "reason": "Looks legitimate"},
            chat={"text": "Here is a draft.", "suggestedFollowUps": ["Shorter?"]},
            response={"subjectLine": "Re: Budget", "salutation": "Hi Ana,"},
        )
    )


@pytest.fixture
def triage(gateway: StubGateway) -> TriageService:
    return TriageService(gateway)  # type: ignore[arg-type]


@pytest.fixture
def state(store: FakeDataStore, triage: TriageService) -> InboxState:
    return InboxState(store, triage, max_workers=2)  # type: ignore[arg-type]


@pytest.fixture
def installed_services(state: InboxState, triage: TriageService):
    """Install the test doubles as the process-wide services for API tests."""
    dependencies.set_triage_service(triage)
    dependencies.set_inbox_state(state)
    yield state
    dependencies.set_triage_service(None)
    dependencies.set_inbox_state(None)


@pytest.fixture
def make_triage():
    """Factory: TriageService over a StubGateway answering every prompt with ``reply``."""

    def factory(reply: Callable[[str, GenerationOptions], str] | str | None) -> tuple[TriageService, StubGateway]:
        gateway = StubGateway(reply)
        return TriageService(gateway), gateway  # type: ignore[arg-type]

    return factory


@pytest.fixture
def make_state(store: FakeDataStore):
    """Factory: InboxState over the shared fake store and a gateway built from ``responder``."""

    def factory(responder: Callable[[str, GenerationOptions], str] | str | None) -> tuple[InboxState, StubGateway]:
        gateway = StubGateway(responder)
        return InboxState(store, TriageService(gateway), max_workers=2), gateway  # type: ignore[arg-type]

    return factory


@pytest.fixture
def replies():
    """The per-operation responder builder, for tests that script their own replies."""
    return reply_by_operation
