"""Process-wide service instances, injectable for tests."""

from __future__ import annotations

import threading

from mailfortress.inbox.state import InboxState
from mailfortress.llm.gateway import LLMGateway
from mailfortress.storage.client import DataStore
from mailfortress.triage.service import TriageService

_lock = threading.Lock()
_triage: TriageService | None = None
_state: InboxState | None = None


def set_triage_service(service: TriageService | None) -> None:
    global _triage
    _triage = service


def set_inbox_state(state: InboxState | None) -> None:
    global _state
    _state = state


def get_triage_service() -> TriageService:
    global _triage
    with _lock:
        if _triage is None:
            _triage = TriageService(LLMGateway())
        return _triage


def get_inbox_state() -> InboxState:
    global _state
    triage = get_triage_service()
    with _lock:
        if _state is None:
            _state = InboxState(DataStore(), triage)
        return _state
