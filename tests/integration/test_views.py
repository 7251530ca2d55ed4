"""
Integration tests for the server-rendered pages

Form actions must answer 303 and carry failures back as a notice; pages
render from the shared state store.
"""

from __future__ import annotations

import json
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from mailfortress.api import dependencies
from mailfortress.api.app import app
from mailfortress.config import EMAILS_TABLE
from mailfortress.storage.seed import seed_prompts_if_empty


@pytest.fixture
def client(installed_services):
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def loaded(installed_services, store):
    store.add_email(subject="Quarterly plan", from_email="boss@company.com")
    store.add_email(subject="Cheap pills", category="Spam", category_source="auto")
    seed_prompts_if_empty(store)
    installed_services.fetch_data()
    return installed_services


def _location(response) -> tuple[str, dict[str, list[str]]]:
    url = urlparse(response.headers["location"])
    return url.path, parse_qs(url.query)


class TestInboxPage:
    def test_first_visit_seeds_the_inbox(self, client, store):
        response = client.get("/")

        assert response.status_code == 200
        assert len(store.tables[EMAILS_TABLE]) == 12
        assert "Tech Weekly: AI Revolution" in response.text

    def test_first_visit_starts_auto_process(self, client, store, gateway):
        client.get("/")

        assert gateway.calls
        assert all(row["processed"] for row in store.tables[EMAILS_TABLE])
        assert all(row["spam_confidence"] is not None for row in store.tables[EMAILS_TABLE])

    def test_mailbox_filter_and_detail(self, client, loaded):
        response = client.get("/", params={"mailbox": "spam", "email_id": "2"})

        assert "Cheap pills" in response.text
        assert "Quarterly plan" not in response.text
        assert "Save category" in response.text

    def test_missing_email_shows_notice(self, client, loaded):
        response = client.get("/", params={"email_id": "404"})

        assert response.status_code == 200
        assert "Opening email failed: Email 404 not found" in response.text


class TestActions:
    def test_process_redirects_with_count(self, client, loaded, store):
        response = client.post("/actions/process", data={"mailbox": "inbox"})

        path, query = _location(response)
        assert response.status_code == 303
        assert path == "/"
        assert query["mailbox"] == ["inbox"]
        assert query["notice"] == ["Processed 2 emails"]
        assert store.tables[EMAILS_TABLE][0]["processed"] is True

    def test_failure_becomes_notice(self, client, loaded, make_state):
        failing, _ = make_state(None)
        dependencies.set_inbox_state(failing)

        response = client.post("/emails/1/chat", data={"user_query": "Summarize"})

        _, query = _location(response)
        assert response.status_code == 303
        assert query["email_id"] == ["1"]
        assert query["notice"][0].startswith("Agent chat failed:")

    def test_chat_uses_reply_prompt(self, client, loaded, gateway, store):
        client.post("/emails/1/chat", data={"user_query": "Summarize"})

        assert "Draft a professional reply to this email." in gateway.calls[0][0]
        assert len(store.tables[EMAILS_TABLE][0]["drafts"]) == 1

    def test_selection_round_trip(self, client, loaded):
        client.post("/emails/1/toggle", data={"mailbox": "all"})
        assert loaded.selected_ids == ["1"]

        response = client.post("/actions/mark-spam", data={"mailbox": "all"})

        _, query = _location(response)
        assert query["notice"] == ["Marked 1 emails as spam"]
        assert loaded.get_email("1").category == "Spam"

    def test_category_form(self, client, loaded, store):
        response = client.post("/emails/1/category", data={"category": " Finance ", "mailbox": "all"})

        assert response.status_code == 303
        assert store.tables[EMAILS_TABLE][0]["category"] == "Finance"
        assert store.tables[EMAILS_TABLE][0]["category_source"] == "manual"

    def test_import_bad_file(self, client, loaded):
        response = client.post("/actions/import", files={"file": ("emails.json", b"{oops", "application/json")})

        _, query = _location(response)
        assert query["notice"][0].startswith("Import failed: file is not valid JSON")

    def test_import_file(self, client, loaded, store):
        payload = json.dumps([{"from": "new@x.com", "subject": "Imported"}]).encode()

        response = client.post("/actions/import", files={"file": ("emails.json", payload, "application/json")})

        _, query = _location(response)
        assert query["notice"] == ["Imported 1 emails"]
        assert len(store.tables[EMAILS_TABLE]) == 3
        imported = next(row for row in store.tables[EMAILS_TABLE] if row["subject"] == "Imported")
        assert imported["processed"] is True


class TestCompose:
    def test_page_lists_topics(self, client):
        response = client.get("/compose")

        assert response.status_code == 200
        assert "<select" in response.text

    def test_draft_is_rendered(self, client, loaded, store):
        before = len(store.tables[EMAILS_TABLE])

        response = client.post("/compose", data={"topic": "Meeting request", "details": "Next Tuesday"})

        assert "Here is a draft." in response.text
        assert len(store.tables[EMAILS_TABLE]) == before

    def test_send_goes_to_sent_mailbox(self, client, loaded):
        response = client.post("/compose/send", data={"to_email": "bob@example.com", "subject": "Hi", "body": "Hello"})

        path, query = _location(response)
        assert path == "/"
        assert query["mailbox"] == ["sent"]
        assert query["notice"] == ["Email sent"]
        assert loaded.mailbox_counts()["sent"] == 1

    def test_send_validation_returns_to_compose(self, client, loaded):
        response = client.post("/compose/send", data={"to_email": "", "body": "Hello"})

        path, query = _location(response)
        assert path == "/compose"
        assert query["notice"] == ["Sending failed: to_email is required"]


class TestRespond:
    def test_generate_reply(self, client, loaded):
        response = client.post("/respond", data={"email_id": "1"})

        assert response.status_code == 200
        assert "Re: Quarterly plan" in response.text
        assert "boss@company.com" in response.text

    def test_send_reply(self, client, loaded):
        response = client.post(
            "/respond/send",
            data={"email_id": "1", "to_email": "boss@company.com", "subject": "Re: Quarterly plan", "body": "Done."},
        )

        _, query = _location(response)
        assert query["notice"] == ["Reply sent"]


class TestPromptsPage:
    def test_edit_prompt(self, client, loaded):
        prompt = loaded.prompts[0]

        response = client.post(f"/prompts/{prompt.id}", data={"prompt_text": "Short answers only.", "model": ""})

        path, query = _location(response)
        assert path == "/prompts"
        assert query["notice"] == ["Prompt saved"]
        assert loaded.prompts[0].prompt_text == "Short answers only."

    def test_page_renders(self, client, loaded):
        response = client.get("/prompts")

        assert response.status_code == 200
        assert "categorize" in response.text
