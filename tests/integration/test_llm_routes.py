"""
Integration tests for the /llm/* endpoints

Runs the FastAPI app in-process with a scripted gateway:
- happy paths return the parsed contract
- missing fields answer 400, generation failures 500
- unparseable model output still answers 200 with the fallback body
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mailfortress.api import dependencies
from mailfortress.api.app import app


@pytest.fixture
def client(installed_services):
    return TestClient(app)


@pytest.fixture
def use_reply(make_triage):
    """Swap in a triage service whose gateway always answers ``reply``."""

    def install(reply):
        service, gateway = make_triage(reply)
        dependencies.set_triage_service(service)
        return gateway

    return install


class TestProcessEmail:
    def test_success(self, client):
        response = client.post("/llm/process-email", json={"emailBody": "Please send the deck by Friday."})

        assert response.status_code == 200
        assert response.json() == {"category": "Work", "action_items": [{"task": "Reply by Friday"}]}

    def test_schema_alias_reaches_prompt(self, client, gateway):
        client.post(
            "/llm/process-email",
            json={"emailBody": "Hi", "schema": {"type": "object", "required": ["category"]}},
        )

        prompt = gateway.calls[0][0]
        assert '"required"' in prompt

    def test_missing_body(self, client):
        response = client.post("/llm/process-email", json={"emailBody": "   "})

        assert response.status_code == 400
        assert response.json() == {"error": "emailBody is required"}

    def test_unparseable_reply_is_200(self, client, use_reply):
        use_reply("I think this is about work")

        response = client.post("/llm/process-email", json={"emailBody": "Hi"})

        assert response.status_code == 200
        assert response.json()["warning"] == "failed to parse JSON - returning raw text"
        assert response.json()["raw"] == "I think this is about work"

    def test_generation_failure_is_500(self, client, use_reply):
        use_reply(None)

        response = client.post("/llm/process-email", json={"emailBody": "Hi"})

        assert response.status_code == 500
        assert "all Gemini endpoints failed" in response.json()["error"]


class TestChat:
    def test_success(self, client):
        response = client.post("/llm/chat", json={"emailBody": "Lunch?", "userQuery": "Draft a yes"})

        assert response.status_code == 200
        assert response.json() == {"text": "Here is a draft.", "suggestedFollowUps": ["Shorter?"]}

    def test_missing_query(self, client):
        response = client.post("/llm/chat", json={"emailBody": "Lunch?"})

        assert response.status_code == 400
        assert response.json() == {"error": "userQuery is required"}

    def test_plain_text_reply(self, client, use_reply):
        use_reply("Sure, here you go.")

        response = client.post("/llm/chat", json={"userQuery": "Say hi"})

        assert response.json() == {"text": "Sure, here you go.", "suggestedFollowUps": []}


class TestDetectSpam:
    def test_success(self, client):
        response = client.post(
            "/llm/detect-spam",
            json={"emailBody": "Quarterly numbers attached", "subject": "Q3", "fromEmail": "cfo@company.com"},
        )

        assert response.status_code == 200
        assert response.json() == {"isSpam": False, "confidence": 0.9, "reason": "Looks legitimate"}

    def test_subject_alone_is_enough(self, client):
        assert client.post("/llm/detect-spam", json={"subject": "You won!"}).status_code == 200

    def test_missing_body_and_subject(self, client):
        response = client.post("/llm/detect-spam", json={"fromEmail": "x@y.com"})

        assert response.status_code == 400
        assert response.json() == {"error": "emailBody or subject is required"}

    def test_parse_failure_fallback(self, client, use_reply):
        use_reply("definitely spam")

        response = client.post("/llm/detect-spam", json={"subject": "Win"})

        assert response.status_code == 200
        assert response.json() == {
            "isSpam": False,
            "confidence": 0.5,
            "reason": "Failed to parse spam detection result",
        }


class TestGenerateResponse:
    def test_structured_letter(self, client):
        response = client.post(
            "/llm/generate-response",
            json={"fromEmail": "ana@example.com", "subject": "Budget", "emailBody": "Can you confirm?"},
        )

        text = response.json()["responseText"]
        assert response.status_code == 200
        assert "Re: Budget" in text
        assert "Hi Ana," in text
        assert "8. Signature Block" in text

    def test_missing_fields(self, client):
        response = client.post("/llm/generate-response", json={"fromEmail": "ana@example.com"})
        assert response.status_code == 400


def test_malformed_body_is_400(client):
    response = client.post("/llm/chat", json={"userQuery": ["not", "a", "string"]})

    assert response.status_code == 400
    body = response.json()
    assert body["error"].startswith("Invalid request format")
    assert body["invalid_fields"] == ["userQuery"]


class _ChattyTriage:
    def chat(self, email_body, chat_instruction, user_query):
        return {"text": "Hi", "suggestedFollowUps": ["More?"], "debug": "internal"}


class TestResponseModels:
    @pytest.mark.parametrize(
        "path, model",
        [
            ("/llm/chat", "ChatResponse"),
            ("/llm/detect-spam", "SpamResponse"),
            ("/llm/generate-response", "GenerateResponseResponse"),
        ],
    )
    def test_documented_in_openapi(self, client, path, model):
        schema = client.get("/openapi.json").json()
        ok = schema["paths"][path]["post"]["responses"]["200"]["content"]["application/json"]["schema"]
        assert ok["$ref"].endswith(f"/{model}")

    def test_unknown_keys_are_dropped(self, client):
        dependencies.set_triage_service(_ChattyTriage())

        response = client.post("/llm/chat", json={"userQuery": "Say hi"})

        assert response.status_code == 200
        assert response.json() == {"text": "Hi", "suggestedFollowUps": ["More?"]}
