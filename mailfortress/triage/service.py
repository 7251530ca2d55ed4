"""
Triage operations over the LLM gateway.

Each operation builds its prompt, calls the gateway with its own generation
options, and parses the JSON contract. Unparseable output never raises: every
operation has a documented fallback body. GenerationError (no path produced
text) propagates to the caller.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from mailfortress.config import SPAM_DEFAULT_CONFIDENCE
from mailfortress.formatting.envelopes import coerce_to_plain_text
from mailfortress.formatting.letter import build_structured_email
from mailfortress.formatting.normalizer import normalize, parse_json
from mailfortress.llm.gateway import GenerationOptions, LLMGateway
from mailfortress.llm.prompts import (
    build_chat_prompt,
    build_process_email_prompt,
    build_response_prompt,
    build_spam_prompt,
)
from mailfortress.observability.logging import get_logger
from mailfortress.observability.telemetry import counter, log_event

logger = get_logger(__name__)

PROCESS_OPTIONS = GenerationOptions(temperature=0.0, max_output_tokens=800)
CHAT_OPTIONS = GenerationOptions(temperature=0.2, max_output_tokens=1024)
SPAM_OPTIONS = GenerationOptions(temperature=0.0, max_output_tokens=300)
RESPONSE_OPTIONS = GenerationOptions(temperature=0.3, max_output_tokens=600)

PROCESS_PARSE_WARNING = "failed to parse JSON - returning raw text"
SPAM_PARSE_FAILURE_REASON = "Failed to parse spam detection result"


class SpamVerdict(BaseModel):
    """Validated spam-detection result."""

    isSpam: bool = False
    confidence: float = SPAM_DEFAULT_CONFIDENCE
    reason: str = ""

    @field_validator("confidence", mode="before")
    @classmethod
    def _default_confidence(cls, v: Any) -> Any:
        return SPAM_DEFAULT_CONFIDENCE if v is None or v == "" else v

    @field_validator("confidence")
    @classmethod
    def _clamp(cls, v: float) -> float:
        return min(1.0, max(0.0, v))

    @field_validator("reason", mode="before")
    @classmethod
    def _reason_text(cls, v: Any) -> str:
        return normalize(v) if v is not None else ""

    @classmethod
    def parse_failure(cls) -> SpamVerdict:
        return cls(isSpam=False, confidence=SPAM_DEFAULT_CONFIDENCE, reason=SPAM_PARSE_FAILURE_REASON)


class TriageService:
    """The four LLM operations behind /llm/* and the inbox state store."""

    def __init__(self, gateway: LLMGateway) -> None:
        self.gateway = gateway

    def process_email(
        self,
        email_body: str,
        categorization_prompt: str | None = None,
        action_item_prompt: str | None = None,
        schema: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Categorize and extract action items.

        Returns the parsed object with ``category`` and ``action_items`` always
        present, or ``{"warning", "raw"}`` when the reply was not JSON.
        """
        prompt = build_process_email_prompt(email_body, categorization_prompt, action_item_prompt, schema)
        raw = self.gateway.generate(prompt, PROCESS_OPTIONS)
        parsed = parse_json(raw)

        if not isinstance(parsed, dict):
            counter("triage.process.parse_failed")
            logger.warning("process-email: could not parse model output as a JSON object")
            return {"warning": PROCESS_PARSE_WARNING, "raw": raw}

        result = dict(parsed)
        result.setdefault("category", None)
        if not isinstance(result.get("action_items"), list):
            tasks = parsed.get("tasks")
            result["action_items"] = tasks if isinstance(tasks, list) else []
        counter("triage.process.success")
        return result

    def chat(self, email_body: str | None, chat_instruction: str | None, user_query: str) -> dict[str, Any]:
        prompt = build_chat_prompt(email_body, chat_instruction, user_query)
        raw = self.gateway.generate(prompt, CHAT_OPTIONS)
        parsed = parse_json(raw)

        if isinstance(parsed, dict) and parsed.get("text") is not None:
            follow_ups = parsed.get("suggestedFollowUps")
            return {
                "text": normalize(parsed["text"]),
                "suggestedFollowUps": [
                    coerce_to_plain_text(item).strip() for item in follow_ups if item
                ]
                if isinstance(follow_ups, list)
                else [],
            }

        counter("triage.chat.parse_failed")
        return {"text": normalize(raw), "suggestedFollowUps": []}

    def detect_spam(
        self,
        email_body: str | None,
        subject: str | None,
        from_email: str | None = None,
    ) -> dict[str, Any]:
        prompt = build_spam_prompt(email_body, subject, from_email)
        raw = self.gateway.generate(prompt, SPAM_OPTIONS)
        parsed = parse_json(raw)

        verdict: SpamVerdict
        if isinstance(parsed, dict):
            try:
                verdict = SpamVerdict.model_validate(parsed)
            except ValidationError as e:
                logger.warning("detect-spam: invalid verdict fields: %s", [err["loc"] for err in e.errors()])
                verdict = SpamVerdict.parse_failure()
        else:
            verdict = SpamVerdict.parse_failure()

        if verdict.reason == SPAM_PARSE_FAILURE_REASON:
            counter("triage.spam.parse_failed")
        log_event("triage.spam.verdict", is_spam=verdict.isSpam, confidence=verdict.confidence)
        return verdict.model_dump()

    def generate_response(
        self,
        from_email: str | None,
        subject: str | None,
        email_body: str | None,
    ) -> dict[str, Any]:
        prompt = build_response_prompt(from_email, subject, email_body)
        raw = self.gateway.generate(prompt, RESPONSE_OPTIONS)
        parsed = parse_json(raw)

        if isinstance(parsed, dict):
            return {"responseText": normalize(build_structured_email(parsed))}

        counter("triage.response.parse_failed")
        logger.warning("generate-response: JSON parse failed, falling back to raw text")
        return {"responseText": normalize(raw)}
