"""Pydantic request/response models for the MailFortress API.

The /llm/* models mirror the camelCase JSON used by the browser client; all of
their fields are optional so missing-field checks can answer 400 with a
specific message instead of a generic validation error.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# =============================================================================
# /llm/*
# =============================================================================


class ProcessEmailRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    emailBody: str | None = None
    categorizationPrompt: str | None = None
    actionItemPrompt: str | None = None
    response_schema: dict[str, Any] | None = Field(default=None, alias="schema")


class ChatRequest(BaseModel):
    emailBody: str | None = None
    chatInstruction: str | None = None
    userQuery: str | None = None


class DetectSpamRequest(BaseModel):
    emailBody: str | None = None
    subject: str | None = None
    fromEmail: str | None = None


class GenerateResponseRequest(BaseModel):
    fromEmail: str | None = None
    subject: str | None = None
    emailBody: str | None = None


class ChatResponse(BaseModel):
    text: str
    suggestedFollowUps: list[str] = Field(default_factory=list)


class SpamResponse(BaseModel):
    isSpam: bool
    confidence: float
    reason: str


class GenerateResponseResponse(BaseModel):
    responseText: str


# =============================================================================
# /api/* (state store)
# =============================================================================


class EmailIdsRequest(BaseModel):
    """Optional explicit id list; omitted means "default selection"."""

    email_ids: list[str] | None = None

    @field_validator("email_ids", mode="before")
    @classmethod
    def _ids_to_str(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [str(item) for item in v]
        return v


class CategoryRequest(BaseModel):
    category: str | None = None

    @field_validator("category")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None


class AgentChatRequest(BaseModel):
    chat_instruction: str | None = None
    user_query: str
    context_body: str | None = None


class SendEmailRequest(BaseModel):
    to_email: str
    subject: str | None = None
    body: str


class BatchResult(BaseModel):
    updated: int


class ImportResult(BaseModel):
    imported: int
