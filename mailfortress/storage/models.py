"""Pydantic models for the ``emails`` and ``prompts`` tables."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator

from mailfortress.config import LLM_DEFAULT_MODEL
from mailfortress.formatting.envelopes import coerce_to_plain_text


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PromptType(str, Enum):
    CATEGORIZE = "categorize"
    ACTION_ITEMS = "action_items"
    REPLY_GENERATE = "reply_generate"


class CategorySource(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


class Draft(BaseModel):
    """One assistant draft appended to an email.

    Older rows may hold a bare string or a non-string ``text``; both are
    coerced to plain text rather than rejected.
    """

    model_config = ConfigDict(populate_by_name=True)

    text: str = ""
    suggested_follow_ups: list[str] = Field(default_factory=list, alias="suggestedFollowUps")
    created_at: str = Field(default_factory=utc_now_iso)

    @model_validator(mode="before")
    @classmethod
    def _from_legacy(cls, data: Any) -> Any:
        if isinstance(data, (dict, BaseModel)):
            return data
        return {"text": coerce_to_plain_text(data)}

    @field_validator("text", mode="before")
    @classmethod
    def _text_to_str(cls, v: Any) -> str:
        return v if isinstance(v, str) else coerce_to_plain_text(v)

    @field_validator("suggested_follow_ups", mode="before")
    @classmethod
    def _follow_ups_to_str(cls, v: Any) -> list[str]:
        if not isinstance(v, list):
            return []
        return [item if isinstance(item, str) else coerce_to_plain_text(item) for item in v if item]

    @field_validator("created_at", mode="before")
    @classmethod
    def _missing_timestamp(cls, v: Any) -> Any:
        return utc_now_iso() if v in (None, "") else str(v)

    def to_row(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


def _id_to_str(v: Any) -> Any:
    return str(v) if isinstance(v, int) and not isinstance(v, bool) else v


class Email(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    from_email: str = "unknown"
    to_email: str | None = None
    subject: str = "(no subject)"
    body: str = ""
    category: str | None = None
    category_source: CategorySource | None = None
    action_items: list[Any] = Field(default_factory=list)
    drafts: list[Draft] = Field(default_factory=list)
    processed: bool = False
    spam_confidence: float | None = None
    spam_reason: str | None = None
    inserted_at: str | None = None
    processed_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)

    @field_validator("from_email", "subject", "body", "processed", mode="before")
    @classmethod
    def _null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @field_validator("action_items", "drafts", mode="before")
    @classmethod
    def _null_to_list(cls, v: Any) -> Any:
        if v is None:
            return []
        return v if isinstance(v, list) else [v]

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Email:
        return cls.model_validate(row)

    @classmethod
    def from_import(cls, item: dict[str, Any], index: int | None = None) -> Email:
        """Map a loosely-shaped imported object (from/sender/title/snippet...) onto an Email.

        ``index`` supplies a 1-based fallback id for local-only loads; database
        imports pass None and let the store assign ids.
        """
        if not isinstance(item, dict):
            raise ValueError(f"Email import items must be objects, got {type(item).__name__}")

        raw_id = item.get("id")
        email_id = _id_to_str(raw_id) if raw_id not in (None, "") else None
        if email_id is None and index is not None:
            email_id = str(index + 1)

        action_items = item.get("action_items")
        if action_items is None and item.get("action_item") is not None:
            action_items = item["action_item"]
        if action_items is not None and not isinstance(action_items, list):
            action_items = [action_items]

        return cls(
            id=email_id,
            from_email=str(_first(item, "from_email", "from", "sender") or "unknown"),
            to_email=item.get("to_email") or item.get("to"),
            subject=str(_first(item, "subject", "title") or "(no subject)"),
            body=str(_first(item, "body", "snippet") or ""),
            category=item.get("category"),
            action_items=action_items or [],
            drafts=item.get("drafts") or [],
            processed=bool(item.get("processed", False)),
            inserted_at=_timestamp(item.get("inserted_at") or item.get("timestamp")),
        )

    def to_row(self, include_id: bool = True) -> dict[str, Any]:
        row = self.model_dump(mode="json")
        row["drafts"] = [draft.to_row() for draft in self.drafts]
        if not include_id or row.get("id") is None:
            row.pop("id", None)
        return row

    @property
    def is_sent(self) -> bool:
        return self.category == "Sent"

    @property
    def is_spam(self) -> bool:
        return self.category == "Spam"


class Prompt(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str | None = None
    prompt_type: str
    prompt_text: str = ""
    model: str = LLM_DEFAULT_MODEL
    response: Any = Field(default_factory=dict)
    created_at: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_id(cls, v: Any) -> Any:
        return _id_to_str(v)

    @field_validator("prompt_text", "model", mode="before")
    @classmethod
    def _null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> Prompt:
        return cls.model_validate(row)

    def export(self) -> dict[str, Any]:
        return {"prompt_type": self.prompt_type, "prompt_text": self.prompt_text, "model": self.model}


class PromptUpdate(BaseModel):
    """Editable prompt fields; unset fields are left alone."""

    model_config = ConfigDict(extra="forbid")

    prompt_text: str | None = None
    model: str | None = None
    response: Any = None

    def changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


def _first(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _timestamp(value: Any) -> str:
    """Epoch milliseconds or ISO string -> ISO string; anything else -> now."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc).isoformat()
    if isinstance(value, str) and value.strip():
        return value
    return utc_now_iso()
