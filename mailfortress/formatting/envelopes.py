"""
Known envelope shapes that LLM APIs (and the models themselves) wrap text in.

``decode_envelope`` maps a parsed JSON value onto exactly one variant; callers
then ask the variant for its inner text instead of inspecting keys themselves.

    {"parts": [{"text": "a"}, {"text": "b"}]}  -> PartsEnvelope
    {"text": "..."}                            -> TextEnvelope
    {"content": "..."}                         -> ContentEnvelope
    anything else                              -> PlainText
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Union

# Nested envelopes deeper than this are rendered as JSON instead of recursed.
MAX_DEPTH = 5


@dataclass(frozen=True)
class PartsEnvelope:
    parts: tuple[Any, ...]

    def inner_text(self, depth: int = 0) -> str:
        texts = [coerce_to_plain_text(part, depth + 1) for part in self.parts]
        return "\n".join(text for text in texts if text)


@dataclass(frozen=True)
class TextEnvelope:
    text: Any

    def inner_text(self, depth: int = 0) -> str:
        return coerce_to_plain_text(self.text, depth + 1)


@dataclass(frozen=True)
class ContentEnvelope:
    content: Any

    def inner_text(self, depth: int = 0) -> str:
        return coerce_to_plain_text(self.content, depth + 1)


@dataclass(frozen=True)
class PlainText:
    text: str

    def inner_text(self, depth: int = 0) -> str:  # noqa: ARG002
        return self.text


Envelope = Union[PartsEnvelope, TextEnvelope, ContentEnvelope, PlainText]


def decode_envelope(value: Any) -> Envelope:
    """Classify a parsed JSON value as one of the known envelope variants."""
    if isinstance(value, dict):
        if isinstance(value.get("parts"), list):
            return PartsEnvelope(parts=tuple(value["parts"]))
        if value.get("text") is not None:
            return TextEnvelope(text=value["text"])
        if value.get("content") is not None:
            return ContentEnvelope(content=value["content"])
        return PlainText(text=json.dumps(value, ensure_ascii=False))
    if isinstance(value, str):
        return PlainText(text=value)
    if value is None:
        return PlainText(text="")
    return PlainText(text=json.dumps(value, ensure_ascii=False) if isinstance(value, list) else str(value))


def is_wrapper(envelope: Envelope) -> bool:
    return not isinstance(envelope, PlainText)


def coerce_to_plain_text(value: Any, depth: int = 0) -> str:
    """Flatten strings, lists and envelopes into a single text block."""
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if depth >= MAX_DEPTH:
        return json.dumps(value, ensure_ascii=False) if isinstance(value, (dict, list)) else str(value)
    if isinstance(value, list):
        texts = [coerce_to_plain_text(item, depth + 1) for item in value]
        return "\n\n".join(text for text in texts if text)
    return decode_envelope(value).inner_text(depth)
