"""
Response Normalizer - turn whatever the model sent back into display text.

Models wrap their answers in code fences, JSON envelopes, JSON-encoded strings
and any mix of those. ``unwrap`` peels those layers (bounded, never raises),
``normalize`` then applies line-level cleanup so drafts, bodies and replies
render consistently. ``parse_json`` is the structured counterpart used when a
JSON contract was requested.
"""

from __future__ import annotations

import json
import re
from typing import Any

from mailfortress.config import UNWRAP_MAX_PASSES
from mailfortress.formatting.envelopes import coerce_to_plain_text, decode_envelope, is_wrapper

_MISSING = object()

_LEADING_FENCE = re.compile(r"^```[\w+-]*[ \t]*\n?")
_TRAILING_FENCE = re.compile(r"\n?[ \t]*```[ \t]*$")
_FENCE_LINE = re.compile(r"^\s*```[\w+-]*\s*$")
_STRAY_FENCE = re.compile(r"`{3,}")
_SECTION_HEADER = re.compile(
    r"^(?:\*\*\s*\d+\.\s*[^*:\n]*:\s*\*\*\s*|\d+\.\s*[^:\n]*:\s*$)"
)
_BOLD_LINE = re.compile(r"^\*{2,}([^*]+)\*{2,}\s*$")
_BULLET = re.compile(r"^[ \t]*(?:[*•-][ \t]+)+")
_BLANK_RUN = re.compile(r"\n{3,}")


def strip_code_fences(text: str) -> str:
    """Remove a leading ``` / ```json marker and a trailing ``` marker."""
    stripped = text.strip()
    stripped = _LEADING_FENCE.sub("", stripped)
    stripped = _TRAILING_FENCE.sub("", stripped)
    return stripped.strip()


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return _MISSING


def unwrap(raw: Any, max_passes: int = UNWRAP_MAX_PASSES) -> str:
    """Peel fences, JSON-string layers and envelopes until plain text remains.

    Stops after ``max_passes`` iterations so self-referential input terminates.
    """
    working = raw if isinstance(raw, str) else coerce_to_plain_text(raw)

    for _ in range(max_passes):
        candidate = strip_code_fences(working)
        parsed = _loads(candidate)
        if parsed is _MISSING:
            return candidate
        if isinstance(parsed, str):
            working = parsed
            continue
        envelope = decode_envelope(parsed)
        if not is_wrapper(envelope):
            return candidate
        working = envelope.inner_text()

    return strip_code_fences(working)


def _clean_line(line: str) -> str:
    line = _STRAY_FENCE.sub("", line.rstrip())
    for _ in range(UNWRAP_MAX_PASSES):
        stripped = _SECTION_HEADER.sub("", line)
        if stripped == line:
            break
        line = stripped
    line = _BOLD_LINE.sub(r"\1", line)
    line = _BULLET.sub("- ", line)
    return line.rstrip()


def normalize_lines(text: str) -> str:
    """Line-level cleanup only; ``text`` is assumed to be plain already."""
    unified = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_clean_line(line) for line in unified.split("\n") if not _FENCE_LINE.match(line)]
    return _BLANK_RUN.sub("\n\n", "\n".join(lines)).strip()


def normalize(raw: Any) -> str:
    """Unwrap ``raw`` and return clean display text. Never raises on bad input.

    Line cleanup can expose another envelope (a bold-wrapped JSON line, a
    section header in front of one) and deep nesting can outlast one
    ``unwrap``, so both steps repeat until the text is a fixed point.
    """
    text = normalize_lines(unwrap(raw))
    # every changing pass drops a wrapper layer, so the text length bounds the loop
    for _ in range(len(text) + 1):
        again = normalize_lines(unwrap(text))
        if again == text:
            break
        text = again
    return text


def _outermost_object(text: str) -> str | None:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        return None
    return text[start : end + 1]


def parse_json(raw: Any, max_passes: int = UNWRAP_MAX_PASSES) -> Any | None:
    """Best-effort JSON extraction from model output.

    Handles fences, JSON-encoded strings, envelopes whose inner text is itself
    JSON, and objects embedded in surrounding prose. Returns None when nothing
    parses.
    """
    if isinstance(raw, (dict, list)):
        return raw
    working = raw if isinstance(raw, str) else coerce_to_plain_text(raw)

    for _ in range(max_passes):
        candidate = strip_code_fences(working)
        parsed = _loads(candidate)
        if parsed is _MISSING:
            embedded = _outermost_object(candidate)
            parsed = _loads(embedded) if embedded is not None else _MISSING
            if parsed is _MISSING:
                return None
        if isinstance(parsed, str):
            working = parsed
            continue
        if isinstance(parsed, dict):
            envelope = decode_envelope(parsed)
            if is_wrapper(envelope):
                inner = envelope.inner_text()
                if isinstance(_loads(strip_code_fences(inner)), (dict, list)):
                    working = inner
                    continue
        return parsed

    return None


def format_mail_payload(payload: Any, include_subject_label: bool = True) -> str:
    """Render a JSON mail payload (draft, reply, chat answer) as display text."""
    if payload is None or payload == "":
        return ""

    if isinstance(payload, str):
        candidate = strip_code_fences(payload)
        parsed = _loads(candidate)
        if parsed is _MISSING or isinstance(parsed, str):
            return normalize(candidate)
        return format_mail_payload(parsed, include_subject_label)

    if isinstance(payload, list):
        rendered = [format_mail_payload(item, include_subject_label) for item in payload]
        return normalize_lines("\n\n".join(text for text in rendered if text))

    if not isinstance(payload, dict):
        return normalize_lines(str(payload))

    if isinstance(payload.get("parts"), list):
        rendered = [
            format_mail_payload(part.get("text", part) if isinstance(part, dict) else part, include_subject_label)
            for part in payload["parts"]
        ]
        return "\n\n".join(text for text in rendered if text)

    chunks: list[str] = []
    subject = payload.get("subject") or payload.get("Subject") or payload.get("title")
    salutation = payload.get("salutation") or payload.get("greeting")
    body = payload.get("body") or payload.get("message") or payload.get("text")
    paragraphs = payload.get("paragraphs") if isinstance(payload.get("paragraphs"), list) else []
    closing = payload.get("closing") or payload.get("signature")

    if include_subject_label and subject:
        chunks.append(f"Subject: {coerce_to_plain_text(subject)}")
    if salutation:
        chunks.append(coerce_to_plain_text(salutation))
    if body:
        chunks.append(unwrap(body))
    chunks.extend(format_mail_payload(p, include_subject_label=False) for p in paragraphs)
    if payload.get("instructions"):
        chunks.append(coerce_to_plain_text(payload["instructions"]))
    if closing:
        chunks.append(coerce_to_plain_text(closing))

    follow_ups = payload.get("suggestedFollowUps")
    if isinstance(follow_ups, list) and follow_ups:
        items = "\n".join(f"- {coerce_to_plain_text(item)}" for item in follow_ups)
        chunks.append(f"Suggested follow-ups:\n{items}")

    if not chunks:
        return normalize(json.dumps(payload, ensure_ascii=False))
    return normalize_lines("\n\n".join(chunk for chunk in chunks if chunk))
