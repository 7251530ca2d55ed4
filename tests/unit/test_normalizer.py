"""Unit tests for the response normalizer

Tests cover:
- Code fence, JSON-string and envelope unwrapping
- Line-level cleanup (section headers, bold lines, bullets, blank runs)
- Best-effort JSON extraction
- Mail payload rendering
"""

from __future__ import annotations

import json

import pytest

from mailfortress.formatting.normalizer import (
    format_mail_payload,
    normalize,
    parse_json,
    strip_code_fences,
    unwrap,
)


def _nested_text(text: str, layers: int) -> str:
    for _ in range(layers):
        text = json.dumps({"text": text})
    return text


class TestUnwrap:
    """Peeling wrapper layers off model output"""

    def test_strips_json_code_fence(self):
        assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'

    def test_text_envelope_inside_fence(self):
        assert unwrap('```json\n{"text": "Hello there"}\n```') == "Hello there"

    def test_double_encoded_string(self):
        raw = json.dumps(json.dumps("double encoded"))
        assert unwrap(raw) == "double encoded"

    def test_parts_envelope_joins_parts(self):
        assert unwrap({"parts": [{"text": "a"}, {"text": "b"}]}) == "a\nb"

    def test_content_envelope(self):
        assert unwrap('{"content": "inside"}') == "inside"

    def test_plain_object_is_left_as_json(self):
        assert json.loads(unwrap('{"category": "Work"}')) == {"category": "Work"}

    def test_self_nesting_terminates(self):
        raw = "plain"
        for _ in range(10):
            raw = json.dumps(raw)
        # More layers than passes: the result is still a string and the call returns
        assert isinstance(unwrap(raw), str)


class TestNormalize:
    """Display cleanup applied after unwrapping"""

    def test_bold_section_headers_removed(self):
        text = "**1. Subject Line (ACTION-ORIENTED):**\nMeeting moved\n\n**2. Salutation:**\nHi Ana,"
        assert normalize(text) == "Meeting moved\n\nHi Ana,"

    def test_header_only_line_removed(self):
        assert normalize("3. Opening Sentence:\nThanks for writing.") == "Thanks for writing."

    def test_numbered_content_with_time_is_kept(self):
        assert normalize("2. Send by 10:00") == "2. Send by 10:00"

    def test_bold_line_unwrapped(self):
        assert normalize("**Important update**") == "Important update"

    def test_bullets_unified(self):
        assert normalize("* first\n• second\n- third") == "- first\n- second\n- third"

    def test_blank_runs_collapsed(self):
        assert normalize("a\n\n\n\n\nb") == "a\n\nb"

    def test_no_fences_survive(self):
        out = normalize("intro\n```\ncode\n```\noutro")
        assert "```" not in out

    def test_crlf_normalized(self):
        assert normalize("one\r\ntwo") == "one\ntwo"

    @pytest.mark.parametrize(
        "raw",
        [
            '```json\n{"text": "* item\\n\\n\\n**Bold**"}\n```',
            "**1. Subject Line:** Hello\n- a\n* b",
            json.dumps(json.dumps({"content": "nested"})),
            "",
            '**{"text": "Hi"}**',
            '**1. Subject Line:** {"text": "Hi"}',
            _nested_text("done", 7),
        ],
    )
    def test_idempotent(self, raw):
        once = normalize(raw)
        assert normalize(once) == once

    @pytest.mark.parametrize(
        "raw",
        ['**{"text": "Hi"}**', '**1. Subject Line:** {"text": "Hi"}', _nested_text("Hi", 7)],
    )
    def test_envelope_exposed_by_cleanup_is_unwrapped(self, raw):
        assert normalize(raw) == "Hi"

    def test_none_is_empty(self):
        assert normalize(None) == ""


class TestParseJson:
    """Structured extraction used for the JSON contracts"""

    def test_fenced_object(self):
        assert parse_json('```json\n{"isSpam": true}\n```') == {"isSpam": True}

    def test_object_embedded_in_prose(self):
        assert parse_json('Sure! Here it is: {"category": "Work"} hope it helps') == {"category": "Work"}

    def test_json_string_layer(self):
        assert parse_json(json.dumps(json.dumps({"a": 1}))) == {"a": 1}

    def test_envelope_with_json_inside(self):
        raw = json.dumps({"text": json.dumps({"category": "Finance"})})
        assert parse_json(raw) == {"category": "Finance"}

    def test_chat_shaped_object_is_kept(self):
        raw = '{"text": "plain answer", "suggestedFollowUps": ["More?"]}'
        assert parse_json(raw) == {"text": "plain answer", "suggestedFollowUps": ["More?"]}

    def test_no_json_returns_none(self):
        assert parse_json("no json here") is None

    def test_already_parsed_passthrough(self):
        assert parse_json({"a": 1}) == {"a": 1}


class TestFormatMailPayload:
    """Rendering drafts and replies stored as JSON"""

    def test_subject_body_closing(self):
        payload = '{"subject": "Hi", "body": "Line one", "closing": "Thanks"}'
        assert format_mail_payload(payload) == "Subject: Hi\n\nLine one\n\nThanks"

    def test_subject_label_can_be_omitted(self):
        payload = {"subject": "Hi", "body": "Line one"}
        assert format_mail_payload(payload, include_subject_label=False) == "Line one"

    def test_follow_ups_listed(self):
        out = format_mail_payload({"text": "Hi there", "suggestedFollowUps": ["More?"]})
        assert out == "Hi there\n\nSuggested follow-ups:\n- More?"

    def test_plain_text_passthrough(self):
        assert format_mail_payload("hello") == "hello"

    def test_empty(self):
        assert format_mail_payload(None) == ""
        assert format_mail_payload("") == ""
