"""Unit tests for the emails/prompts row models"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from mailfortress.storage.models import CategorySource, Draft, Email, Prompt, PromptUpdate


class TestEmailFromRow:
    def test_int_id_and_nulls(self):
        email = Email.from_row(
            {"id": 7, "from_email": None, "subject": None, "body": None, "action_items": None, "drafts": None}
        )

        assert email.id == "7"
        assert email.from_email == "unknown"
        assert email.subject == "(no subject)"
        assert email.body == ""
        assert email.action_items == []
        assert email.drafts == []

    def test_null_processed_is_false(self):
        assert Email.from_row({"id": 1, "processed": None}).processed is False

    def test_drafts_parsed(self):
        email = Email.from_row({"id": 1, "drafts": [{"text": "hi", "suggestedFollowUps": ["more"]}]})
        assert email.drafts[0].suggested_follow_ups == ["more"]

    def test_legacy_drafts_coerced(self):
        email = Email.from_row(
            {
                "id": 1,
                "drafts": [
                    "plain legacy draft",
                    {"text": {"raw": "x"}},
                    {"text": "ok", "suggestedFollowUps": None, "created_at": None},
                ],
            }
        )

        assert [d.text for d in email.drafts][0] == "plain legacy draft"
        assert isinstance(email.drafts[1].text, str)
        assert email.drafts[2].suggested_follow_ups == []
        assert email.drafts[2].created_at

    def test_unknown_columns_ignored(self):
        assert Email.from_row({"id": 1, "legacy_flag": True}).id == "1"

    def test_mailbox_properties(self):
        assert Email(category="Sent").is_sent
        assert Email(category="Spam").is_spam


class TestEmailFromImport:
    def test_aliases(self):
        email = Email.from_import(
            {"from": "a@x.com", "title": "T", "snippet": "S", "timestamp": 1700000000000, "action_item": "Call"}
        )

        assert email.id is None
        assert email.from_email == "a@x.com"
        assert email.subject == "T"
        assert email.body == "S"
        assert email.action_items == ["Call"]
        assert email.inserted_at.startswith("2023-11-14T22:13:20")

    def test_sender_alias_and_index_id(self):
        email = Email.from_import({"sender": "b@x.com"}, index=4)
        assert email.from_email == "b@x.com"
        assert email.id == "5"

    def test_non_string_values_coerced(self):
        email = Email.from_import({"from": 12, "subject": 3.5, "body": ["x"]})
        assert (email.from_email, email.subject, email.body) == ("12", "3.5", "['x']")

    def test_rejects_non_objects(self):
        with pytest.raises(ValueError, match="must be objects"):
            Email.from_import(["not", "an", "object"])  # type: ignore[arg-type]


class TestEmailToRow:
    def test_row_shape(self):
        email = Email(
            id="3",
            category="Work",
            category_source=CategorySource.MANUAL,
            drafts=[Draft(text="hi", suggested_follow_ups=["a"])],
        )

        row = email.to_row(include_id=False)

        assert "id" not in row
        assert row["category_source"] == "manual"
        assert row["drafts"][0]["suggestedFollowUps"] == ["a"]
        assert "suggested_follow_ups" not in row["drafts"][0]

    def test_id_kept_when_requested(self):
        assert Email(id="3").to_row()["id"] == "3"


class TestPrompts:
    def test_from_row_and_export(self):
        prompt = Prompt.from_row({"id": 2, "prompt_type": "categorize", "prompt_text": None, "model": None})

        assert prompt.id == "2"
        assert prompt.prompt_text == ""
        assert prompt.export() == {"prompt_type": "categorize", "prompt_text": "", "model": prompt.model}

    def test_update_changes_skip_unset(self):
        assert PromptUpdate(prompt_text="New").changes() == {"prompt_text": "New"}

    def test_update_rejects_unknown_fields(self):
        with pytest.raises(ValidationError):
            PromptUpdate.model_validate({"prompt_type": "other"})
