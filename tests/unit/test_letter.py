"""Unit tests for the eight-part reply letter"""

from __future__ import annotations

from mailfortress.formatting.letter import ResponseLetter, build_structured_email


def test_defaults_fill_every_section():
    text = build_structured_email({})

    assert text.startswith("**1. Subject Line (ACTION-ORIENTED):**\n[ACTION/TOPIC]: [Brief Context/Document ID/Urgency]")
    assert "**2. Salutation:**\nDear [Recipient Name]," in text
    assert text.endswith("**8. Signature Block:**\n[Your Full Name]\n[Your Title]\n[Your Company/Department]")
    for number in range(1, 9):
        assert f"**{number}. " in text


def test_bullets_follow_body_paragraphs():
    text = build_structured_email({"bodyParagraphs": ["P1"], "bulletPoints": ["a", "b"]})
    assert "**4. Body Paragraphs (Details/Background):**\nP1\n\n- a\n\n- b" in text


def test_nulls_and_empty_values_use_placeholders():
    letter = ResponseLetter.from_payload({"salutation": None, "callToAction": "", "bulletPoints": []})
    assert letter.salutation == "Dear [Recipient Name],"
    assert letter.callToAction.startswith("Please review")
    assert letter.bulletPoints == []


def test_string_signature_split_into_lines():
    letter = ResponseLetter.from_payload({"signatureBlock": "Ana Silva\nCFO\n"})
    assert letter.signatureBlock == ["Ana Silva", "CFO"]


def test_unknown_fields_ignored():
    letter = ResponseLetter.from_payload({"subjectLine": "Re: Budget", "mood": "cheerful"})
    assert letter.subjectLine == "Re: Budget"


def test_missing_payload():
    assert "**7. Sign-off:**\nBest regards," in build_structured_email(None)
