"""Eight-part structured reply letter."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator

from mailfortress.formatting.envelopes import coerce_to_plain_text

DEFAULT_SIGNATURE = ["[Your Full Name]", "[Your Title]", "[Your Company/Department]"]


class ResponseLetter(BaseModel):
    """Reply letter as returned by the model, with placeholders for anything missing."""

    subjectLine: str = "[ACTION/TOPIC]: [Brief Context/Document ID/Urgency]"
    salutation: str = "Dear [Recipient Name],"
    openingSentence: str = "I am writing to provide an update on the current request."
    bodyParagraphs: list[str] = Field(
        default_factory=lambda: ["Provide relevant background and current status here."]
    )
    bulletPoints: list[str] = Field(default_factory=list)
    callToAction: str = "Please review this information and let me know how you would like to proceed."
    closingStatement: str = "Thank you for your time and prompt assistance."
    signOff: str = "Best regards,"
    signatureBlock: list[str] = Field(default_factory=lambda: list(DEFAULT_SIGNATURE))

    @field_validator(
        "subjectLine",
        "salutation",
        "openingSentence",
        "callToAction",
        "closingStatement",
        "signOff",
        mode="before",
    )
    @classmethod
    def _coerce_text(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return coerce_to_plain_text(v)

    @field_validator("bodyParagraphs", "bulletPoints", "signatureBlock", mode="before")
    @classmethod
    def _coerce_lines(cls, v: Any) -> Any:
        if v is None:
            return v
        if isinstance(v, str):
            return [line for line in v.split("\n") if line.strip()]
        if isinstance(v, list):
            return [coerce_to_plain_text(item) for item in v]
        return [coerce_to_plain_text(v)]

    @classmethod
    def from_payload(cls, data: dict[str, Any] | None) -> ResponseLetter:
        """Build from a parsed model payload, dropping nulls and empty values."""
        data = data or {}
        fields = {key: value for key, value in data.items() if key in cls.model_fields and value not in (None, "", [])}
        return cls.model_validate(fields)


def build_structured_email(data: dict[str, Any] | None) -> str:
    """Render the letter with its numbered bold section headers."""
    letter = ResponseLetter.from_payload(data)
    body_lines = list(letter.bodyParagraphs)
    body_lines.extend(f"- {point}" for point in letter.bulletPoints)

    sections = [
        ("1. Subject Line (ACTION-ORIENTED)", letter.subjectLine),
        ("2. Salutation", letter.salutation),
        ("3. Opening Sentence (Purpose/Context)", letter.openingSentence),
        ("4. Body Paragraphs (Details/Background)", "\n\n".join(body_lines)),
        ("5. Call to Action (CTA)", letter.callToAction),
        ("6. Closing Statement", letter.closingStatement),
        ("7. Sign-off", letter.signOff),
        ("8. Signature Block", "\n".join(letter.signatureBlock)),
    ]
    return "\n\n".join(f"**{header}:**\n{content}" for header, content in sections)
