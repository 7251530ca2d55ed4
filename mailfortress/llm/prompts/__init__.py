"""
Prompt Management Module

Prompt templates live in .txt files next to this module so wording can be
tuned without touching code. Every prompt ends with a JSON contract; callers
parse the reply with mailfortress.formatting.normalizer.parse_json.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from mailfortress.config import PROMPT_BODY_MAX_CHARS

PROMPTS_DIR = Path(__file__).parent

DEFAULT_PROCESS_DIRECTIVE = (
    'Return ONLY a JSON object with fields: "category" (string) and '
    '"action_items" (array of objects or strings).'
)
DEFAULT_CHAT_INSTRUCTION = "You are a helpful email assistant. Answer the user's query about the email below."


class PromptLoader:
    """Load and cache prompt templates from files"""

    def __init__(self) -> None:
        self._cache: dict[str, str] = {}

    def load_prompt(self, prompt_name: str) -> str:
        """
        Load a prompt template from file.

        Args:
            prompt_name: Name of the prompt file (without .txt extension)

        Returns:
            Prompt template string
        """
        if prompt_name not in self._cache:
            prompt_path = PROMPTS_DIR / f"{prompt_name}.txt"
            if not prompt_path.exists():
                raise FileNotFoundError(f"Prompt file not found: {prompt_path}")
            self._cache[prompt_name] = prompt_path.read_text(encoding="utf-8")
        return self._cache[prompt_name]

    def render(self, prompt_name: str, **kwargs: Any) -> str:
        return self.load_prompt(prompt_name).format(**kwargs)


_loader = PromptLoader()


def _clip(text: str | None, max_length: int = PROMPT_BODY_MAX_CHARS) -> str:
    text = (text or "").strip()
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def build_process_email_prompt(
    email_body: str,
    categorization_prompt: str | None = None,
    action_item_prompt: str | None = None,
    schema: dict[str, Any] | None = None,
) -> str:
    """Categorize + extract action items, in one call."""
    parts: list[str] = []
    if categorization_prompt:
        parts.append(f"Categorize the following email:\n\n{categorization_prompt}")
    if action_item_prompt:
        parts.append(f"Extract action items from the following email:\n\n{action_item_prompt}")
    parts.append(f"Email body:\n{_clip(email_body)}")
    if schema:
        parts.append(f"Return ONLY valid JSON that matches this schema: {json.dumps(schema)}.")
    else:
        parts.append(DEFAULT_PROCESS_DIRECTIVE)
    parts.append("Respond with JSON only.")
    return "\n\n".join(parts)


def build_chat_prompt(email_body: str | None, chat_instruction: str | None, user_query: str) -> str:
    return _loader.render(
        "chat",
        instruction=(chat_instruction or "").strip() or DEFAULT_CHAT_INSTRUCTION,
        email_body=_clip(email_body) or "(no email provided)",
        user_query=_clip(user_query, 4000),
    )


def build_spam_prompt(email_body: str | None, subject: str | None, from_email: str | None) -> str:
    return _loader.render(
        "spam_detection",
        email_body=_clip(email_body) or "(empty)",
        subject=_clip(subject, 300) or "(no subject)",
        from_email=_clip(from_email, 200) or "unknown",
    )


def build_response_prompt(from_email: str | None, subject: str | None, email_body: str | None) -> str:
    return _loader.render(
        "generate_response",
        email_body=_clip(email_body) or "(empty)",
        subject=_clip(subject, 300) or "(no subject)",
        from_email=_clip(from_email, 200) or "unknown",
    )
