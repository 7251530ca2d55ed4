"""Category rules: spam auto-categorization and mailbox filters."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from mailfortress.config import (
    INBOX_CATEGORY,
    SENT_CATEGORY,
    SPAM_CATEGORY,
    SPAM_CONFIDENCE_THRESHOLD,
)
from mailfortress.storage.models import CategorySource, Email


class Mailbox(str, Enum):
    ALL = "all"
    INBOX = "inbox"
    SPAM = "spam"
    SENT = "sent"


def apply_spam_verdict(
    category: str | None,
    is_spam: bool,
    confidence: float,
    threshold: float = SPAM_CONFIDENCE_THRESHOLD,
    category_source: CategorySource | str | None = None,
) -> str | None:
    """Category after a spam verdict.

    Below ``threshold`` the category is returned unchanged. Sent mail and
    manually categorized mail are never re-categorized.
    """
    if category == SENT_CATEGORY:
        return category
    if category_source in (CategorySource.MANUAL, CategorySource.MANUAL.value):
        return category
    if confidence < threshold:
        return category
    if is_spam:
        return SPAM_CATEGORY
    if category == SPAM_CATEGORY:
        return INBOX_CATEGORY
    return category or INBOX_CATEGORY


def in_mailbox(email: Email, mailbox: Mailbox | str) -> bool:
    mailbox = Mailbox(mailbox)
    if mailbox is Mailbox.SPAM:
        return email.category == SPAM_CATEGORY
    if mailbox is Mailbox.SENT:
        return email.category == SENT_CATEGORY
    if mailbox is Mailbox.INBOX:
        return email.category not in (SPAM_CATEGORY, SENT_CATEGORY)
    return True


def filter_mailbox(emails: Iterable[Email], mailbox: Mailbox | str) -> list[Email]:
    return [email for email in emails if in_mailbox(email, mailbox)]


def mailbox_counts(emails: Iterable[Email]) -> dict[str, int]:
    emails = list(emails)
    return {mailbox.value: len(filter_mailbox(emails, mailbox)) for mailbox in Mailbox}
