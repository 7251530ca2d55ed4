"""Seed data: mock inbox, default prompts and the reset fixture set."""

from __future__ import annotations

from typing import Any

from mailfortress.config import EMAILS_TABLE, LLM_DEFAULT_MODEL, PROMPTS_TABLE
from mailfortress.observability.logging import get_logger
from mailfortress.storage.client import DataStore
from mailfortress.storage.models import Email, PromptType, utc_now_iso

logger = get_logger(__name__)

MOCK_INBOX: list[dict[str, Any]] = [
    {"id": "1", "from": "newsletter@techweekly.com", "subject": "Tech Weekly: AI Revolution",
     "snippet": "This week in tech: How AI is changing the landscape of..."},
    {"id": "2", "from": "boss@company.com", "subject": "Urgent: Q3 Report",
     "snippet": "Please review the attached Q3 report by EOD."},
    {"id": "3", "from": "mom@family.com", "subject": "Sunday Dinner",
     "snippet": "Are you coming over for dinner this Sunday? We are making..."},
    {"id": "4", "from": "billing@service.com", "subject": "Invoice #12345",
     "snippet": "Your monthly invoice is ready for view."},
    {"id": "5", "from": "team@project.com", "subject": "Standup Notes",
     "snippet": "Here are the notes from today's standup meeting."},
    {"id": "6", "from": "promo@shop.com", "subject": "50% Off Everything!",
     "snippet": "Don't miss out on our biggest sale of the year."},
    {"id": "7", "from": "security@bank.com", "subject": "Login Alert",
     "snippet": "We detected a new login to your account."},
    {"id": "8", "from": "recruiter@linkedin.com", "subject": "New Opportunity",
     "snippet": "I came across your profile and thought you would be a great fit..."},
    {"id": "9", "from": "support@software.com", "subject": "Ticket #999 Resolved",
     "snippet": "Your support ticket has been marked as resolved."},
    {"id": "10", "from": "friend@gmail.com", "subject": "Trip Photos",
     "snippet": "Check out the photos from our hiking trip!"},
    {"id": "11", "from": "webinar@edu.com", "subject": "Upcoming Webinar",
     "snippet": "Join us for a deep dive into React hooks."},
    {"id": "12", "from": "updates@app.com", "subject": "Version 2.0 Released",
     "snippet": "We have updated our app with new features."},
]

DEFAULT_PROMPTS: dict[PromptType, dict[str, str]] = {
    PromptType.CATEGORIZE: {
        "title": "Categorize Email",
        "system": "Categorize this email based on its content. Use one of: Work, Personal, "
        "Finance, Promotions, Other.",
    },
    PromptType.ACTION_ITEMS: {
        "title": "Extract Action Items",
        "system": "Extract actionable tasks from the email, each with a priority "
        "(high, medium, low) and a due date when one is mentioned.",
    },
    PromptType.REPLY_GENERATE: {
        "title": "Generate Reply",
        "system": "Draft a professional reply to this email.",
    },
}

# Fixture set written by ``mailfortress reset-emails``; timestamps are epoch ms.
RESET_EMAILS: list[dict[str, Any]] = [
    {
        "sender": "ceo.globaldynamics@gmail.com",
        "subject": "URGENT: Finalize Q4 Budget Presentation Data",
        "timestamp": 1709280000000,
        "body": "Team, I need the consolidated Q4 spending report and projections for Q1/Q2 next year. "
        "Please submit your final, signed budget reports directly to my assistant by 10 AM TUESDAY. "
        "This is critical for the board meeting. We must not be late.",
    },
    {
        "sender": "marketing.weeklybrief@gmail.com",
        "subject": "10 Hidden SEO Secrets to Boost Traffic in 2024",
        "timestamp": 1709280600000,
        "body": "Welcome to our weekly insights! This edition dives deep into leveraging semantic search "
        "for higher rankings. No immediate action required, but this is excellent professional "
        "development reading. Happy analyzing!",
    },
    {
        "sender": "scheduling.assistant@gmail.com",
        "subject": "Request to book 1:1 meeting: Project Gemini Onboarding",
        "timestamp": 1709281200000,
        "body": "Hi, I am scheduling a 30-minute introductory meeting for you with the new Project Gemini "
        "team lead, Jane Smith. Are you available next Thursday or Friday afternoon? Please confirm "
        "your availability by the end of the day.",
    },
    {
        "sender": "hr.payroll.system@gmail.com",
        "subject": "ACTION REQUIRED: Update W-4 Tax Information",
        "timestamp": 1709281800000,
        "body": "Our records indicate that your W-4 form is outdated. To avoid incorrect tax withholding, "
        "please log into the HR portal and update your submission by March 15th. This is an "
        "administrative necessity.",
    },
    {
        "sender": "thebankofcommerce.security@gmail.com",
        "subject": "Security Alert: Unusual Login Detected",
        "timestamp": 1709282400000,
        "body": "We detected a login attempt from an unrecognized location (Vietnam). If this was not you, "
        "click the link below IMMEDIATELY to verify your account credentials and prevent account "
        "suspension. Failure to act will result in account closure.",
    },
    {
        "sender": "team.lead.rnd@gmail.com",
        "subject": "Follow-up: Database Migration Issue",
        "timestamp": 1709283000000,
        "body": "I looked into the legacy database export you ran last week. There were errors in the "
        "`user_preferences` table. Can you please re-run the export script, making sure to include the "
        "`--no-locks` flag? It needs to be completed by the end of the day today, 5 PM.",
    },
    {
        "sender": "alice.johnson.colleague@gmail.com",
        "subject": "Quick question about the Q3 report format",
        "timestamp": 1709283600000,
        "body": "Hey, I saw your section on the Q3 report. Do you happen to have a clean version of the final "
        "graphics file in PNG format? I need it to finalize my slide deck for the marketing review "
        "presentation.",
    },
    {
        "sender": "security.update.team@gmail.com",
        "subject": "Patch Tuesday: Mandatory System Restart Tonight",
        "timestamp": 1709284200000,
        "body": "All internal systems will undergo a mandatory security patch update and restart tonight at "
        "2:00 AM local time. Please make sure your computer is plugged in and connected to the "
        "corporate network before leaving the office today.",
    },
    {
        "sender": "yourfavoriteonlinestore@gmail.com",
        "subject": "Your Cart is Waiting! 20% Off Inside",
        "timestamp": 1709284800000,
        "body": "You left items in your cart! Don't miss out on this limited-time offer. Use code CART20 at "
        "checkout for 20% off. Sale ends tomorrow. Unsubscribe here if you wish.",
    },
    {
        "sender": "event.coordinator.team@gmail.com",
        "subject": "Lunch & Learn: Introduction to Serverless Architecture",
        "timestamp": 1709285400000,
        "body": "We are hosting a Lunch & Learn session next Wednesday at noon in Conference Room 3. We will "
        "cover AWS Lambda and Azure Functions. Reply to this email to RSVP so we can get a headcount "
        "for lunch.",
    },
    {
        "sender": "the.accounting.department@gmail.com",
        "subject": "Re: Overdue Expense Report for November",
        "timestamp": 1709286000000,
        "body": "This is a final reminder that your November expense report is 45 days overdue. Please "
        "submit it within 24 hours to avoid escalation. The system will lock you out of submitting "
        "future reports if this is not resolved.",
    },
    {
        "sender": "sarah.connor.pm@gmail.com",
        "subject": "Follow-up question on the new API endpoint specs",
        "timestamp": 1709286600000,
        "body": "Hi, I saw your proposal for the new `/v2/users` endpoint. Before we greenlight development, "
        "I need to know the estimated time required for integrating OAuth 2.0 authentication into this "
        "endpoint. Could you provide a time estimate (in developer days) by Friday?",
    },
]

# Topics offered by the compose view.
EMAIL_TOPICS: list[str] = [
    "Schedule a Meeting (Internal/External)",
    "Request Project Status Update",
    "Follow Up on Action Item/Task",
    "Team Announcement: Upcoming Change",
    "Submit Leave/Time Off Request",
    "Seek Formal Approval (e.g., Budget, Plan)",
    "Share Information/Documents",
    "Job Application/Recruitment Inquiry",
    "Please Approve Invoice/Payment",
    "Request Invoice/Billing Details",
    "Report Payment Issue/Discrepancy",
    "Request Service/Subscription Cancellation",
    "Report Account/Technical Issue",
    "Confirm Order/Track Delivery Status",
    "Respond to Customer Complaint/Issue",
    "Send a Formal Thank You Note",
    "Request/Provide Vendor Quote",
    "Lodge a Formal Complaint/Feedback",
    "Quarterly Review Request",
    "Request Informal Catch-Up",
]


def mock_email_rows() -> list[dict[str, Any]]:
    """Rows for the empty-table seed; ids are assigned by the store."""
    now = utc_now_iso()
    rows = []
    for item in MOCK_INBOX:
        email = Email.from_import(item)
        email.id = None
        email.inserted_at = now
        rows.append(email.to_row(include_id=False))
    return rows


def default_prompt_rows() -> list[dict[str, Any]]:
    now = utc_now_iso()
    return [
        {
            "prompt_type": prompt_type.value,
            "prompt_text": entry.get("system") or entry.get("title", ""),
            "model": LLM_DEFAULT_MODEL,
            "response": {},
            "created_at": now,
        }
        for prompt_type, entry in DEFAULT_PROMPTS.items()
    ]


def reset_email_rows() -> list[dict[str, Any]]:
    rows = []
    for item in RESET_EMAILS:
        email = Email.from_import(item)
        email.id = None
        rows.append(email.to_row(include_id=False))
    return rows


def reset_emails(store: DataStore) -> int:
    """Delete every email and insert the reset fixture set. Returns rows inserted."""
    deleted = store.delete_all(EMAILS_TABLE)
    logger.info("Deleted %d rows from %s", len(deleted), EMAILS_TABLE)
    inserted = store.insert(EMAILS_TABLE, reset_email_rows())
    logger.info("Inserted %d seed emails", len(inserted))
    return len(inserted)


def seed_prompts_if_empty(store: DataStore) -> bool:
    if store.select(PROMPTS_TABLE, limit=1):
        return False
    store.insert(PROMPTS_TABLE, default_prompt_rows())
    logger.info("Seeded %s with %d default prompts", PROMPTS_TABLE, len(DEFAULT_PROMPTS))
    return True


def seed_emails_if_empty(store: DataStore) -> bool:
    if store.select(EMAILS_TABLE, limit=1):
        return False
    store.insert(EMAILS_TABLE, mock_email_rows())
    logger.info("Seeded %s with %d mock emails", EMAILS_TABLE, len(MOCK_INBOX))
    return True
