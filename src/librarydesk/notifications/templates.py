"""Message templates for loan lifecycle notifications."""

from dataclasses import dataclass
from enum import Enum


class TemplateId(str, Enum):
    """Identifiers of the messages the library sends."""

    LOAN_CREATED = "loan_created"
    LOAN_RETURNED = "loan_returned"
    LOAN_EXTENDED = "loan_extended"
    LOAN_OVERDUE = "loan_overdue"
    LOAN_DUE_SOON = "loan_due_soon"


@dataclass(frozen=True)
class MessageTemplate:
    """Subject and body, both rendered with ``str.format``."""

    subject: str
    body: str

    def render(self, context: dict) -> tuple[str, str]:
        return self.subject.format(**context), self.body.format(**context)


TEMPLATES: dict[TemplateId, MessageTemplate] = {
    TemplateId.LOAN_CREATED: MessageTemplate(
        subject="Loan confirmation",
        body=(
            "Hello {user_name},\n\n"
            'You borrowed "{book_title}". Please return it by {due_date:%Y-%m-%d}.'
        ),
    ),
    TemplateId.LOAN_RETURNED: MessageTemplate(
        subject="Return confirmation",
        body=(
            "Hello {user_name},\n\n"
            'Thank you for returning "{book_title}".'
        ),
    ),
    TemplateId.LOAN_EXTENDED: MessageTemplate(
        subject="Loan extended",
        body=(
            "Hello {user_name},\n\n"
            'Your loan of "{book_title}" is now due on {due_date:%Y-%m-%d}.'
        ),
    ),
    TemplateId.LOAN_OVERDUE: MessageTemplate(
        subject="Reminder: overdue book",
        body=(
            "Hello {user_name},\n\n"
            '"{book_title}" was due on {due_date:%Y-%m-%d} and is now '
            "{days_overdue} day(s) overdue. Please return it as soon as possible."
        ),
    ),
    TemplateId.LOAN_DUE_SOON: MessageTemplate(
        subject="Reminder: return date approaching",
        body=(
            "Hello {user_name},\n\n"
            '"{book_title}" is due in {days_until_due} day(s), on {due_date:%Y-%m-%d}.'
        ),
    ),
}


def render(template_id: TemplateId, context: dict) -> tuple[str, str]:
    """Render a template to ``(subject, body)``."""
    return TEMPLATES[template_id].render(context)
