from typing import Dict

from app.db.models import NotificationKind
from app.utils.logging import get_logger

logger = get_logger()

# Variables available to every template:
# customer_name, quote_link, book_call_link, event_date, appointment_time
_QUOTE_CHASER_BODY = (
    "Hi {customer_name},\n\n"
    "Your custom quote is still waiting for you: {quote_link}\n"
    "Questions first? Book a quick call: {book_call_link}\n"
)

TEMPLATES: Dict[NotificationKind, Dict[str, str]] = {
    NotificationKind.INITIAL: {
        "subject": "Your custom quote is ready",
        "body": (
            "Hi {customer_name},\n\n"
            "Your custom quote is ready: {quote_link}\n"
            "Book a quick call to go over the details: {book_call_link}\n"
        ),
    },
    NotificationKind.FOLLOWUP_3H: {
        "subject": "Any questions about your quote?",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.FOLLOWUP_6H: {
        "subject": "Your quote is saved for you",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.FOLLOWUP_24H: {
        "subject": "Still thinking it over?",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.FOLLOWUP_3D: {
        "subject": "Dates are filling up",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.FOLLOWUP_6D: {
        "subject": "A few spots left for your week",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.FOLLOWUP_30D: {
        "subject": "Checking in on your booking",
        "body": _QUOTE_CHASER_BODY,
    },
    NotificationKind.URGENCY_7D: {
        "subject": "",
        "body": (
            "Hi {customer_name}! Just checking in on your quote: {quote_link}\n"
            "Book a call: {book_call_link}"
        ),
    },
    NotificationKind.URGENCY_2W: {
        "subject": "",
        "body": (
            "Hi {customer_name}! Your event on {event_date} is only 2 weeks away. "
            "Reserve your spot here: {quote_link}"
        ),
    },
    NotificationKind.URGENCY_1W: {
        "subject": "",
        "body": (
            "Hi {customer_name}! Your event on {event_date} is one week away and your "
            "date is not reserved yet: {quote_link}"
        ),
    },
    NotificationKind.EVENT_REMINDER_24H: {
        "subject": "See you tomorrow",
        "body": (
            "Hi {customer_name},\n\n"
            "A reminder that your appointment is tomorrow, {event_date} at "
            "{appointment_time}.\n"
        ),
    },
    NotificationKind.APPOINTMENT_DAY_REMINDER: {
        "subject": "Your appointment is today",
        "body": (
            "Hi {customer_name},\n\n"
            "See you today at {appointment_time}. Booking details: {quote_link}\n"
        ),
    },
    NotificationKind.POST_APPOINTMENT_FOLLOWUP: {
        "subject": "Thank you!",
        "body": (
            "Hi {customer_name},\n\n"
            "Thank you for having us on {event_date}. We would love to hear how "
            "everything went.\n"
        ),
    },
}


def render_template(kind: NotificationKind, variables: Dict[str, str]) -> Dict[str, str]:
    """Fill the subject and body for a kind"""
    template = TEMPLATES[kind]
    try:
        return {
            "subject": template["subject"].format(**variables),
            "body": template["body"].format(**variables),
        }
    except KeyError as e:
        logger.error(f"Template error for {kind.value}: missing {e}")
        return {"subject": template["subject"], "body": template["body"]}
