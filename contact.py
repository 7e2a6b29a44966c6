import logging
import time
import uuid
from typing import Dict, List, Optional

from errors import RateLimitedError, ValidationError
from schemas import ContactRequest

logger = logging.getLogger(__name__)

RATE_LIMIT_WINDOW = 15 * 60
MAX_ATTEMPTS = 3


class ContactRateLimiter:
    """
    Per-client sliding window for the contact form.

    One instance belongs to one running app (``app.state.contact_limiter``)
    and its memory is gone on restart. Expired attempts are pruned lazily,
    on every ``hit``.
    """

    def __init__(self, window_seconds: float = RATE_LIMIT_WINDOW, max_attempts: int = MAX_ATTEMPTS):
        self.window_seconds = window_seconds
        self.max_attempts = max_attempts
        self.attempts: Dict[str, List[float]] = {}

    def prune(self, now: Optional[float] = None) -> None:
        """Drop attempts older than the window, and clients with none left."""
        now = time.time() if now is None else now
        cutoff = now - self.window_seconds
        for key in list(self.attempts):
            recent = [stamp for stamp in self.attempts[key] if stamp > cutoff]
            if recent:
                self.attempts[key] = recent
            else:
                del self.attempts[key]

    def hit(self, key: str, now: Optional[float] = None) -> None:
        """Record an attempt for ``key`` or raise RateLimitedError if it is over the limit."""
        now = time.time() if now is None else now
        self.prune(now)
        recent = self.attempts.get(key, [])
        if len(recent) >= self.max_attempts:
            raise RateLimitedError("Too many contact attempts. Please try again later.")
        self.attempts[key] = recent + [now]

    def clear(self) -> None:
        self.attempts.clear()


def require_contact_method(form: ContactRequest) -> None:
    if not form.email and not form.phone:
        raise ValidationError(
            "Please provide either email address or phone number",
            code="CONTACT_METHOD_REQUIRED",
            details={"field": "email_or_phone"},
        )


def build_email_text(form: ContactRequest) -> str:
    lines = [
        "New Website Inquiry",
        "",
        f"Name: {form.name}",
        f"Email: {form.email or 'Not provided'}",
        f"Phone: {form.phone or 'Not provided'}",
        f"Subject: {form.subject or 'General Inquiry'}",
    ]
    if form.truck_interest:
        lines.append(f"Truck Interest: {form.truck_interest}")
    lines += ["", "Message:", form.message]
    return "\n".join(lines)


def send_contact_email(form: ContactRequest, settings) -> str:
    """Hand the message off for delivery. Delivery itself is only logged."""
    subject = f"Website Inquiry: {form.subject or 'General Inquiry'} - {form.name}"
    message_id = str(uuid.uuid4())
    logger.info(
        "Contact email %s to=%s from=%s subject=%r\n%s",
        message_id,
        settings.BUSINESS_EMAIL,
        settings.SES_FROM_EMAIL,
        subject,
        build_email_text(form),
    )
    return message_id
