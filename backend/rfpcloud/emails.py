# emails.py
# Drafting RFP emails and handing them to a dispatcher.

import json
import logging
from typing import Any, Dict, Protocol, Tuple

import requests
import resend
from resend.exceptions import ResendError

from .errors import DispatchFailure, GenerationError, MailboxError
from .llm import TextGenerator, parse_json_object
from .models import RFP, new_id, utcnow
from .storage import JsonStorage

log = logging.getLogger("rfpcloud.emails")

EMAIL_TEMPERATURE = 0.4
EMAIL_MAX_TOKENS = 1536


class EmailDispatcher(Protocol):
    def send(self, to: str, subject: str, body: str) -> str:
        """Send one email and return its message id. Raises DispatchFailure."""
        ...


class OutboxDispatcher:
    """Simulated sending: every email is appended to the outbox collection."""

    def __init__(self, storage: JsonStorage, from_email: str):
        self.storage = storage
        self.from_email = from_email

    def send(self, to: str, subject: str, body: str) -> str:
        message_id = new_id()
        try:
            self.storage.insert("outbox", {
                "id": message_id,
                "from": self.from_email,
                "to": to,
                "subject": subject,
                "body": body,
                "sent_at": utcnow().isoformat(),
            })
        except OSError as e:
            raise DispatchFailure(f"Failed to send email: {e}", vendor=to) from e
        log.info("Email queued to %s: %s", to, message_id)
        return message_id


class ResendDispatcher:
    """Sends through the Resend API and reads received emails back from it."""

    def __init__(self, api_key: str, from_email: str):
        resend.api_key = api_key
        self.from_email = from_email

    def send(self, to: str, subject: str, body: str) -> str:
        params = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "text": body,
            "html": body.replace("\n", "<br>"),
        }
        try:
            sent = resend.Emails.send(params)
        except (ResendError, requests.RequestException) as e:
            raise DispatchFailure(f"Failed to send email: {e}", vendor=to) from e
        log.info("Email sent to %s: %s", to, sent.get("id"))
        return sent.get("id", "")

    def fetch(self, email_id: str) -> Dict[str, Any]:
        """Full content of a received email: the webhook only carries its metadata."""
        try:
            email = resend.Emails.get(email_id)
        except (ResendError, requests.RequestException) as e:
            raise MailboxError(f"Failed to fetch email content: {e}") from e
        if not email:
            raise MailboxError("Failed to fetch email content")
        return dict(email)


EMAIL_PROMPT = """You are a professional procurement officer. Write a formal RFP email to {vendor_name}.

RFP details:
{rfp_json}

The email must:
1. Be professional and courteous
2. State every requirement clearly
3. Show the RFP ID prominently
4. Include any deadlines
5. Ask for a detailed quotation (item prices, total, delivery, payment terms, warranty, extra services)
6. Ask the vendor to keep "RFP ID: {rfp_id}" in the subject line of their reply

Respond ONLY with valid JSON: {{"subject": "...", "body": "... use \\n for new lines ..."}}
"""


def id_tag(rfp: RFP) -> str:
    return f"RFP ID: {rfp.id}"


def fallback_subject(rfp: RFP) -> str:
    return f"RFP: {rfp.title} ({id_tag(rfp)})"


def fallback_body(rfp: RFP, vendor_name: str) -> str:
    lines = [
        f"Dear {vendor_name},",
        "",
        "We are pleased to invite you to submit a proposal for the following procurement:",
        "",
        rfp.description,
        "",
        id_tag(rfp),
        "(Please include this ID in your response subject line)",
        "",
        "REQUIREMENTS:",
    ]
    for item in rfp.items:
        specs = ", ".join(f"{k}: {v}" for k, v in item.specifications.items())
        qty = f"{item.quantity} units" if item.quantity is not None else "quantity to confirm"
        lines.append(f"- {item.name}: {qty}" + (f" ({specs})" if specs else ""))
    lines.append("")
    if rfp.budget:
        lines.append(f"Budget: ${rfp.budget:,.2f}")
    if rfp.delivery_days:
        lines.append(f"Delivery Timeline: {rfp.delivery_days} days")
    if rfp.payment_terms:
        lines.append(f"Payment Terms: {rfp.payment_terms}")
    if rfp.warranty_years:
        lines.append(f"Warranty Required: {rfp.warranty_years:g} year(s)")
    if rfp.additional_requirements:
        lines += ["", "ADDITIONAL REQUIREMENTS:"] + [f"- {r}" for r in rfp.additional_requirements]
    lines += [
        "",
        "Please provide a detailed quotation including:",
        "1. Item-by-item pricing",
        "2. Total cost",
        "3. Delivery timeline",
        "4. Payment terms",
        "5. Warranty information",
        "6. Any additional services or benefits",
        "",
        f"IMPORTANT: Please include the RFP ID ({rfp.id}) in your email response subject line.",
        "",
        "We look forward to receiving your proposal.",
        "",
        "Best regards,",
        "Procurement Team",
    ]
    return "\n".join(lines)


def draft_rfp_email(generator: TextGenerator, rfp: RFP, vendor_name: str) -> Tuple[str, str]:
    """Return (subject, body). Falls back to a fixed template; the subject always carries the RFP id."""
    prompt = EMAIL_PROMPT.format(
        vendor_name=vendor_name,
        rfp_id=rfp.id,
        rfp_json=json.dumps(rfp.model_dump(mode="json", exclude={"raw_prompt", "created_at"}), indent=2),
    )
    try:
        data = parse_json_object(generator.generate(prompt, temperature=EMAIL_TEMPERATURE,
                                                    max_tokens=EMAIL_MAX_TOKENS), embedded=True)
        subject, body = data.get("subject"), data.get("body")
        if not isinstance(subject, str) or not isinstance(body, str) or not subject.strip() or not body.strip():
            raise ValueError("subject/body missing")
    except (GenerationError, ValueError) as e:
        log.warning("Email drafting failed for %s, using template: %s", vendor_name, e)
        return fallback_subject(rfp), fallback_body(rfp, vendor_name)

    subject = subject.strip()
    if rfp.id.lower() not in subject.lower():
        subject = f"{subject} [{id_tag(rfp)}]"
    return subject, body
