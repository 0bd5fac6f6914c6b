# inbound.py
# Vendor reply emails: store, match to vendor and RFP, extract and score.
#
# Errors are raised as usual; the caller decides whether to swallow them.
# Whatever goes wrong is also written onto the stored email so it can be
# re-parsed later.

import logging
from typing import Any, Dict, List, Optional, Protocol

from .attachments import attachments_to_text, combine_with_attachments
from .errors import NotFoundError, ProcurementError, ValidationError
from .identifiers import extract_email_address, extract_identifier
from .models import InboundEmail, InboundPayload, Proposal, utcnow
from .rfps import RFPService
from .storage import JsonStorage

log = logging.getLogger("rfpcloud.inbound")


class MailFetcher(Protocol):
    def fetch(self, email_id: str) -> Dict[str, Any]:
        """Full received email with at least "text" or "html". Raises MailboxError."""
        ...


class InboundService:
    def __init__(self, storage: JsonStorage, rfps: RFPService, fetcher: Optional[MailFetcher] = None):
        self.storage = storage
        self.rfps = rfps
        self.fetcher = fetcher

    def receive(self, payload: InboundPayload) -> InboundEmail:
        body = payload.text or payload.html or ""
        if not body.strip() and payload.email_id and self.fetcher is not None:
            full = self.fetcher.fetch(payload.email_id)
            body = full.get("text") or full.get("html") or ""
        if not payload.from_email or not body.strip():
            raise ValidationError("Missing required email fields")

        email = InboundEmail(
            from_email=extract_email_address(payload.from_email),
            subject=payload.subject or "",
            raw_body=body,
            attachment_text=attachments_to_text(payload.attachments),
        )
        self.storage.insert("inbound_emails", email.model_dump(mode="json"))
        log.info("Inbound email %s from %s: %s", email.id, email.from_email, email.subject)
        return self._process(email.id)

    def reparse(self, email_id: str) -> InboundEmail:
        if not self.storage.get("inbound_emails", email_id):
            raise NotFoundError("Email not found")
        log.info("Re-parsing inbound email %s", email_id)
        return self._process(email_id)

    def get_email(self, email_id: str) -> InboundEmail:
        rec = self.storage.get("inbound_emails", email_id)
        if not rec:
            raise NotFoundError("Email not found")
        return InboundEmail.model_validate(rec)

    def list_unprocessed(self, rfp_id: Optional[str] = None) -> List[InboundEmail]:
        def pending(e: Dict[str, Any]) -> bool:
            return not e.get("processed") or e.get("processing_error") is not None

        rows = self.storage.find("inbound_emails", predicate=pending)
        if rfp_id:
            rows = [e for e in rows if e.get("rfp_id") == rfp_id]
        rows.sort(key=lambda e: e.get("created_at", ""), reverse=True)
        return [InboundEmail.model_validate(e) for e in rows]

    def _process(self, email_id: str) -> InboundEmail:
        email = self.get_email(email_id)
        try:
            proposal = self._to_proposal(email)
        except ProcurementError as e:
            self.storage.update("inbound_emails", email.id, {"processing_error": e.message})
            log.warning("Inbound email %s not processed: %s", email.id, e.message)
            raise

        rec = self.storage.update("inbound_emails", email.id, {
            "processed": True,
            "processed_at": utcnow().isoformat(),
            "proposal_id": proposal.id,
            "processing_error": None,
        })
        log.info("Inbound email %s became proposal %s", email.id, proposal.id)
        return InboundEmail.model_validate(rec)

    def _to_proposal(self, email: InboundEmail) -> Proposal:
        vendor = self.rfps.vendors.get_vendor_by_email(email.from_email)
        if vendor is None:
            raise NotFoundError(f"No vendor found with email {email.from_email}")
        self.storage.update("inbound_emails", email.id, {"vendor_id": vendor.id})

        rfp_id = extract_identifier(email.subject, email.raw_body)
        if rfp_id is None:
            raise NotFoundError("No RFP ID found in email")
        self.storage.update("inbound_emails", email.id, {"rfp_id": rfp_id})
        self.rfps.get_rfp(rfp_id)

        text = combine_with_attachments(email.raw_body, email.attachment_text)
        return self.rfps.process_vendor_proposal(rfp_id, vendor.email, text)
