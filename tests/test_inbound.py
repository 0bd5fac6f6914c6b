"""Inbound vendor replies: matching, persistence of failures, re-parsing."""

import base64

import pytest

from conftest import FakeGenerator, fenced
from rfpcloud.attachments import SECTION_MARKER
from rfpcloud.errors import MailboxError, NotFoundError, ValidationError
from rfpcloud.inbound import InboundService
from rfpcloud.models import Attachment, InboundPayload, VendorCreate
from rfpcloud.rfps import RFPService

EXTRACTED = {"items": [{"name": "Laptop", "quantity": 5}], "total_price": 9500, "delivery_days": 10}


class FakeMailbox:
    def __init__(self, emails):
        self.emails = emails
        self.fetched = []

    def fetch(self, email_id):
        self.fetched.append(email_id)
        if email_id not in self.emails:
            raise MailboxError("Failed to fetch email content")
        return self.emails[email_id]


def make_service(storage, dispatcher, *replies, fetcher=None):
    return InboundService(storage, RFPService(storage, FakeGenerator(*replies), dispatcher), fetcher=fetcher)


class TestInbound:
    def test_reply_becomes_proposal(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher, fenced(EXTRACTED), {"score": 81, "evaluation": "Good"})
        email = svc.receive(InboundPayload(
            type="email.received",
            from_email="Acme Sales <Sales@Acme-Supplies.com>",
            subject=f"Re: Office Laptops (RFP ID: {rfp.id})",
            text="We can deliver 5 laptops for $9,500 in 10 days.",
        ))

        assert email.processed is True
        assert email.processing_error is None
        assert email.vendor_id == vendors[0].id
        assert email.rfp_id == rfp.id
        proposal = storage.get("proposals", email.proposal_id)
        assert proposal["score"] == 81
        assert svc.list_unprocessed() == []

    def test_html_body_is_used_when_text_missing(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher, EXTRACTED)
        email = svc.receive(InboundPayload(from_email=vendors[1].email, subject="Quote",
                                           html=f"<p>RFP ID: {rfp.id}</p><p>$9,500</p>"))
        assert email.processed is True

    def test_missing_fields(self, storage, dispatcher):
        svc = make_service(storage, dispatcher)
        with pytest.raises(ValidationError):
            svc.receive(InboundPayload(from_email="sales@acme-supplies.com", subject="x"))
        with pytest.raises(ValidationError):
            svc.receive(InboundPayload(text="hello"))
        assert storage.all("inbound_emails") == []

    def test_unknown_sender_is_kept_for_reparse(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher)
        with pytest.raises(NotFoundError):
            svc.receive(InboundPayload(from_email="new@hooli.com", subject=f"RFP ID: {rfp.id}", text="$9,000"))

        [pending] = svc.list_unprocessed()
        assert pending.processed is False
        assert pending.processing_error == "No vendor found with email new@hooli.com"

        svc.rfps.vendors.create_vendor(VendorCreate(name="Hooli", email="new@hooli.com"))
        svc.rfps.generator.push(EXTRACTED)
        email = svc.reparse(pending.id)

        assert email.processed is True
        assert email.processing_error is None
        assert email.proposal_id is not None
        assert svc.list_unprocessed() == []

    def test_missing_rfp_id_is_recorded(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher)
        with pytest.raises(NotFoundError):
            svc.receive(InboundPayload(from_email=vendors[0].email, subject="Our quote", text="$9,000"))

        [pending] = svc.list_unprocessed()
        assert pending.vendor_id == vendors[0].id
        assert pending.processing_error == "No RFP ID found in email"
        assert storage.all("proposals") == []

    def test_unprocessed_filtered_by_rfp(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher)
        with pytest.raises(NotFoundError):
            svc.receive(InboundPayload(from_email=vendors[0].email, subject="Quote", text="none"))
        assert svc.list_unprocessed(rfp_id=rfp.id) == []
        assert len(svc.list_unprocessed()) == 1

    def test_attachments_reach_extraction(self, storage, dispatcher, rfp, vendors):
        svc = make_service(storage, dispatcher, EXTRACTED)
        csv = base64.b64encode(b"item,price\nLaptop,1900").decode()
        email = svc.receive(InboundPayload(
            from_email=vendors[0].email,
            subject=f"RFP ID: {rfp.id}",
            text="Quote attached.",
            attachments=[
                Attachment(filename="quote.csv", content_type="text/csv", content=csv),
                Attachment(filename="brochure.pdf", content_type="application/pdf", content="JVBERi0="),
            ],
        ))

        body = storage.get("proposals", email.proposal_id)["raw_email_body"]
        assert body.startswith("Quote attached.\n\n" + SECTION_MARKER)
        assert "Laptop,1900" in body
        assert "[Attachment: brochure.pdf (application/pdf) - content not processed]" in body
        assert "Laptop,1900" in svc.rfps.generator.prompts[0]

    def test_reparse_unknown_email(self, storage, dispatcher):
        with pytest.raises(NotFoundError):
            make_service(storage, dispatcher).reparse("missing")


class TestProviderEnvelope:
    def test_envelope_fields_are_lifted(self, rfp):
        payload = InboundPayload.model_validate({
            "type": "email.received",
            "data": {"email_id": "em_1", "from": "Acme <sales@acme-supplies.com>",
                     "subject": f"Re: RFP ID: {rfp.id}", "text": "We quote $9,000",
                     "attachments": [{"id": "att_1", "filename": "quote.pdf", "content_type": None}]},
        })
        assert payload.type == "email.received"
        assert payload.email_id == "em_1"
        assert payload.from_email == "Acme <sales@acme-supplies.com>"
        assert payload.text == "We quote $9,000"
        assert [(a.filename, a.content_type) for a in payload.attachments] == \
            [("quote.pdf", "application/octet-stream")]

    def test_flat_shape_still_accepted(self):
        payload = InboundPayload.model_validate({"from_email": "sales@acme-supplies.com", "text": "hi"})
        assert payload.email_id is None
        assert payload.text == "hi"

    def test_body_is_fetched_when_only_metadata_arrives(self, storage, dispatcher, rfp, vendors):
        mailbox = FakeMailbox({"em_1": {"id": "em_1", "text": "5 laptops, $9,500, 10 days"}})
        svc = make_service(storage, dispatcher, EXTRACTED, fetcher=mailbox)

        email = svc.receive(InboundPayload.model_validate({
            "type": "email.received",
            "data": {"email_id": "em_1", "from": "Acme <sales@acme-supplies.com>",
                     "subject": f"Re: RFP ID: {rfp.id}"},
        }))

        assert mailbox.fetched == ["em_1"]
        assert email.processed is True
        assert email.raw_body == "5 laptops, $9,500, 10 days"

    def test_body_in_payload_skips_fetch(self, storage, dispatcher, rfp, vendors):
        mailbox = FakeMailbox({})
        svc = make_service(storage, dispatcher, EXTRACTED, fetcher=mailbox)
        svc.receive(InboundPayload(email_id="em_2", from_email=vendors[0].email,
                                   subject=f"RFP ID: {rfp.id}", text="$9,500"))
        assert mailbox.fetched == []

    def test_fetch_failure_is_raised(self, storage, dispatcher, vendors):
        svc = make_service(storage, dispatcher, fetcher=FakeMailbox({}))
        with pytest.raises(MailboxError):
            svc.receive(InboundPayload(email_id="em_missing", from_email=vendors[0].email, subject="x"))
