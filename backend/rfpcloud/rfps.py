# rfps.py
# RFP lifecycle: structuring a request, sending it out, taking proposals in,
# and comparing them.

import logging
from typing import Any, Dict, List

import pydantic

from .comparison import ComparisonAggregator
from .emails import EmailDispatcher, draft_rfp_email
from .errors import ExtractionFailure, GenerationError, NotFoundError, ValidationError
from .extraction import ProposalExtractor, clean_list, clean_text, parse_days, parse_money, parse_quantity
from .llm import TextGenerator, parse_json_object
from .models import (
    RFP, Comparison, Proposal, RFPVendor, RFPVendorView, RFPWithVendors, SendResult,
    StructuredRFP, Vendor, VendorStatus, utcnow,
)
from .scoring import ProposalScorer
from .storage import JsonStorage
from .vendors import VendorService

log = logging.getLogger("rfpcloud.rfps")

STRUCTURE_TEMPERATURE = 0.3
STRUCTURE_MAX_TOKENS = 2048

STRUCTURE_PROMPT = """You are an expert procurement assistant. Convert the procurement request below into structured RFP data.

Fields:
- title: clear, concise title
- description: professional description of the need
- items: list of {{"name", "quantity", "specifications"}} (specifications is an object of key/value pairs)
- budget [optional]: total budget as a plain number
- delivery_days [optional]: delivery timeline in days
- payment_terms [optional]: e.g. "Net 30"
- warranty_years [optional]: warranty period in years
- additional_requirements [optional]: list of strings

Optional fields that are not mentioned are null. Title, description and items
must always be present; derive them from the request if needed.

Respond ONLY with the JSON object. No markdown, no explanations.

PROCUREMENT REQUEST:
{prompt}
"""


def normalize_structured(data: Dict[str, Any]) -> Dict[str, Any]:
    items = []
    for raw in data.get("items") or []:
        if isinstance(raw, dict) and clean_text(raw.get("name")):
            specs = raw.get("specifications")
            items.append({
                "name": clean_text(raw["name"]),
                "quantity": parse_quantity(raw.get("quantity")),
                "specifications": specs if isinstance(specs, dict) else {},
            })
    return {
        "title": clean_text(data.get("title")),
        "description": clean_text(data.get("description")) or "",
        "items": items,
        "budget": parse_money(data.get("budget")),
        "delivery_days": parse_days(data.get("delivery_days")),
        "payment_terms": clean_text(data.get("payment_terms")),
        "warranty_years": parse_money(data.get("warranty_years")),
        "additional_requirements": clean_list(data.get("additional_requirements")) or [],
    }


class RFPService:
    def __init__(self, storage: JsonStorage, generator: TextGenerator, dispatcher: EmailDispatcher):
        self.storage = storage
        self.generator = generator
        self.dispatcher = dispatcher
        self.vendors = VendorService(storage)
        self.extractor = ProposalExtractor(generator)
        self.scorer = ProposalScorer(generator)
        self.aggregator = ComparisonAggregator(storage, generator)

    # --- creation ---

    def preview_rfp(self, prompt: str) -> StructuredRFP:
        if not prompt or not prompt.strip():
            raise ValidationError("text is required and must be a non-empty string")
        try:
            raw = self.generator.generate(STRUCTURE_PROMPT.format(prompt=prompt),
                                          temperature=STRUCTURE_TEMPERATURE, max_tokens=STRUCTURE_MAX_TOKENS)
        except GenerationError as e:
            raise ExtractionFailure(f"Failed to structure RFP from natural language: {e.message}") from e
        try:
            return StructuredRFP.model_validate(normalize_structured(parse_json_object(raw)))
        except (ValueError, pydantic.ValidationError) as e:
            raise ExtractionFailure(f"Failed to structure RFP from natural language: {e}", raw_text=raw) from e

    def create_rfp(self, prompt: str) -> RFP:
        structured = self.preview_rfp(prompt)
        rfp = RFP(**structured.model_dump(), raw_prompt=prompt)
        self.storage.insert("rfps", rfp.model_dump(mode="json"))
        log.info("Created RFP %s: %s", rfp.id, rfp.title)
        return rfp

    # --- reads ---

    def get_rfp(self, rfp_id: str) -> RFP:
        rec = self.storage.get("rfps", rfp_id)
        if not rec:
            raise NotFoundError("RFP not found")
        return RFP.model_validate(rec)

    def list_rfps(self) -> List[RFP]:
        rows = sorted(self.storage.all("rfps"), key=lambda r: r.get("created_at", ""), reverse=True)
        return [RFP.model_validate(r) for r in rows]

    def get_rfp_with_vendors(self, rfp_id: str) -> RFPWithVendors:
        rfp = self.get_rfp(rfp_id)
        views = []
        for link in self.storage.find("rfp_vendors", rfp_id=rfp_id):
            v = self.storage.get("vendors", link["vendor_id"])
            if v:
                views.append(RFPVendorView(id=v["id"], name=v["name"], email=v["email"],
                                           status=link["status"], sent_at=link.get("sent_at")))
        return RFPWithVendors(id=rfp.id, title=rfp.title, rfp=rfp, vendors=views)

    def delete_rfp(self, rfp_id: str) -> None:
        self.get_rfp(rfp_id)
        self.storage.delete_where("proposals", rfp_id=rfp_id)
        self.storage.delete_where("rfp_vendors", rfp_id=rfp_id)
        self.storage.delete_where("inbound_emails", rfp_id=rfp_id)
        self.storage.delete("rfps", rfp_id)
        log.info("Deleted RFP %s", rfp_id)

    # --- vendor links: PENDING -> SENT -> RESPONDED ---

    def _link(self, rfp_id: str, vendor_id: str) -> Dict[str, Any]:
        link = self.storage.find_one("rfp_vendors", rfp_id=rfp_id, vendor_id=vendor_id)
        if link is None:
            link = self.storage.insert("rfp_vendors",
                                       RFPVendor(rfp_id=rfp_id, vendor_id=vendor_id).model_dump(mode="json"))
        return link

    def _mark_sent(self, rfp_id: str, vendor_id: str):
        link = self._link(rfp_id, vendor_id)
        fields = {"sent_at": utcnow().isoformat()}
        if link["status"] != VendorStatus.RESPONDED.value:
            fields["status"] = VendorStatus.SENT.value
        self.storage.update("rfp_vendors", link["id"], fields)

    def _mark_responded(self, rfp_id: str, vendor_id: str):
        link = self._link(rfp_id, vendor_id)
        self.storage.update("rfp_vendors", link["id"], {
            "status": VendorStatus.RESPONDED.value,
            "responded_at": utcnow().isoformat(),
        })

    # --- outreach ---

    def send_rfp_to_vendors(self, rfp_id: str, vendor_ids: List[str]) -> SendResult:
        """Email the RFP to each vendor in turn. One failed send does not stop the rest."""
        if not vendor_ids:
            raise ValidationError("vendor_ids must be a non-empty list")
        rfp = self.get_rfp(rfp_id)
        vendors = [Vendor.model_validate(v) for vid in dict.fromkeys(vendor_ids)
                   for v in [self.storage.get("vendors", vid)] if v]
        if not vendors:
            raise NotFoundError("No valid vendors found")

        sent_count = 0
        failed: List[str] = []
        for vendor in vendors:
            self._link(rfp.id, vendor.id)
            subject, body = draft_rfp_email(self.generator, rfp, vendor.name)
            try:
                self.dispatcher.send(vendor.email, subject, body)
            except Exception:
                # any provider or transport error only fails this vendor
                log.exception("Failed to send RFP %s to %s", rfp.id, vendor.name)
                failed.append(vendor.name)
                continue
            self._mark_sent(rfp.id, vendor.id)
            sent_count += 1

        log.info("RFP %s sent to %d vendors, %d failed", rfp.id, sent_count, len(failed))
        return SendResult(success=sent_count > 0, sent_count=sent_count, failed_vendors=failed)

    # --- proposals ---

    def process_vendor_proposal(self, rfp_id: str, vendor_email: str, body: str) -> Proposal:
        """Extract, score and store one vendor reply. Extraction failures propagate."""
        if not vendor_email or not body:
            raise ValidationError("vendor_email and email_body are required")
        rfp = self.get_rfp(rfp_id)
        vendor = self.vendors.get_vendor_by_email(vendor_email)
        if vendor is None:
            raise NotFoundError(f"Vendor with email {vendor_email} not found")

        extracted = self.extractor.extract(body, rfp)
        result = self.scorer.score(rfp, extracted, vendor.name)

        proposal = Proposal(
            rfp_id=rfp.id,
            vendor_id=vendor.id,
            raw_email_body=body,
            extracted_data=extracted,
            score=result.score,
            evaluation=result.evaluation,
        )
        self.storage.insert("proposals", proposal.model_dump(mode="json"))
        self._mark_responded(rfp.id, vendor.id)
        log.info("Stored proposal %s from %s for RFP %s (score %s, %s)",
                 proposal.id, vendor.name, rfp.id, result.score, result.method)
        return proposal

    def compare_proposals(self, rfp_id: str) -> Comparison:
        return self.aggregator.compare(rfp_id)
