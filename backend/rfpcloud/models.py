# models.py
# Pydantic models for RFPs, vendors, proposals and the API payloads around them.

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(value: str) -> str:
    return value.strip().lower()


# --- RFP (requirement set) ---

class RequirementItem(BaseModel):
    name: str
    quantity: Optional[int] = None
    specifications: Dict[str, Any] = Field(default_factory=dict)


class StructuredRFP(BaseModel):
    """What the structuring step produces from a natural-language request."""
    title: str
    description: str = ""
    items: List[RequirementItem] = Field(default_factory=list)
    budget: Optional[float] = None
    delivery_days: Optional[int] = None
    payment_terms: Optional[str] = None
    warranty_years: Optional[float] = None
    additional_requirements: List[str] = Field(default_factory=list)


class RFP(StructuredRFP):
    id: str = Field(default_factory=new_id)
    raw_prompt: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class RFPCreateRequest(BaseModel):
    text: str


# --- Vendors ---

class VendorCreate(BaseModel):
    name: str
    email: EmailStr
    notes: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_email(v) if isinstance(v, str) else v


class VendorUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    notes: Optional[str] = None

    @field_validator("email", mode="before")
    @classmethod
    def _normalize(cls, v):
        return normalize_email(v) if isinstance(v, str) else v


class Vendor(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    email: str
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class VendorStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    RESPONDED = "RESPONDED"


class RFPVendor(BaseModel):
    id: str = Field(default_factory=new_id)
    rfp_id: str
    vendor_id: str
    status: VendorStatus = VendorStatus.PENDING
    sent_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None


class RFPVendorView(BaseModel):
    id: str
    name: str
    email: str
    status: VendorStatus
    sent_at: Optional[datetime] = None


class RFPWithVendors(BaseModel):
    id: str
    title: str
    rfp: RFP
    vendors: List[RFPVendorView] = Field(default_factory=list)


class SendRequest(BaseModel):
    vendor_ids: List[str] = Field(default_factory=list)


class SendResult(BaseModel):
    success: bool
    sent_count: int
    failed_vendors: List[str] = Field(default_factory=list)


# --- Proposals ---

class ProposedItem(BaseModel):
    name: str
    quantity: Optional[int] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    specifications: Optional[Dict[str, Any]] = None


class ExtractedProposal(BaseModel):
    """Structured view of a vendor reply. None means the vendor did not say."""
    items: List[ProposedItem] = Field(default_factory=list)
    total_price: Optional[float] = None
    delivery_days: Optional[int] = None
    payment_terms: Optional[Union[str, List[str]]] = None
    warranty: Optional[str] = None
    additional_services: Optional[List[str]] = None
    notes: Optional[str] = None
    confidence: Optional[float] = Field(default=None, ge=0, le=100)


class ScoreBreakdown(BaseModel):
    price: float = Field(ge=0, le=30)
    delivery: float = Field(ge=0, le=20)
    completeness: float = Field(ge=0, le=20)
    terms: float = Field(ge=0, le=15)
    value: float = Field(ge=0, le=15)

    def total(self) -> float:
        return self.price + self.delivery + self.completeness + self.terms + self.value


class ScoreResult(BaseModel):
    score: float = Field(ge=0, le=100)
    evaluation: str
    breakdown: Optional[ScoreBreakdown] = None
    method: str = "model"


class Proposal(BaseModel):
    id: str = Field(default_factory=new_id)
    rfp_id: str
    vendor_id: str
    raw_email_body: str
    extracted_data: ExtractedProposal
    score: Optional[float] = Field(default=None, ge=0, le=100)
    evaluation: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)


class ProposalSubmit(BaseModel):
    vendor_email: str
    email_body: str


class TopVendor(BaseModel):
    name: str
    score: float


class ProposalStats(BaseModel):
    total_proposals: int
    average_score: Optional[float] = None
    highest_score: Optional[float] = None
    lowest_score: Optional[float] = None
    top_vendor: Optional[TopVendor] = None


# --- Comparison ---

class ComparisonRow(BaseModel):
    id: str
    vendor_id: str
    vendor_name: str
    vendor_email: str
    total_price: Optional[float] = None
    score: Optional[float] = None
    evaluation: Optional[str] = None
    extracted_data: ExtractedProposal
    created_at: datetime


class Recommendation(BaseModel):
    recommended_vendor_id: str
    reasoning: str
    comparison_summary: str


class Comparison(BaseModel):
    rfp_id: str
    title: str
    proposals: List[ComparisonRow] = Field(default_factory=list)
    recommendation: Optional[Recommendation] = None


# --- Inbound email ---

class Attachment(BaseModel):
    filename: str
    content_type: str = "application/octet-stream"
    content: str = ""  # base64


class InboundPayload(BaseModel):
    """Webhook body. Accepts the flat shape and the provider's `{type, data: {...}}` envelope."""

    type: Optional[str] = None
    email_id: Optional[str] = None
    from_email: Optional[str] = None
    subject: Optional[str] = None
    text: Optional[str] = None
    html: Optional[str] = None
    attachments: List[Attachment] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _lift_envelope(cls, v):
        if not isinstance(v, dict) or not isinstance(v.get("data"), dict):
            return v
        data = v["data"]
        flat = {k: val for k, val in v.items() if k != "data"}
        flat.setdefault("email_id", data.get("email_id") or data.get("id"))
        flat.setdefault("from_email", data.get("from_email") or data.get("from"))
        for key in ("subject", "text", "html"):
            flat.setdefault(key, data.get(key))
        # provider attachment entries may carry metadata only
        flat.setdefault("attachments", [
            {"filename": a["filename"],
             "content_type": a.get("content_type") or "application/octet-stream",
             "content": a.get("content") or ""}
            for a in data.get("attachments") or [] if isinstance(a, dict) and a.get("filename")
        ])
        return flat


class InboundEmail(BaseModel):
    id: str = Field(default_factory=new_id)
    from_email: str
    vendor_id: Optional[str] = None
    rfp_id: Optional[str] = None
    subject: str = ""
    raw_body: str = ""
    attachment_text: Optional[str] = None
    processed: bool = False
    processed_at: Optional[datetime] = None
    proposal_id: Optional[str] = None
    processing_error: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
