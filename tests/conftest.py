"""Shared fixtures: temp JSON storage, scripted text generator, fake dispatcher."""

import json

import pytest

from rfpcloud.errors import DispatchFailure, GenerationError
from rfpcloud.models import RFP, ExtractedProposal, Proposal, RequirementItem, Vendor, VendorCreate
from rfpcloud.storage import JsonStorage
from rfpcloud.vendors import VendorService


class FakeGenerator:
    """Replays scripted replies in order. Exceptions in the script are raised.

    Once the script runs out every call raises GenerationError, which is what an
    unreachable model looks like to the services.
    """

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def push(self, *replies):
        self.replies.extend(replies)

    def generate(self, prompt, temperature=0.2, max_tokens=2048):
        self.prompts.append(prompt)
        if not self.replies:
            raise GenerationError("no scripted reply")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            return json.dumps(reply)
        return reply


class FakeDispatcher:
    def __init__(self, fail_for=()):
        self.fail_for = set(fail_for)
        self.sent = []

    def send(self, to, subject, body):
        if to in self.fail_for:
            raise DispatchFailure(f"mailbox unavailable for {to}", vendor=to)
        self.sent.append({"to": to, "subject": subject, "body": body})
        return f"msg-{len(self.sent)}"


def fenced(obj):
    return "```json\n" + json.dumps(obj) + "\n```"


@pytest.fixture
def storage(tmp_path):
    return JsonStorage(tmp_path / "data")


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def rfp(storage):
    """Laptop RFP: budget 10000, 14 days, stored."""
    r = RFP(
        title="Office Laptops",
        description="Laptops for the new office",
        items=[RequirementItem(name="Laptop", quantity=5, specifications={"ram": "16GB"})],
        budget=10000,
        delivery_days=14,
        payment_terms="Net 30",
        warranty_years=1,
    )
    storage.insert("rfps", r.model_dump(mode="json"))
    return r


@pytest.fixture
def vendors(storage):
    svc = VendorService(storage)
    return [
        svc.create_vendor(VendorCreate(name="Acme Supplies", email="sales@acme-supplies.com")),
        svc.create_vendor(VendorCreate(name="Globex", email="bids@globex.com")),
        svc.create_vendor(VendorCreate(name="Initech", email="quotes@initech.com")),
    ]


def store_proposal(storage, rfp_id: str, vendor: Vendor, score, total_price=None, created_at=None):
    p = Proposal(
        rfp_id=rfp_id,
        vendor_id=vendor.id,
        raw_email_body="quote",
        extracted_data=ExtractedProposal(total_price=total_price),
        score=score,
        evaluation=f"{vendor.name} evaluation",
    )
    if created_at:
        p.created_at = created_at
    storage.insert("proposals", p.model_dump(mode="json"))
    return p
