"""Proposal extraction: normalisation rules, failure modes, attachments."""

import base64

import pytest

from conftest import FakeGenerator, fenced
from rfpcloud.attachments import SECTION_MARKER, attachments_to_text, combine_with_attachments
from rfpcloud.errors import ExtractionFailure, GenerationError
from rfpcloud.extraction import ProposalExtractor, normalize_proposal, parse_days, parse_money
from rfpcloud.models import Attachment


class TestNormalisation:
    @pytest.mark.parametrize("raw,expected", [
        ("$1,250.00", 1250.0),
        ("USD 45,000", 45000.0),
        (9500, 9500.0),
        ("N/A", None),
        ("", None),
        (None, None),
    ])
    def test_money(self, raw, expected):
        assert parse_money(raw) == expected

    def test_quoted_zero_stays_zero(self):
        assert parse_money(0) == 0.0

    @pytest.mark.parametrize("raw,expected", [
        ("2 weeks", 14),
        ("two weeks", 14),
        ("1 month", 30),
        ("immediate", 1),
        ("Immediately from stock", 1),
        ("10 days", 10),
        ("within a week", 7),
        ("21", 21),
        (12, 12),
        ("soon", None),
        ("", None),
    ])
    def test_days(self, raw, expected):
        assert parse_days(raw) == expected

    def test_missing_values_become_none(self):
        out = normalize_proposal({
            "items": [],
            "total_price": "",
            "delivery_days": "not specified",
            "payment_terms": "",
            "warranty": "  ",
            "additional_services": [],
            "notes": "null",
        })
        assert out["total_price"] is None
        assert out["delivery_days"] is None
        assert out["payment_terms"] is None
        assert out["warranty"] is None
        assert out["additional_services"] is None
        assert out["notes"] is None
        assert out["confidence"] is None

    def test_confidence_is_clamped(self):
        assert normalize_proposal({"confidence": 150})["confidence"] == 100.0
        assert normalize_proposal({"confidence": "-5"})["confidence"] == 0.0

    def test_items_are_cleaned(self):
        out = normalize_proposal({"items": [
            {"name": "Laptop", "quantity": "5 units", "unit_price": "$1,900", "total_price": "$9,500"},
            {"quantity": 3},
            "junk",
        ]})
        assert out["items"] == [{
            "name": "Laptop", "quantity": 5, "unit_price": 1900.0,
            "total_price": 9500.0, "specifications": None,
        }]

    def test_payment_terms_list_is_kept(self):
        out = normalize_proposal({"payment_terms": ["50% upfront", "", "50% on delivery"]})
        assert out["payment_terms"] == ["50% upfront", "50% on delivery"]


class TestProposalExtractor:
    def test_fenced_json_is_parsed_and_normalised(self, rfp):
        gen = FakeGenerator(fenced({
            "items": [{"name": "Laptop", "quantity": 5, "unit_price": 1900, "total_price": 9500,
                       "specifications": {"ram": "16GB"}}],
            "total_price": "$9,500.00",
            "delivery_days": "2 weeks",
            "payment_terms": "Net 30",
            "warranty": "2 years",
            "additional_services": ["Installation"],
            "notes": None,
            "confidence": 85,
        }))
        p = ProposalExtractor(gen).extract("We quote $9,500 for 5 laptops, 2 weeks.", rfp)

        assert p.total_price == 9500.0
        assert p.delivery_days == 14
        assert p.items[0].specifications == {"ram": "16GB"}
        assert p.additional_services == ["Installation"]
        assert p.notes is None
        assert p.confidence == 85

    def test_prompt_carries_rfp_and_vendor_text(self, rfp):
        gen = FakeGenerator({"items": []})
        ProposalExtractor(gen).extract("VENDOR TEXT 123", rfp)
        prompt = gen.prompts[0]
        assert "VENDOR TEXT 123" in prompt
        assert '"Laptop"' in prompt
        assert '"budget": 10000.0' in prompt

    def test_unparseable_output_fails_with_raw_text(self, rfp):
        gen = FakeGenerator("Sorry, I could not find a proposal here.")
        with pytest.raises(ExtractionFailure) as exc:
            ProposalExtractor(gen).extract("hello", rfp)
        assert exc.value.raw_text == "Sorry, I could not find a proposal here."

    def test_json_array_is_rejected(self, rfp):
        gen = FakeGenerator("[1, 2, 3]")
        with pytest.raises(ExtractionFailure):
            ProposalExtractor(gen).extract("hello", rfp)

    def test_generation_error_becomes_extraction_failure(self, rfp):
        gen = FakeGenerator(GenerationError("timeout"))
        with pytest.raises(ExtractionFailure):
            ProposalExtractor(gen).extract("hello", rfp)


class TestAttachments:
    def _b64(self, text):
        return base64.b64encode(text.encode()).decode()

    def test_text_and_csv_are_decoded(self):
        text = attachments_to_text([
            Attachment(filename="quote.csv", content_type="text/csv", content=self._b64("item,price\nLaptop,1900")),
            Attachment(filename="terms.txt", content_type="text/plain; charset=utf-8", content=self._b64("Net 30")),
        ])
        assert "[Attachment: quote.csv]\nitem,price\nLaptop,1900" in text
        assert "[Attachment: terms.txt]\nNet 30" in text

    def test_other_types_become_placeholders(self):
        text = attachments_to_text([Attachment(filename="quote.pdf", content_type="application/pdf",
                                               content=self._b64("%PDF-1.4"))])
        assert text == "[Attachment: quote.pdf (application/pdf) - content not processed]"
        assert "%PDF" not in text

    def test_no_attachments(self):
        assert attachments_to_text([]) is None
        assert combine_with_attachments("body", None) == "body"

    def test_combined_under_section_marker(self):
        combined = combine_with_attachments("Our quote is attached.", "[Attachment: a.txt]\n$100")
        assert combined == f"Our quote is attached.\n\n{SECTION_MARKER}\n[Attachment: a.txt]\n$100"
