"""Comparison aggregator: ranking and the recommendation rules."""

import pytest

from conftest import FakeGenerator, store_proposal
from rfpcloud.comparison import ComparisonAggregator
from rfpcloud.errors import NotFoundError


class TestComparison:
    def test_no_proposals_gives_empty_comparison(self, storage, rfp):
        gen = FakeGenerator()
        result = ComparisonAggregator(storage, gen).compare(rfp.id)
        assert result.proposals == []
        assert result.recommendation is None
        assert result.title == "Office Laptops"
        assert gen.prompts == []

    def test_single_proposal_has_no_recommendation(self, storage, rfp, vendors):
        store_proposal(storage, rfp.id, vendors[0], score=70, total_price=9000)
        gen = FakeGenerator()
        result = ComparisonAggregator(storage, gen).compare(rfp.id)
        assert len(result.proposals) == 1
        assert result.proposals[0].vendor_name == "Acme Supplies"
        assert result.proposals[0].total_price == 9000
        assert result.recommendation is None
        assert gen.prompts == []

    def test_model_recommendation_is_used_when_valid(self, storage, rfp, vendors):
        store_proposal(storage, rfp.id, vendors[0], score=70)
        store_proposal(storage, rfp.id, vendors[1], score=80)
        gen = FakeGenerator({
            "recommended_vendor_id": vendors[0].id,
            "reasoning": "Better support.",
            "comparison_summary": "Acme vs Globex.",
        })
        rec = ComparisonAggregator(storage, gen).compare(rfp.id).recommendation
        assert rec.recommended_vendor_id == vendors[0].id
        assert rec.reasoning == "Better support."
        assert vendors[1].id in gen.prompts[0]

    def test_unknown_vendor_falls_back_to_top_score(self, storage, rfp, vendors):
        store_proposal(storage, rfp.id, vendors[0], score=70)
        store_proposal(storage, rfp.id, vendors[1], score=80)
        gen = FakeGenerator({"recommended_vendor_id": "vendor-123", "reasoning": "x", "comparison_summary": "y"})
        rec = ComparisonAggregator(storage, gen).compare(rfp.id).recommendation
        assert rec.recommended_vendor_id == vendors[1].id

    @pytest.mark.parametrize("reply", ["not json at all", {"reasoning": "missing id"}])
    def test_bad_model_output_still_recommends_a_bidder(self, storage, rfp, vendors, reply):
        store_proposal(storage, rfp.id, vendors[0], score=60)
        store_proposal(storage, rfp.id, vendors[2], score=90)
        rec = ComparisonAggregator(storage, FakeGenerator(reply)).compare(rfp.id).recommendation
        assert rec.recommended_vendor_id == vendors[2].id
        assert "Initech" in rec.comparison_summary

    def test_generation_error_still_recommends(self, storage, rfp, vendors):
        store_proposal(storage, rfp.id, vendors[0], score=60)
        store_proposal(storage, rfp.id, vendors[1], score=60, total_price=8000)
        store_proposal(storage, rfp.id, vendors[2], score=60, total_price=9000)
        rec = ComparisonAggregator(storage, FakeGenerator()).compare(rfp.id).recommendation
        # equal scores: lower price wins
        assert rec.recommended_vendor_id == vendors[1].id

    def test_rows_are_ranked_and_duplicates_kept(self, storage, rfp, vendors):
        store_proposal(storage, rfp.id, vendors[0], score=50)
        store_proposal(storage, rfp.id, vendors[1], score=None)
        store_proposal(storage, rfp.id, vendors[0], score=75)
        store_proposal(storage, rfp.id, vendors[2], score=90)
        result = ComparisonAggregator(storage, FakeGenerator()).compare(rfp.id)
        assert [r.score for r in result.proposals] == [90, 75, 50, None]
        assert [r.vendor_id for r in result.proposals].count(vendors[0].id) == 2

    def test_other_rfps_are_ignored(self, storage, rfp, vendors):
        store_proposal(storage, "another-rfp", vendors[0], score=50)
        assert ComparisonAggregator(storage, FakeGenerator()).compare(rfp.id).proposals == []

    def test_unknown_rfp(self, storage):
        with pytest.raises(NotFoundError):
            ComparisonAggregator(storage, FakeGenerator()).compare("missing")
