# scoring.py
# Score a vendor proposal 0-100 against its RFP.
#
# Points: price 30, delivery 20, completeness 20, terms 15, value 15.
# The model is asked to follow that allocation; when its answer cannot be read
# the same allocation is computed locally.

import json
import logging
import math
from typing import Any, Dict, Optional

import pydantic

from .errors import GenerationError
from .llm import TextGenerator, parse_json_object
from .models import RFP, ExtractedProposal, ScoreBreakdown, ScoreResult

log = logging.getLogger("rfpcloud.scoring")

SCORING_TEMPERATURE = 0.1
SCORING_MAX_TOKENS = 2048

MAX_POINTS = {"price": 30, "delivery": 20, "completeness": 20, "terms": 15, "value": 15}

NEUTRAL_PRICE = 15
NEUTRAL_DELIVERY = 10


def _finite(value: Any) -> Optional[float]:
    """float(value), or None for missing, non-numeric, NaN or infinite values."""
    if isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    return n if math.isfinite(n) else None


def clamp_score(value: Any) -> float:
    try:
        n = float(value)
    except (TypeError, ValueError):
        return 0.0
    if n != n:  # NaN
        return 0.0
    return max(0.0, min(100.0, n))


def price_points(total_price: Optional[float], budget: Optional[float]) -> Optional[int]:
    """Tiered price points, or None when either side is unknown."""
    if total_price is None or not budget:
        return None
    ratio = total_price / budget
    if ratio <= 1.0:
        return 30
    if ratio <= 1.1:
        return 20
    if ratio <= 1.2:
        return 10
    return 5


def delivery_points(proposed_days: Optional[int], required_days: Optional[int]) -> Optional[int]:
    if proposed_days is None or required_days is None:
        return None
    diff = proposed_days - required_days
    if diff <= 0:
        return 20
    if diff <= 5:
        return 15
    if diff <= 10:
        return 10
    return 5


def fallback_breakdown(rfp: RFP, proposal: ExtractedProposal) -> ScoreBreakdown:
    price = price_points(proposal.total_price, rfp.budget)
    delivery = delivery_points(proposal.delivery_days, rfp.delivery_days)
    terms = (8 if proposal.payment_terms else 0) + (7 if proposal.warranty else 0)
    return ScoreBreakdown(
        price=NEUTRAL_PRICE if price is None else price,
        delivery=NEUTRAL_DELIVERY if delivery is None else delivery,
        completeness=20 if proposal.items else 10,
        terms=terms,
        value=10 if proposal.additional_services else 5,
    )


def fallback_score(rfp: RFP, proposal: ExtractedProposal) -> ScoreResult:
    breakdown = fallback_breakdown(rfp, proposal)
    score = clamp_score(breakdown.total())
    price = f"${proposal.total_price:,.2f}" if proposal.total_price is not None else "N/A"
    days = f"{proposal.delivery_days} days" if proposal.delivery_days is not None else "N/A"
    log.info("Fallback score calculated: %s/100", score)
    return ScoreResult(
        score=score,
        evaluation=(f"Automated scoring: {score:g}/100. Price: {price}, Delivery: {days}. "
                    "Manual review recommended."),
        breakdown=breakdown,
        method="fallback",
    )


SCORING_PROMPT = """You are an expert procurement evaluator. Score this vendor proposal from 0 to 100.

SCORING RULES (follow them exactly):

1. Price competitiveness (30 points)
{price_rules}

2. Delivery timeline (20 points)
{delivery_rules}

3. Completeness (20 points)
   - All requested items quoted with specs: 20
   - Most items quoted: 15
   - Some items missing: 10
   - Significant gaps: 5

4. Terms and conditions (15 points)
   - Favourable payment terms: up to 8
   - Good warranty coverage: up to 7

5. Additional value (15 points)
   - Extra services or support: up to 10
   - Quality indicators: up to 5

A proposal with a higher price and later delivery must score lower, all else equal.

RFP REQUIREMENTS:
{rfp_json}

VENDOR PROPOSAL from {vendor_name}:
{proposal_json}

CHECKLIST:
- Proposed price: {price} vs {budget_info}
- Proposed delivery: {days} vs {delivery_info}

Respond ONLY with valid JSON:
{{"score": <0-100>, "evaluation": "<2-3 sentences with specific numbers>",
  "breakdown": {{"price": <0-30>, "delivery": <0-20>, "completeness": <0-20>, "terms": <0-15>, "value": <0-15>}}}}
"""

PRICE_RULES_BUDGET = """   - Price at or under budget: 30
   - 1-10% over budget: 20
   - 11-20% over budget: 10
   - More than 20% over budget: 5
   - Lower price is always better"""
PRICE_RULES_NO_BUDGET = """   - No budget was given: judge whether the pricing is reasonable for the items requested"""
DELIVERY_RULES_DEADLINE = """   - On or before the required days: 20
   - 1-5 days late: 15
   - 6-10 days late: 10
   - More than 10 days late: 5
   - Faster delivery is always better"""
DELIVERY_RULES_NO_DEADLINE = """   - No timeline was given: faster delivery scores higher"""


class ProposalScorer:
    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def build_prompt(self, rfp: RFP, proposal: ExtractedProposal, vendor_name: str) -> str:
        return SCORING_PROMPT.format(
            price_rules=PRICE_RULES_BUDGET if rfp.budget else PRICE_RULES_NO_BUDGET,
            delivery_rules=DELIVERY_RULES_DEADLINE if rfp.delivery_days else DELIVERY_RULES_NO_DEADLINE,
            rfp_json=json.dumps(rfp.model_dump(mode="json", exclude={"raw_prompt", "created_at"}), indent=2),
            vendor_name=vendor_name,
            proposal_json=json.dumps(proposal.model_dump(mode="json"), indent=2),
            price=f"${proposal.total_price}" if proposal.total_price is not None else "N/A",
            budget_info=f"budget ${rfp.budget}" if rfp.budget else "no budget specified",
            days=f"{proposal.delivery_days} days" if proposal.delivery_days is not None else "N/A",
            delivery_info=(f"required {rfp.delivery_days} days" if rfp.delivery_days
                           else "no delivery timeline specified"),
        )

    def score(self, rfp: RFP, proposal: ExtractedProposal, vendor_name: str) -> ScoreResult:
        """Never raises: any unreadable model answer falls back to the local calculation."""
        log.info("Scoring proposal from %s (price=%s budget=%s, delivery=%s required=%s)",
                 vendor_name, proposal.total_price, rfp.budget, proposal.delivery_days, rfp.delivery_days)
        try:
            raw = self.generator.generate(
                self.build_prompt(rfp, proposal, vendor_name),
                temperature=SCORING_TEMPERATURE,
                max_tokens=SCORING_MAX_TOKENS,
            )
        except GenerationError as e:
            log.warning("Scoring call failed for %s, using fallback: %s", vendor_name, e)
            return fallback_score(rfp, proposal)

        try:
            data = parse_json_object(raw, embedded=True)
        except ValueError:
            log.warning("Scoring output is not JSON, using fallback. Raw: %s", (raw or "")[:300])
            return fallback_score(rfp, proposal)

        result = self._from_model(data, rfp, proposal)
        if result is None:
            log.warning("Scoring output has no usable score, using fallback. Raw: %s", (raw or "")[:300])
            return fallback_score(rfp, proposal)
        log.info("Proposal from %s scored %s/100", vendor_name, result.score)
        return result

    def _from_model(self, data: Dict[str, Any], rfp: RFP, proposal: ExtractedProposal) -> Optional[ScoreResult]:
        evaluation = data.get("evaluation")
        if not isinstance(evaluation, str) or not evaluation.strip():
            evaluation = "No evaluation provided"

        breakdown = self._pinned_breakdown(data.get("breakdown"), rfp, proposal)
        if breakdown is not None:
            score = clamp_score(breakdown.total())
        else:
            raw_score = _finite(data.get("score"))
            if raw_score is None:
                return None
            score = clamp_score(raw_score)
        return ScoreResult(score=score, evaluation=evaluation, breakdown=breakdown, method="model")

    @staticmethod
    def _pinned_breakdown(raw: Any, rfp: RFP, proposal: ExtractedProposal) -> Optional[ScoreBreakdown]:
        """Clamp model components to their maxima and pin price/delivery to the tiers.

        Pinning keeps the ordering monotone in price and delivery whenever both
        sides of the comparison are known.
        """
        if not isinstance(raw, dict):
            return None
        parts = {}
        for key, cap in MAX_POINTS.items():
            value = _finite(raw.get(key))
            if value is None:
                return None
            parts[key] = max(0.0, min(float(cap), value))
        price = price_points(proposal.total_price, rfp.budget)
        if price is not None:
            parts["price"] = price
        delivery = delivery_points(proposal.delivery_days, rfp.delivery_days)
        if delivery is not None:
            parts["delivery"] = delivery
        try:
            return ScoreBreakdown(**parts)
        except pydantic.ValidationError:
            return None
