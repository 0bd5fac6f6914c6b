# comparison.py
# Rank every proposal received for an RFP and, when there is a choice to make,
# recommend one vendor.

import json
import logging
from typing import List, Optional

from .errors import GenerationError, NotFoundError
from .llm import TextGenerator, parse_json_object
from .models import RFP, Comparison, ComparisonRow, ExtractedProposal, Recommendation
from .storage import JsonStorage

log = logging.getLogger("rfpcloud.comparison")

RECOMMEND_TEMPERATURE = 0.5
RECOMMEND_MAX_TOKENS = 1536

RECOMMEND_PROMPT = """You are an expert procurement advisor. Compare these vendor proposals and recommend the best one.

Consider value for money, delivery capability, terms and conditions, risk,
the scores and evaluations already given, and how complete each proposal is.

RFP REQUIREMENTS:
{rfp_json}

VENDOR PROPOSALS:
{proposals_json}

Respond ONLY with valid JSON:
{{"recommended_vendor_id": "<one of the vendor_id values above>",
  "reasoning": "<3-4 sentences on why this vendor>",
  "comparison_summary": "<4-6 sentences comparing all vendors and their key differences>"}}
"""


def rank_rows(rows: List[ComparisonRow]) -> List[ComparisonRow]:
    """Highest score first; unscored last; lower price wins a tie."""
    def key(r: ComparisonRow):
        price = r.total_price if r.total_price is not None else float("inf")
        return (r.score is None, -(r.score or 0.0), price)
    return sorted(rows, key=key)


def default_recommendation(rows: List[ComparisonRow]) -> Recommendation:
    ranked = rank_rows(rows)
    best = ranked[0]
    lines = []
    for r in ranked:
        score = f"{r.score:g}/100" if r.score is not None else "unscored"
        price = f"${r.total_price:,.2f}" if r.total_price is not None else "no total quoted"
        lines.append(f"{r.vendor_name}: {score}, {price}.")
    return Recommendation(
        recommended_vendor_id=best.vendor_id,
        reasoning=f"{best.vendor_name} has the highest proposal score among {len(ranked)} proposals.",
        comparison_summary=" ".join(lines),
    )


class ComparisonAggregator:
    def __init__(self, storage: JsonStorage, generator: TextGenerator):
        self.storage = storage
        self.generator = generator

    def compare(self, rfp_id: str) -> Comparison:
        rec = self.storage.get("rfps", rfp_id)
        if not rec:
            raise NotFoundError("RFP not found")
        rfp = RFP.model_validate(rec)

        rows = rank_rows(self._rows(rfp_id))
        comparison = Comparison(rfp_id=rfp.id, title=rfp.title, proposals=rows)
        if len(rows) < 2:
            return comparison

        comparison.recommendation = self.recommend(rfp, rows)
        return comparison

    def _rows(self, rfp_id: str) -> List[ComparisonRow]:
        vendors = {v["id"]: v for v in self.storage.all("vendors")}
        rows = []
        for p in self.storage.find("proposals", rfp_id=rfp_id):
            vendor = vendors.get(p["vendor_id"], {})
            extracted = ExtractedProposal.model_validate(p.get("extracted_data") or {})
            rows.append(ComparisonRow(
                id=p["id"],
                vendor_id=p["vendor_id"],
                vendor_name=vendor.get("name", "Unknown vendor"),
                vendor_email=vendor.get("email", ""),
                total_price=extracted.total_price,
                score=p.get("score"),
                evaluation=p.get("evaluation"),
                extracted_data=extracted,
                created_at=p["created_at"],
            ))
        return rows

    def recommend(self, rfp: RFP, rows: List[ComparisonRow]) -> Recommendation:
        """Model recommendation, held to naming a vendor that actually bid."""
        vendor_ids = {r.vendor_id for r in rows}
        parsed = self._model_recommendation(rfp, rows)
        if parsed is not None and parsed.recommended_vendor_id in vendor_ids:
            return parsed
        if parsed is not None:
            log.warning("Recommended vendor %s is not among the bidders, using top score",
                        parsed.recommended_vendor_id)
        return default_recommendation(rows)

    def _model_recommendation(self, rfp: RFP, rows: List[ComparisonRow]) -> Optional[Recommendation]:
        payload = [
            {
                "vendor_id": r.vendor_id,
                "vendor_name": r.vendor_name,
                "score": r.score,
                "evaluation": r.evaluation,
                "extracted_data": r.extracted_data.model_dump(mode="json"),
            }
            for r in rows
        ]
        prompt = RECOMMEND_PROMPT.format(
            rfp_json=json.dumps(rfp.model_dump(mode="json", exclude={"raw_prompt", "created_at"}), indent=2),
            proposals_json=json.dumps(payload, indent=2),
        )
        try:
            raw = self.generator.generate(prompt, temperature=RECOMMEND_TEMPERATURE,
                                          max_tokens=RECOMMEND_MAX_TOKENS)
            data = parse_json_object(raw, embedded=True)
        except GenerationError as e:
            log.warning("Recommendation call failed: %s", e)
            return None
        except ValueError:
            log.warning("Recommendation output is not JSON")
            return None

        vendor_id = data.get("recommended_vendor_id")
        if not isinstance(vendor_id, str):
            return None
        return Recommendation(
            recommended_vendor_id=vendor_id,
            reasoning=str(data.get("reasoning") or ""),
            comparison_summary=str(data.get("comparison_summary") or ""),
        )
