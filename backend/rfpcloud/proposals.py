# proposals.py
# Read side of scored proposals: lookups, listings and per-RFP statistics.

from typing import List

from .errors import NotFoundError
from .models import Proposal, ProposalStats, TopVendor
from .storage import JsonStorage


def _newest_first(rows):
    return sorted(rows, key=lambda p: p.get("created_at", ""), reverse=True)


class ProposalService:
    def __init__(self, storage: JsonStorage):
        self.storage = storage

    def get_proposal(self, proposal_id: str) -> Proposal:
        rec = self.storage.get("proposals", proposal_id)
        if not rec:
            raise NotFoundError("Proposal not found")
        return Proposal.model_validate(rec)

    def list_proposals(self) -> List[Proposal]:
        return [Proposal.model_validate(p) for p in _newest_first(self.storage.all("proposals"))]

    def proposals_for_rfp(self, rfp_id: str) -> List[Proposal]:
        return [Proposal.model_validate(p) for p in _newest_first(self.storage.find("proposals", rfp_id=rfp_id))]

    def proposals_for_vendor(self, vendor_id: str) -> List[Proposal]:
        return [Proposal.model_validate(p)
                for p in _newest_first(self.storage.find("proposals", vendor_id=vendor_id))]

    def delete_proposal(self, proposal_id: str) -> None:
        if not self.storage.delete("proposals", proposal_id):
            raise NotFoundError("Proposal not found")

    def stats(self, rfp_id: str) -> ProposalStats:
        proposals = self.storage.find("proposals", rfp_id=rfp_id)
        scored = [p for p in proposals if p.get("score") is not None]
        if not scored:
            return ProposalStats(total_proposals=len(proposals))

        scores = [p["score"] for p in scored]
        top = max(scored, key=lambda p: p["score"])
        vendor = self.storage.get("vendors", top["vendor_id"]) or {}
        return ProposalStats(
            total_proposals=len(proposals),
            average_score=round(sum(scores) / len(scores), 2),
            highest_score=max(scores),
            lowest_score=min(scores),
            top_vendor=TopVendor(name=vendor.get("name", "Unknown vendor"), score=top["score"]),
        )
