# extraction.py
# Vendor reply text -> ExtractedProposal, via the text generator plus a
# normalisation pass over whatever comes back.

import json
import logging
import re
from typing import Any, Dict, List, Optional, Union

import pydantic

from .errors import ExtractionFailure, GenerationError
from .llm import TextGenerator, parse_json_object
from .models import RFP, ExtractedProposal

log = logging.getLogger("rfpcloud.extraction")

EXTRACTION_TEMPERATURE = 0.2
EXTRACTION_MAX_TOKENS = 3072

PLACEHOLDERS = {"", "n/a", "na", "none", "null", "not specified", "not stated", "unknown", "-", "tbd"}

NUMBER_WORDS = {
    "a": 1, "an": 1, "one": 1, "two": 2, "three": 3, "four": 4, "five": 5, "six": 6,
    "seven": 7, "eight": 8, "nine": 9, "ten": 10, "eleven": 11, "twelve": 12,
}
UNIT_DAYS = {"day": 1, "days": 1, "week": 7, "weeks": 7, "month": 30, "months": 30}
IMMEDIATE_WORDS = ("immediate", "immediately", "same day", "same-day")

_NUMBER_RE = re.compile(r"-?\d[\d,]*(?:\.\d+)?")
_DURATION_RE = re.compile(
    r"\b(\d+(?:\.\d+)?|" + "|".join(NUMBER_WORDS) + r")\s*(?:business\s+|working\s+|calendar\s+)?"
    r"(days?|weeks?|months?)\b"
)
_BARE_NUMBER_RE = re.compile(r"^\d+(?:\.\d+)?$")

EXTRACTION_PROMPT = """You are an expert at reading vendor proposals out of messy email replies.
Vendors may answer in free text, tables, bullet points or any mix of them.

The RFP they are answering (use it to match their line items to what was requested):
{rfp_json}

Extract a JSON object with exactly these keys:
- items: list of quoted items, each {{"name", "quantity", "unit_price", "total_price", "specifications"}}.
  Match names to the RFP items even if the vendor words them differently.
- total_price: overall quoted total as a plain number (no currency symbols, no thousands separators)
- delivery_days: delivery time as an integer number of days ("2 weeks" -> 14, "1 month" -> 30, "immediate" -> 1)
- payment_terms: a string or list of strings, e.g. "Net 30" or ["50% upfront", "50% on delivery"]
- warranty: warranty as a string, e.g. "2 years"
- additional_services: list of extra services offered, e.g. ["Installation", "Training"]
- notes: important conditions or caveats
- confidence: your confidence in this extraction, 0-100

Rules:
- Anything the vendor did not state is null. Never use 0 or "" for a missing value.
- "$1,250.00" -> 1250
- Look for prices in tables, lists and inline text alike.

Respond ONLY with the JSON object. No markdown, no explanations.

VENDOR EMAIL RESPONSE:
{vendor_text}
"""


def _is_placeholder(v: Any) -> bool:
    return isinstance(v, str) and v.strip().lower() in PLACEHOLDERS


def parse_money(v: Any) -> Optional[float]:
    if v is None or isinstance(v, bool) or _is_placeholder(v):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str):
        m = _NUMBER_RE.search(v)
        if m:
            return float(m.group(0).replace(",", ""))
    return None


def parse_days(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool) or _is_placeholder(v):
        return None
    if isinstance(v, (int, float)):
        return int(round(v))
    if not isinstance(v, str):
        return None
    text = v.strip().lower()
    if any(w in text for w in IMMEDIATE_WORDS):
        return 1
    if _BARE_NUMBER_RE.match(text):
        return int(round(float(text)))
    m = _DURATION_RE.search(text)
    if not m:
        return None
    qty_raw, unit = m.group(1), m.group(2)
    qty = NUMBER_WORDS[qty_raw] if qty_raw in NUMBER_WORDS else float(qty_raw)
    return int(round(qty * UNIT_DAYS[unit]))


def parse_quantity(v: Any) -> Optional[int]:
    if v is None or isinstance(v, bool) or _is_placeholder(v):
        return None
    if isinstance(v, (int, float)):
        return int(v)
    if isinstance(v, str):
        m = _NUMBER_RE.search(v)
        if m:
            return int(float(m.group(0).replace(",", "")))
    return None


def clean_text(v: Any) -> Optional[str]:
    if v is None or _is_placeholder(v):
        return None
    if isinstance(v, (int, float)) and not isinstance(v, bool):
        return str(v)
    if isinstance(v, str):
        return v.strip()
    return None


def clean_list(v: Any) -> Optional[List[str]]:
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return None
    out = [s for s in (clean_text(x) for x in v) if s]
    return out or None


def clean_terms(v: Any) -> Optional[Union[str, List[str]]]:
    if isinstance(v, list):
        return clean_list(v)
    return clean_text(v)


def clamp_confidence(v: Any) -> Optional[float]:
    n = parse_money(v)
    if n is None:
        return None
    return max(0.0, min(100.0, n))


def normalize_items(v: Any) -> List[Dict[str, Any]]:
    if not isinstance(v, list):
        return []
    items = []
    for raw in v:
        if not isinstance(raw, dict):
            continue
        name = clean_text(raw.get("name"))
        if not name:
            continue
        specs = raw.get("specifications")
        items.append({
            "name": name,
            "quantity": parse_quantity(raw.get("quantity")),
            "unit_price": parse_money(raw.get("unit_price")),
            "total_price": parse_money(raw.get("total_price")),
            "specifications": specs if isinstance(specs, dict) and specs else None,
        })
    return items


def normalize_proposal(data: Dict[str, Any]) -> Dict[str, Any]:
    """Apply the null-vs-zero, currency and duration rules to raw model output."""
    return {
        "items": normalize_items(data.get("items")),
        "total_price": parse_money(data.get("total_price")),
        "delivery_days": parse_days(data.get("delivery_days")),
        "payment_terms": clean_terms(data.get("payment_terms")),
        "warranty": clean_text(data.get("warranty")),
        "additional_services": clean_list(data.get("additional_services")),
        "notes": clean_text(data.get("notes")),
        "confidence": clamp_confidence(data.get("confidence")),
    }


class ProposalExtractor:
    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def build_prompt(self, text: str, rfp: RFP) -> str:
        rfp_json = json.dumps(rfp.model_dump(mode="json", exclude={"raw_prompt", "created_at"}), indent=2)
        return EXTRACTION_PROMPT.format(rfp_json=rfp_json, vendor_text=text)

    def extract(self, text: str, rfp: RFP) -> ExtractedProposal:
        log.info("Extracting proposal for RFP %s (%d chars)", rfp.id, len(text or ""))
        try:
            raw = self.generator.generate(
                self.build_prompt(text, rfp),
                temperature=EXTRACTION_TEMPERATURE,
                max_tokens=EXTRACTION_MAX_TOKENS,
            )
        except GenerationError as e:
            raise ExtractionFailure(f"Failed to parse vendor proposal: {e.message}") from e

        try:
            data = parse_json_object(raw)
        except ValueError as e:
            log.warning("Extraction output is not JSON: %s", (raw or "")[:300])
            raise ExtractionFailure(f"Failed to parse vendor proposal: {e}", raw_text=raw) from e

        try:
            proposal = ExtractedProposal.model_validate(normalize_proposal(data))
        except pydantic.ValidationError as e:
            raise ExtractionFailure(f"Extracted proposal has an unexpected shape: {e}", raw_text=raw) from e

        log.info("Extracted proposal: %d items, total=%s, confidence=%s",
                 len(proposal.items), proposal.total_price, proposal.confidence)
        return proposal
