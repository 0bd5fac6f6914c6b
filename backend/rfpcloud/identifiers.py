# identifiers.py
# Pull an RFP id out of an email, and a bare address out of a From header.

import re
from typing import List, Optional, Pattern

UUID = r"[a-f0-9]{8}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{4}-[a-f0-9]{12}"

# Highest priority first. A labelled id beats a bare one, which may just be
# sitting in a quoted thread or a signature.
ID_MATCHERS: List[Pattern] = [
    re.compile(r"RFP\s*ID\s*[:\s-]+(" + UUID + ")", re.IGNORECASE),
    re.compile(r"RFP[:\s-]+(" + UUID + ")", re.IGNORECASE),
    re.compile(r"(" + UUID + ")", re.IGNORECASE),
]

_ANGLE_ADDR = re.compile(r"<(.+?)>")


def extract_identifier(subject: Optional[str], body: Optional[str]) -> Optional[str]:
    text = f"{subject or ''} {body or ''}"
    for matcher in ID_MATCHERS:
        m = matcher.search(text)
        if m:
            return m.group(1).lower()
    return None


def extract_email_address(from_field: str) -> str:
    """'Acme Sales <Sales@Acme.example>' -> 'sales@acme.example'"""
    m = _ANGLE_ADDR.search(from_field or "")
    addr = m.group(1) if m else (from_field or "")
    return addr.strip().lower()
