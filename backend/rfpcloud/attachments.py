# attachments.py
# Turn inbound email attachments into text the extractor can read.
# Only plain text and CSV are decoded; everything else is left as a marker.

import base64
import binascii
import logging
from typing import List, Optional

from .models import Attachment

log = logging.getLogger("rfpcloud.attachments")

TEXT_TYPES = ("text/plain", "text/csv")
SECTION_MARKER = "--- ATTACHMENTS ---"


def attachment_text(att: Attachment) -> str:
    ctype = (att.content_type or "").split(";")[0].strip().lower()
    if ctype in TEXT_TYPES:
        try:
            raw = base64.b64decode(att.content or "", validate=False)
        except (binascii.Error, ValueError) as e:
            log.warning("Could not decode attachment %s: %s", att.filename, e)
            return f"[Attachment: {att.filename} ({ctype}) - could not be decoded]"
        return f"[Attachment: {att.filename}]\n{raw.decode('utf-8', errors='replace').strip()}"
    return f"[Attachment: {att.filename} ({ctype or 'unknown'}) - content not processed]"


def attachments_to_text(attachments: List[Attachment]) -> Optional[str]:
    if not attachments:
        return None
    return "\n\n".join(attachment_text(a) for a in attachments)


def combine_with_attachments(body: str, extra: Optional[str]) -> str:
    if not extra:
        return body
    return f"{body}\n\n{SECTION_MARKER}\n{extra}"
