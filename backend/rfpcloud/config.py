# config.py
# Environment-driven settings. A local .env file is honoured.

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

OPENAI_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL") or None

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.getenv("RFP_DATA_DIR", str(BASE_DIR / "data")))

# outbound mail goes through Resend when a key is set, otherwise to the local outbox
RESEND_API_KEY = os.getenv("RESEND_API_KEY")
FROM_EMAIL = os.getenv("RFP_FROM_EMAIL") or os.getenv("RESEND_FROM_EMAIL", "procurement@rfpcloud.example")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_JSON = os.getenv("LOG_JSON", "").lower() in ("1", "true", "yes")

# comma separated; "*" for local dev
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
