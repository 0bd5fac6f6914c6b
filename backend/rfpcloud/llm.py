# llm.py
# Text-generation wrapper plus the helpers that turn model replies into JSON.

import json
import logging
import re
from typing import Any, Dict, Optional, Protocol

from openai import OpenAI, OpenAIError

from . import config
from .errors import GenerationError

log = logging.getLogger("rfpcloud.llm")

_FENCE_RE = re.compile(r"```(?:json|JSON)?\s*\n?")


class TextGenerator(Protocol):
    def generate(self, prompt: str, temperature: float = 0.2, max_tokens: int = 2048) -> str:
        ...


class OpenAIGenerator:
    """Chat-completions backed generator. Works against any OpenAI-compatible base URL."""

    def __init__(self, api_key: Optional[str], model: str = "gpt-4o-mini", base_url: Optional[str] = None):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url
        self._client = None

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise GenerationError("OPENAI_API_KEY is not set")
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def generate(self, prompt: str, temperature: float = 0.2, max_tokens: int = 2048) -> str:
        client = self.client
        try:
            resp = client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
            )
        except OpenAIError as e:
            log.error("Generation call failed (%s): %s", self.model, e)
            raise GenerationError(f"Text generation failed: {e}") from e
        return resp.choices[0].message.content or ""


def build_generator() -> TextGenerator:
    return OpenAIGenerator(config.OPENAI_KEY, config.OPENAI_MODEL, config.OPENAI_BASE_URL)


def strip_code_fences(text: str) -> str:
    return _FENCE_RE.sub("", text or "").replace("```", "").strip()


def extract_json_block(text: str) -> Optional[str]:
    """Return the first balanced {...} block in text, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_str = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_str:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_str = False
                continue
            if ch == '"':
                in_str = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        # unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def parse_json_object(text: str, embedded: bool = False) -> Dict[str, Any]:
    """Parse a model reply as a JSON object.

    Code fences are stripped first. With embedded=True the first balanced
    {...} block is pulled out of any surrounding prose. Raises ValueError.
    """
    cleaned = strip_code_fences(text)
    if embedded:
        block = extract_json_block(cleaned)
        if block is not None:
            cleaned = block
    data = json.loads(cleaned)
    if not isinstance(data, dict):
        raise ValueError(f"expected a JSON object, got {type(data).__name__}")
    return data
