"""
Completion Client
=================
Thin wrapper over the OpenAI chat completions API that returns parsed JSON.

Failures are never papered over: a missing key raises ConfigurationError,
and SDK errors or unparseable output raise UpstreamError.
"""

import json
import re
from typing import Optional

from openai import OpenAI, OpenAIError

from config import OPENAI_API_KEY, OPENAI_BASE_URL, OPENAI_MODEL, get_logger
from errors import ConfigurationError, UpstreamError

logger = get_logger(__name__)

PROVIDER = "openai"

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


def parse_json_object(text: Optional[str], provider: str = PROVIDER) -> dict:
    """
    Parse a JSON object from model output, tolerating ``` fences.

    Anything that is not a JSON object raises UpstreamError.
    """
    if not text or not text.strip():
        raise UpstreamError("Empty response from AI provider", provider=provider)

    cleaned = _FENCE_RE.sub("", text.strip())
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        # Models sometimes wrap the object in prose
        start, end = cleaned.find("{"), cleaned.rfind("}")
        if start == -1 or end <= start:
            raise UpstreamError(
                "AI provider returned malformed JSON", provider=provider,
                details=cleaned[:200],
            )
        try:
            data = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError as e:
            raise UpstreamError(
                f"AI provider returned malformed JSON: {e.msg}", provider=provider,
                details=cleaned[:200],
            ) from e

    if not isinstance(data, dict):
        raise UpstreamError("AI provider did not return a JSON object", provider=provider)
    return data


class CompletionClient:
    """Chat completion client; one instance per process is enough."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        client: Optional[OpenAI] = None,
    ):
        self.api_key = OPENAI_API_KEY if api_key is None else api_key
        self.model = model or OPENAI_MODEL
        self.base_url = base_url or OPENAI_BASE_URL
        self._client = client

    @property
    def configured(self) -> bool:
        return bool(self.api_key) or self._client is not None

    def _get_client(self) -> OpenAI:
        if self._client is None:
            if not self.api_key:
                raise ConfigurationError(
                    "AI service not configured",
                    hint="Set OPENAI_API_KEY to enable salary and tax analysis",
                )
            self._client = OpenAI(api_key=self.api_key, base_url=self.base_url)
        return self._client

    def complete(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: int = 1500,
        temperature: float = 0.2,
    ) -> str:
        """Raw completion text for `prompt`."""
        client = self._get_client()
        messages = []
        if system:
            messages.append({"role": "system", "content": system})
        messages.append({"role": "user", "content": prompt})

        try:
            response = client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except OpenAIError as e:
            logger.error("Completion request failed: %s", e)
            raise UpstreamError(f"AI provider request failed: {e}", provider=PROVIDER) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamError("Empty response from AI provider", provider=PROVIDER)
        return content

    def complete_json(self, prompt: str, **kwargs) -> dict:
        """Completion parsed as a JSON object."""
        return parse_json_object(self.complete(prompt, **kwargs))
