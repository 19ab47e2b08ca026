"""Context-aware moderation through the Anthropic API.

Keyword lists and moderation endpoints miss context (sarcasm, music slang,
quoted lyrics).  This classifier asks a model for a JSON verdict and is
meant to run last in a :class:`~parley.moderation.classifiers.ChainClassifier`.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Optional

import anthropic

from parley.errors import ServiceUnavailable
from parley.moderation.models import ClassifierVerdict

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-haiku-4-5"

# Short messages carry too little context to be worth a model call.
MIN_CONTEXT_LENGTH = 20

MODERATION_SYSTEM_PROMPT = """\
You are a content moderator for the direct messages of a music community \
platform. Analyze the user's message for appropriateness.

Reject messages that:
- Contain hate speech, harassment or threats
- Promote illegal activities
- Are spam or unsolicited promotion

Approve messages that:
- Discuss music, events, venues or artists
- Share personal experiences or opinions respectfully
- Contain mild profanity in an expressive context

Return ONLY a JSON object, no commentary:
{"approved": boolean, "reason": "explanation if not approved", \
"categories": ["category", ...]}
"""


class LLMClassifier:
    """Thin wrapper around the Anthropic Python SDK.

    Parameters
    ----------
    model : str
        Model identifier to use for classification.
    api_key : str | None
        Anthropic API key.  Falls back to the ``ANTHROPIC_API_KEY``
        environment variable when *None*.
    timeout : float
        Request timeout in seconds.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key: str | None = None,
        timeout: float = 3.0,
        client: Optional[anthropic.Anthropic] = None,
    ) -> None:
        self.model = model
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self._configured = bool(self.api_key) or client is not None

        if client is not None:
            self._client = client
        elif self._configured:
            self._client = anthropic.Anthropic(api_key=self.api_key, timeout=timeout)
        else:
            self._client = None  # type: ignore[assignment]

    @property
    def configured(self) -> bool:
        """Return *True* if an API key is available."""
        return self._configured

    def classify(self, text: str) -> ClassifierVerdict:
        if not self._configured:
            raise ServiceUnavailable("LLM moderation not configured. Set ANTHROPIC_API_KEY.")
        if len(text) <= MIN_CONTEXT_LENGTH:
            return ClassifierVerdict(flagged=False)

        start = time.monotonic()
        try:
            response = self._client.messages.create(
                model=self.model,
                max_tokens=150,
                temperature=0.1,
                system=MODERATION_SYSTEM_PROMPT,
                messages=[{"role": "user", "content": text}],
            )
        except anthropic.APIError as exc:
            raise ServiceUnavailable(f"LLM moderation failed: {exc}") from exc
        latency_ms = int((time.monotonic() - start) * 1000)
        logger.debug("llm moderation took %d ms", latency_ms)

        content = response.content[0].text if response.content else ""
        return self._parse(content)

    @staticmethod
    def _parse(content: str) -> ClassifierVerdict:
        try:
            data = json.loads(content.strip())
        except json.JSONDecodeError as exc:
            logger.warning("unparseable moderation reply: %r", content[:200])
            raise ServiceUnavailable("LLM moderation returned an invalid reply") from exc
        if not isinstance(data, dict) or "approved" not in data:
            raise ServiceUnavailable("LLM moderation returned an invalid reply")
        if data["approved"]:
            return ClassifierVerdict(flagged=False)
        categories = [str(c) for c in data.get("categories") or []] or ["context_inappropriate"]
        return ClassifierVerdict(flagged=True, categories=categories, reason=data.get("reason") or None)
