"""Text classifiers behind the moderation gate.

A classifier answers ``classify(text) -> ClassifierVerdict`` and raises
:class:`~parley.errors.ServiceUnavailable` when it cannot answer.  The gate
owns timeouts and the fail-open/fail-closed policy.
"""

from __future__ import annotations

import logging
import re
from typing import Optional, Protocol

import httpx

from parley.errors import ServiceUnavailable
from parley.moderation.models import ClassifierVerdict

logger = logging.getLogger(__name__)


class Classifier(Protocol):
    def classify(self, text: str) -> ClassifierVerdict:
        ...


# ---------------------------------------------------------------------------
# Keyword classifier
# ---------------------------------------------------------------------------

# Category -> word-boundary patterns (case-insensitive)
_KEYWORD_CATEGORIES: dict[str, list[str]] = {
    "harassment": [r"kill\s+yourself", r"\bkys\b", r"\bidiot\b", r"\bloser\b"],
    "hate": [
        r"\bnigg(?:er|a)\b", r"\bfaggot\b", r"\bretard\b", r"\bkike\b",
        r"\bspic\b", r"\bchink\b",
    ],
    "profanity": [r"\bfuck\w*\b", r"\bshit\b", r"\bcunt\b", r"\basshole\b", r"\bbitch\b"],
    "self-harm": [r"\bwant\s+to\s+die\b", r"\bcut\s+myself\b"],
}

# Sensitive data that should not travel through direct messages
_SENSITIVE_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("ssn", re.compile(r"\b\d{3}-\d{2}-\d{4}\b")),
    ("credit_card", re.compile(r"\b(?:\d{4}[-\s]?){3}\d{4}\b")),
    ("private_key", re.compile(r"-----BEGIN\s+(RSA\s+)?PRIVATE\s+KEY-----")),
]


class KeywordClassifier:
    """Local regex classifier.  Never raises."""

    def __init__(self, extra: Optional[dict[str, list[str]]] = None) -> None:
        categories = {k: list(v) for k, v in _KEYWORD_CATEGORIES.items()}
        for category, patterns in (extra or {}).items():
            categories.setdefault(category, []).extend(patterns)
        self._patterns = {
            category: [re.compile(p, re.IGNORECASE) for p in patterns]
            for category, patterns in categories.items()
        }

    def classify(self, text: str) -> ClassifierVerdict:
        hits = [
            category
            for category, patterns in self._patterns.items()
            if any(p.search(text) for p in patterns)
        ]
        for label, pattern in _SENSITIVE_PATTERNS:
            if pattern.search(text):
                hits.append(f"sensitive/{label}")
        return ClassifierVerdict(flagged=bool(hits), categories=hits)


# ---------------------------------------------------------------------------
# HTTP classifier
# ---------------------------------------------------------------------------


class HttpClassifier:
    """Client for an OpenAI-compatible ``/moderations`` endpoint.

    Parameters
    ----------
    url:
        Full endpoint URL, e.g. ``https://api.openai.com/v1/moderations``.
    api_key:
        Sent as a bearer token when set.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        url: str,
        api_key: str = "",
        model: str = "omni-moderation-latest",
        timeout: float = 3.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.url = url
        self.model = model
        headers = {"Content-Type": "application/json"}
        if api_key:
            headers["Authorization"] = f"Bearer {api_key}"
        self._client = client or httpx.Client(timeout=timeout, headers=headers)

    def classify(self, text: str) -> ClassifierVerdict:
        try:
            response = self._client.post(self.url, json={"model": self.model, "input": text})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as exc:
            raise ServiceUnavailable(
                f"Moderation endpoint returned {exc.response.status_code}"
            ) from exc
        except (httpx.RequestError, ValueError) as exc:
            raise ServiceUnavailable(f"Moderation endpoint unreachable: {exc}") from exc

        results = data.get("results") or []
        if not results:
            raise ServiceUnavailable("Moderation endpoint returned no results")
        result = results[0]
        categories = [
            name for name, flagged in (result.get("categories") or {}).items() if flagged
        ]
        return ClassifierVerdict(flagged=bool(result.get("flagged")), categories=categories)

    def close(self) -> None:
        self._client.close()


# ---------------------------------------------------------------------------
# Chain
# ---------------------------------------------------------------------------


class ChainClassifier:
    """Run classifiers in order; the first flagged verdict wins.

    Cheap classifiers go first.  If one raises, the chain raises: the gate
    then applies its failure policy to the whole check.
    """

    def __init__(self, classifiers: list[Classifier]) -> None:
        self.classifiers = list(classifiers)

    def classify(self, text: str) -> ClassifierVerdict:
        for classifier in self.classifiers:
            verdict = classifier.classify(text)
            if verdict.flagged:
                return verdict
        return ClassifierVerdict(flagged=False)
