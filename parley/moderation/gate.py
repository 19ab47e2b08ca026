"""Moderation gate: classifier call with a timeout and a per-call failure policy.

``moderate`` never raises.  When the classifier fails or exceeds its
timeout the result is decided by the caller's ``fail_open`` flag: message
sends pass ``True`` so an outage does not block conversations; call sites
that must not let unchecked content through pass ``False``.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Optional

from parley.moderation.classifiers import Classifier, KeywordClassifier
from parley.moderation.models import ModerationResult

logger = logging.getLogger(__name__)

SERVICE_ERROR_CATEGORY = "service_error"
UNAVAILABLE_REASON = "Moderation service temporarily unavailable"
GENERIC_REASON = "Your message contains content that violates our community guidelines."

# Checked in order; the first matching family picks the reason.
_CATEGORY_REASONS: list[tuple[tuple[str, ...], str]] = [
    (("harassment",), "Your message contains harassment or threatening content."),
    (("hate",), "Your message contains hateful or discriminatory content."),
    (("self-harm",), "Your message contains content related to self-harm."),
    (("sexual",), "Your message contains inappropriate sexual content."),
    (("violence",), "Your message contains violent or graphic content."),
    (("illicit",), "Your message contains content promoting illegal activities."),
    (("sensitive",), "Your message appears to contain sensitive personal data. Please remove it before sending."),
]


def reason_for(categories: list[str]) -> str:
    """Map flagged categories to a user-facing explanation."""
    families = {c.split("/", 1)[0] for c in categories}
    for prefixes, reason in _CATEGORY_REASONS:
        if families.intersection(prefixes):
            return reason
    return GENERIC_REASON


class ModerationGate:
    """Synchronous moderation check with its own timeout."""

    def __init__(
        self,
        classifier: Optional[Classifier] = None,
        timeout: float = 3.0,
        max_workers: int = 4,
    ) -> None:
        self.classifier = classifier or KeywordClassifier()
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="moderation"
        )

    def moderate(self, text: str, fail_open: bool = True) -> ModerationResult:
        try:
            future = self._executor.submit(self.classifier.classify, text)
        except RuntimeError:
            logger.warning("moderation gate is closed (fail_open=%s)", fail_open)
            return self._unavailable(fail_open)
        try:
            verdict = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            logger.warning("moderation timed out after %.2fs (fail_open=%s)", self.timeout, fail_open)
            return self._unavailable(fail_open)
        except Exception:
            logger.exception("moderation classifier failed (fail_open=%s)", fail_open)
            return self._unavailable(fail_open)

        if not verdict.flagged:
            return ModerationResult(approved=True, categories=[])
        return ModerationResult(
            approved=False,
            reason=verdict.reason or reason_for(verdict.categories),
            categories=list(verdict.categories),
        )

    @staticmethod
    def _unavailable(fail_open: bool) -> ModerationResult:
        return ModerationResult(
            approved=fail_open,
            reason=UNAVAILABLE_REASON,
            categories=[SERVICE_ERROR_CATEGORY],
        )

    def close(self) -> None:
        """Stop the worker pool.  Later calls are treated as an outage."""
        self._executor.shutdown(wait=False, cancel_futures=True)
