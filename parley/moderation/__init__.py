"""Content moderation: classifiers and the fail-open/fail-closed gate."""

from parley.moderation.classifiers import (
    ChainClassifier,
    Classifier,
    HttpClassifier,
    KeywordClassifier,
)
from parley.moderation.gate import ModerationGate
from parley.moderation.models import ClassifierVerdict, ModerationResult

__all__ = [
    "ChainClassifier",
    "Classifier",
    "ClassifierVerdict",
    "HttpClassifier",
    "KeywordClassifier",
    "ModerationGate",
    "ModerationResult",
]
