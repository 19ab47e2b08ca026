"""Data models for the content moderation system."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ClassifierVerdict:
    """Raw answer from a classifier."""

    flagged: bool
    categories: list[str] = field(default_factory=list)
    reason: Optional[str] = None  # set only by classifiers that explain themselves


@dataclass
class ModerationResult:
    """Decision returned by the moderation gate."""

    approved: bool
    reason: Optional[str] = None
    categories: list[str] = field(default_factory=list)
