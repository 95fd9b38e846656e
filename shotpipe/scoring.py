"""Heuristic ranking of extracted candidates."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, Optional

from .captions import POPULAR_GAME_KEYWORDS
from .models import CandidateItem, QualityTier

RECENT_WINDOW = timedelta(hours=24)
MIN_TITLE_CHARS = 5


def _default_tier_bonus() -> Dict[QualityTier, float]:
    return {
        QualityTier.ULTRA: 15,
        QualityTier.VERY_HIGH: 12,
        QualityTier.HIGH: 8,
        QualityTier.STANDARD: 4,
    }


@dataclass(frozen=True)
class ScoreWeights:
    """Additive weights used by ``score_candidate``."""

    base: float = 10
    tier_bonus: Dict[QualityTier, float] = field(default_factory=_default_tier_bonus)
    has_category: float = 5
    popular_category: float = 10
    has_title: float = 3
    recent: float = 5


DEFAULT_WEIGHTS = ScoreWeights()


def score_candidate(
    item: CandidateItem,
    now: Optional[datetime] = None,
    weights: ScoreWeights = DEFAULT_WEIGHTS,
    popular_keywords: Iterable[str] = POPULAR_GAME_KEYWORDS,
) -> float:
    """Score a candidate; the same inputs always give the same score."""
    now = now or datetime.now(timezone.utc)
    score = weights.base + weights.tier_bonus.get(item.quality_tier, 0)

    if item.category:
        score += weights.has_category
        category = item.category.lower()
        if any(keyword in category for keyword in popular_keywords):
            score += weights.popular_category

    if item.title and len(item.title) > MIN_TITLE_CHARS:
        score += weights.has_title

    if now - item.discovered_at < RECENT_WINDOW:
        score += weights.recent

    return score
