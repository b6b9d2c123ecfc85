"""Access-based scoring and storage tier recommendations."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping

from .models import AccessPattern, StorageObject, utcnow

_SECONDS_PER_DAY = 24 * 60 * 60
_BYTES_PER_MB = 1024 * 1024
_BYTES_PER_GB = 1024 * 1024 * 1024

_WEIGHTS = {
    "recency": 0.4,
    "frequency": 0.3,
    "size": 0.2,
    "age": 0.1,
}

# Dollars per GB per month.
_TIER_COSTS = {
    "hot": 0.023,
    "warm": 0.012,
    "cold": 0.004,
}


@dataclass
class TieringRules:
    """Thresholds used to assign an object to a storage tier."""

    hot_tier_days: int = 7
    warm_tier_days: int = 30
    access_threshold: int = 10
    size_threshold: int = 1024 * 1024


@dataclass
class ObjectScore:
    """The score and predicted tier of one object."""

    object_id: str
    score: float
    prediction: str
    confidence: float
    features: dict[str, float] = field(default_factory=dict)


@dataclass
class TieringRecommendation:
    """A suggestion to move an object to a different tier."""

    object_id: str
    object_key: str
    current_tier: str
    recommended_tier: str
    confidence: float
    reason: str
    estimated_savings: float


class DataClassifier:
    """Scores objects by recency, frequency, size and age."""

    def __init__(
        self,
        rules: TieringRules | None = None,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.rules = rules or TieringRules()
        self.access_patterns: list[AccessPattern] = []
        self._clock = clock or utcnow

    def add_access_pattern(self, pattern: AccessPattern) -> None:
        self.access_patterns.append(pattern)

    def classify_objects(self, objects: Mapping[str, StorageObject]) -> list[ObjectScore]:
        """Score every object, highest score first."""
        now = self._clock()
        scores = [self._score(obj, now) for obj in objects.values()]
        scores.sort(key=lambda item: item.score, reverse=True)
        return scores

    def get_recommendations(
        self, objects: Mapping[str, StorageObject]
    ) -> list[TieringRecommendation]:
        """Recommend a move for every object whose predicted tier differs."""
        by_id: dict[str, StorageObject] = {}
        for obj in objects.values():
            by_id.setdefault(obj.id, obj)

        recommendations = []
        for score in self.classify_objects(objects):
            obj = by_id.get(score.object_id)
            if obj is None or obj.storage_tier == score.prediction:
                continue
            recommendations.append(
                TieringRecommendation(
                    object_id=score.object_id,
                    object_key=obj.key,
                    current_tier=obj.storage_tier,
                    recommended_tier=score.prediction,
                    confidence=score.confidence,
                    reason=_reason(score.features, score.prediction),
                    estimated_savings=_savings(obj, score.prediction),
                )
            )
        return recommendations

    def _score(self, obj: StorageObject, now: datetime) -> ObjectScore:
        days_since_access = (now - obj.last_access).total_seconds() / _SECONDS_PER_DAY
        days_since_creation = (now - obj.created_at).total_seconds() / _SECONDS_PER_DAY
        access_count = float(obj.access_count)
        features = {
            "days_since_access": days_since_access,
            "access_count": access_count,
            "size_mb": obj.size / _BYTES_PER_MB,
            "days_since_creation": days_since_creation,
            "access_frequency": (
                access_count / days_since_creation if days_since_creation > 0 else access_count
            ),
        }
        score = _composite_score(features)
        prediction, confidence = self._predict_tier(features)
        return ObjectScore(
            object_id=obj.id,
            score=score,
            prediction=prediction,
            confidence=confidence,
            features=features,
        )

    def _predict_tier(self, features: dict[str, float]) -> tuple[str, float]:
        days = features["days_since_access"]
        count = features["access_count"]
        rules = self.rules

        if days <= rules.hot_tier_days and count >= rules.access_threshold:
            return "hot", 0.9
        if days <= rules.warm_tier_days:
            return "warm", 0.7 + 0.2 * (1.0 - days / rules.warm_tier_days)
        return "cold", 0.8 + 0.2 * min(1.0, days / 90.0)


def _composite_score(features: dict[str, float]) -> float:
    recency = max(0.0, 1.0 - features["days_since_access"] / 30.0)
    frequency = min(1.0, features["access_frequency"] * 10)
    size = 1.0 / (1.0 + features["size_mb"] / 100)
    age = max(0.0, 1.0 - features["days_since_creation"] / 365.0)
    return (
        _WEIGHTS["recency"] * recency
        + _WEIGHTS["frequency"] * frequency
        + _WEIGHTS["size"] * size
        + _WEIGHTS["age"] * age
    )


def _reason(features: dict[str, float], prediction: str) -> str:
    days = features["days_since_access"]
    if prediction == "hot":
        return (
            f"Recently accessed ({days:.1f} days ago) with high frequency "
            f"({features['access_count']:.1f} accesses)"
        )
    if prediction == "warm":
        return f"Moderate access pattern ({days:.1f} days since last access)"
    if prediction == "cold":
        return f"Infrequently accessed ({days:.1f} days ago) - suitable for archival"
    return "Unknown classification reason"


def _savings(obj: StorageObject, recommended_tier: str) -> float:
    current_cost = _TIER_COSTS.get(obj.storage_tier, 0.0)
    new_cost = _TIER_COSTS.get(recommended_tier, 0.0)
    return (current_cost - new_cost) * (obj.size / _BYTES_PER_GB)