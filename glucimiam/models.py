"""Records exchanged between the pipeline stages and the stores."""

import re
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DEFAULT_CONFIDENCE = 0.5

PROVENANCE_CURATED = "curated"
PROVENANCE_PUBLIC = "public-lookup"
PROVENANCE_MANUAL = "manual"

_NUMBER_RE = re.compile(r"-?\d+(?:[.,]\d+)?")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_number(value: Any, default: float = 0.0) -> float:
    """Coerce model output ("150", "150 g", "12,5", None) to a float."""
    if value is None or isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        return float(value)
    match = _NUMBER_RE.search(str(value))
    if not match:
        return default
    return float(match.group(0).replace(",", "."))


def compute_total_carbs(weight_g: float, carbs_per_100g: float) -> float:
    return round(weight_g * carbs_per_100g / 100, 1)


@dataclass
class FoodEstimate:
    name: str
    weight_g: float = 0.0
    carbs_per_100g: float = 0.0
    total_carbs_g: float = 0.0
    confidence: float = DEFAULT_CONFIDENCE
    rationale: str = ""

    def __post_init__(self):
        self.name = (self.name or "").strip()
        self.weight_g = max(0.0, float(self.weight_g))
        self.carbs_per_100g = max(0.0, float(self.carbs_per_100g))
        self.total_carbs_g = max(0.0, float(self.total_carbs_g))
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "FoodEstimate":
        """
        Build an estimate from the model's JSON keys.

        The total is recomputed whenever weight and carbs/100g are both known;
        the model's own total is only used when one of them is missing.
        """
        weight = to_number(data.get("estimatedWeightG"))
        per_100g = to_number(data.get("carbsPer100g"))
        total = to_number(data.get("totalCarbsG"))
        if (weight > 0 and per_100g > 0) or total <= 0:
            total = compute_total_carbs(weight, per_100g)
        return cls(
            name=str(data.get("foodName") or ""),
            weight_g=weight,
            carbs_per_100g=per_100g,
            total_carbs_g=total,
            confidence=to_number(data.get("confidence"), DEFAULT_CONFIDENCE),
            rationale=str(data.get("reasoning") or ""),
        )

    def with_rationale_note(self, note: str, **changes: Any) -> "FoodEstimate":
        rationale = f"{self.rationale} {note}".strip() if self.rationale else note
        return replace(self, rationale=rationale, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "foodName": self.name,
            "estimatedWeightG": self.weight_g,
            "carbsPer100g": self.carbs_per_100g,
            "totalCarbsG": self.total_carbs_g,
            "confidence": self.confidence,
            "reasoning": self.rationale,
        }


@dataclass
class NutritionRecord:
    name: str
    carbs_per_100g: float
    provenance: str = PROVENANCE_CURATED
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class CorrectionSample:
    user_id: str
    food_name: str
    weight_ratio: float
    carbs_ratio: float
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class CacheEntry:
    user_id: str
    fingerprint: str
    estimates: List[FoodEstimate]
    captured_at: datetime = field(default_factory=utcnow)
    context: Optional[str] = None
    distance: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "fingerprint": self.fingerprint,
            "estimates": [e.to_dict() for e in self.estimates],
            "capturedAt": self.captured_at.isoformat(),
            "context": self.context,
            "distance": self.distance,
        }
