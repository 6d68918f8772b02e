"""
Per-user correction ledger and the personalization it drives.

Each time a user edits a stored estimate, the corrected/estimated ratios are
appended. New estimates for the same (user, food) are scaled by the average
of the most recent samples when that average drifts past the tolerance.
"""

import logging
from functools import reduce
from typing import Optional, Tuple

from glucimiam.matching import normalize_name
from glucimiam.models import CorrectionSample, FoodEstimate, compute_total_carbs
from glucimiam.storage import CorrectionStore

logger = logging.getLogger(__name__)

DEFAULT_WINDOW = 10
DEFAULT_TOLERANCE = 0.05


def _ratio(corrected: Optional[float], estimated: float) -> float:
    if corrected is None or estimated <= 0 or corrected == estimated:
        return 1.0
    return corrected / estimated


class CorrectionLedger:
    def __init__(
        self,
        store: CorrectionStore,
        window: int = DEFAULT_WINDOW,
        tolerance: float = DEFAULT_TOLERANCE,
    ):
        self.store = store
        self.window = window
        self.tolerance = tolerance

    def record_correction(
        self, user_id: str, food_name: str, weight_ratio: float, carbs_ratio: float
    ) -> CorrectionSample:
        key = normalize_name(food_name)
        if not key:
            raise ValueError("food_name is empty after normalization")
        if weight_ratio <= 0 or carbs_ratio <= 0:
            raise ValueError("correction ratios must be positive")
        sample = CorrectionSample(
            user_id=user_id,
            food_name=key,
            weight_ratio=float(weight_ratio),
            carbs_ratio=float(carbs_ratio),
        )
        self.store.add(sample)
        logger.info(
            "Recorded correction user=%s food=%s weight_ratio=%.3f carbs_ratio=%.3f",
            user_id,
            key,
            sample.weight_ratio,
            sample.carbs_ratio,
        )
        return sample

    def record_edit(
        self,
        user_id: str,
        original: FoodEstimate,
        corrected_weight_g: Optional[float] = None,
        corrected_carbs_g: Optional[float] = None,
    ) -> Optional[CorrectionSample]:
        """Derive ratios from a user edit; an edit that changes nothing records nothing."""
        weight_ratio = _ratio(corrected_weight_g, original.weight_g)
        carbs_ratio = _ratio(corrected_carbs_g, original.total_carbs_g)
        if weight_ratio == 1.0 and carbs_ratio == 1.0:
            return None
        return self.record_correction(user_id, original.name, weight_ratio, carbs_ratio)

    def average_ratios(self, user_id: str, food_name: str) -> Optional[Tuple[float, float]]:
        """Mean (weight, carbs) ratio over the last ``window`` samples, None without history."""
        samples = self.store.recent(user_id, normalize_name(food_name), self.window)
        if not samples:
            return None
        weight_sum, carbs_sum = reduce(
            lambda acc, s: (acc[0] + s.weight_ratio, acc[1] + s.carbs_ratio),
            samples,
            (0.0, 0.0),
        )
        return weight_sum / len(samples), carbs_sum / len(samples)

    def personalize(self, user_id: str, estimate: FoodEstimate) -> FoodEstimate:
        averages = self.average_ratios(user_id, estimate.name)
        if averages is None:
            return estimate
        weight_avg, carbs_avg = averages

        result = estimate
        if abs(weight_avg - 1.0) > self.tolerance:
            weight = round(result.weight_g * weight_avg, 1)
            result = result.with_rationale_note(
                f"[Poids ajusté ×{weight_avg:.2f} selon vos corrections]",
                weight_g=weight,
                total_carbs_g=compute_total_carbs(weight, result.carbs_per_100g),
            )
        if abs(carbs_avg - 1.0) > self.tolerance:
            result = result.with_rationale_note(
                f"[Glucides ajustés ×{carbs_avg:.2f} selon vos corrections]",
                total_carbs_g=round(result.total_carbs_g * carbs_avg, 1),
            )
        if result is not estimate:
            logger.info(
                "Personalized %s for user=%s: weight %.1f->%.1fg, carbs %.1f->%.1fg",
                estimate.name,
                user_id,
                estimate.weight_g,
                result.weight_g,
                estimate.total_carbs_g,
                result.total_carbs_g,
            )
        return result
