import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence

from glucimiam.cache import SimilarityCache
from glucimiam.config import AnalysisSettings
from glucimiam.corrections import CorrectionLedger
from glucimiam.image_preprocess import ImageInput, decode_image_input, optimize_image
from glucimiam.matching import dedupe_estimates, find_match
from glucimiam.models import CacheEntry, CorrectionSample, FoodEstimate
from glucimiam.nutrition import (
    SOURCE_LOCAL,
    NutritionDictionary,
    NutritionReference,
    OpenFoodFactsClient,
    ReferenceMatch,
    apply_reference,
)
from glucimiam.perceptual_hash import compute_fingerprint
from glucimiam.providers import call_provider, resolve_provider
from glucimiam.services import (
    ModelClient,
    ProviderCall,
    estimate_single_food,
    identify_foods,
    quantify_foods,
)
from glucimiam.storage import InMemoryCacheStore, InMemoryCorrectionStore

logger = logging.getLogger(__name__)


def _ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


@dataclass
class AnalysisResult:
    estimates: List[FoodEstimate]
    identified_names: List[str] = field(default_factory=list)
    cache_hit: Optional[CacheEntry] = None
    fallback_used: bool = False
    timings: Dict[str, Any] = field(default_factory=dict)

    @property
    def total_carbs_g(self) -> float:
        return round(sum(e.total_carbs_g for e in self.estimates), 1)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "foods": [e.to_dict() for e in self.estimates],
            "totalCarbsG": self.total_carbs_g,
            "identifiedNames": self.identified_names,
            "cacheHit": self.cache_hit.to_dict() if self.cache_hit else None,
            "fallbackUsed": self.fallback_used,
            "processing_times": self.timings,
        }


class AnalysisPipeline:
    """
    Two-pass meal analysis:

    Photos (+ finger length, context, user)
      ↓
    cache lookup (per user, perceptual fingerprint) ── hit → done
      ↓
    optimize images (bounded size, contrast stretch)
      ↓
    pass 1: identify distinct foods ── nothing → single-food fallback → done
      ↓
    nutrition reference lookup (local dictionary, then OpenFoodFacts)
      ↓
    pass 2: quantify each identified food
      ↓
    deduplicate (cap = number of identified foods)
      ↓
    reference correction
      ↓
    personalization (user correction history)
      ↓
    cache write → done
    """

    def __init__(
        self,
        settings: AnalysisSettings,
        reference: Optional[NutritionReference] = None,
        ledger: Optional[CorrectionLedger] = None,
        cache: Optional[SimilarityCache] = None,
        provider_call: ProviderCall = call_provider,
        clock: Callable[[], datetime] = datetime.now,
    ):
        resolve_provider(settings.provider)
        self.settings = settings
        self.reference = reference or NutritionReference(
            NutritionDictionary.curated(),
            OpenFoodFactsClient() if settings.public_lookup else None,
        )
        self.ledger = ledger or CorrectionLedger(
            InMemoryCorrectionStore(),
            window=settings.correction_window,
            tolerance=settings.personalization_tolerance,
        )
        if cache is None and settings.cache_enabled:
            cache = SimilarityCache(
                InMemoryCacheStore(settings.cache_max_entries_per_user),
                settings.cache_hamming_threshold,
            )
        self.cache = cache
        self.provider_call = provider_call
        self.clock = clock

    def _model_client(self) -> ModelClient:
        return ModelClient(
            provider=self.settings.provider,
            api_key=self.settings.api_key,
            model=self.settings.model,
            max_tokens=self.settings.max_tokens,
            timeout_s=self.settings.timeout_s,
            call=self.provider_call,
        )

    # -----------------------------------
    # Operations exposed to the application
    # -----------------------------------

    async def analyze(
        self,
        images: Sequence[ImageInput],
        finger_length_mm: float,
        user_context: Optional[str] = None,
        user_id: Optional[str] = None,
        use_cache: bool = True,
    ) -> AnalysisResult:
        if not images:
            raise ValueError("At least one image is required")
        if finger_length_mm <= 0:
            raise ValueError("finger_length_mm must be positive")

        t0 = time.perf_counter()
        timings: Dict[str, Any] = {"image_count": len(images)}
        raw_images = [decode_image_input(img) for img in images]
        logger.info(
            "[PIPELINE] Starting analysis: images=%s, finger=%smm, user=%s, context=%r",
            len(raw_images),
            finger_length_mm,
            user_id,
            user_context,
        )

        # 0) Similarity cache short-circuit
        fingerprint = None
        if user_id and self.cache is not None:
            t = time.perf_counter()
            fingerprint = self._fingerprint(raw_images[0])
            hit = None
            if use_cache and fingerprint:
                hit = self.cache.find(fingerprint, user_id)
            timings["cache_ms"] = _ms(t)
            if hit is not None:
                timings["total_ms"] = _ms(t0)
                logger.info(
                    "[PIPELINE] Cache hit (distance=%s), skipping provider calls, total=%sms",
                    hit.distance,
                    timings["total_ms"],
                )
                return AnalysisResult(
                    estimates=hit.estimates, cache_hit=hit, timings=timings
                )

        # 1) Optimize images
        t = time.perf_counter()
        optimized = await asyncio.to_thread(self._optimize_all, raw_images)
        timings["optimize_ms"] = _ms(t)
        logger.info("[PIPELINE] Step 1: Images optimized in %sms", timings["optimize_ms"])

        client = self._model_client()
        now = self.clock()

        # 2) Pass 1: identify
        t = time.perf_counter()
        names = await identify_foods(client, optimized, finger_length_mm, user_context, now)
        timings["identify_ms"] = _ms(t)
        logger.info(
            "[PIPELINE] Step 2: Identified %s foods in %sms: %s",
            len(names),
            timings["identify_ms"],
            names,
        )

        if not names:
            # 3) Single-food fallback (terminal)
            t = time.perf_counter()
            estimate = await estimate_single_food(
                client, optimized, finger_length_mm, user_context, now
            )
            timings["fallback_ms"] = _ms(t)
            estimates = [estimate]
            self._store_in_cache(user_id, fingerprint, estimates, user_context)
            timings["total_ms"] = _ms(t0)
            logger.warning(
                "[PIPELINE] Identification empty, single-food fallback used: %s (total=%sms)",
                estimate.name,
                timings["total_ms"],
            )
            return AnalysisResult(estimates=estimates, fallback_used=True, timings=timings)

        # 4) Nutrition reference lookup
        t = time.perf_counter()
        references = await asyncio.to_thread(self._lookup_references, names)
        timings["reference_ms"] = _ms(t)
        logger.info(
            "[PIPELINE] Step 3: Reference values for %s/%s foods in %sms",
            sum(1 for match in references.values() if match is not None),
            len(names),
            timings["reference_ms"],
        )

        # 5) Pass 2: quantify
        t = time.perf_counter()
        estimates = await quantify_foods(
            client,
            optimized,
            names,
            {name: m.carbs_per_100g for name, m in references.items() if m is not None},
            finger_length_mm,
            user_context,
            now,
        )
        timings["quantify_ms"] = _ms(t)
        logger.info(
            "[PIPELINE] Step 4: Quantified %s entries in %sms",
            len(estimates),
            timings["quantify_ms"],
        )

        # 6) Deduplicate
        deduped = dedupe_estimates(estimates, cap=len(names))
        if len(deduped) != len(estimates):
            logger.info(
                "[PIPELINE] Step 5: Deduplicated %s entries to %s",
                len(estimates),
                len(deduped),
            )

        # 7) Reference correction
        t = time.perf_counter()
        corrected = await asyncio.to_thread(self._correct_all, deduped, references)
        timings["correction_ms"] = _ms(t)

        # 8) Personalization
        if user_id:
            corrected = [self._personalize(user_id, e) for e in corrected]

        self._store_in_cache(user_id, fingerprint, corrected, user_context)

        timings["total_ms"] = _ms(t0)
        logger.info("[PIPELINE] analysis timings_ms=%s", timings)
        logger.info(
            "[PIPELINE] analysis completed: %s foods, %.1fg carbs, total time: %sms",
            len(corrected),
            sum(e.total_carbs_g for e in corrected),
            timings["total_ms"],
        )
        return AnalysisResult(estimates=corrected, identified_names=names, timings=timings)

    def find_cached_analysis(self, image: ImageInput, user_id: str) -> Optional[CacheEntry]:
        if self.cache is None:
            return None
        return self.cache.find_for_image(decode_image_input(image), user_id)

    def record_correction(
        self, user_id: str, food_name: str, weight_ratio: float, carbs_ratio: float
    ) -> CorrectionSample:
        return self.ledger.record_correction(user_id, food_name, weight_ratio, carbs_ratio)

    # -----------------------------------
    # Stage helpers
    # -----------------------------------

    def _fingerprint(self, image_bytes: bytes) -> Optional[str]:
        try:
            return compute_fingerprint(image_bytes)
        except ValueError as e:
            logger.warning("[PIPELINE] Cannot fingerprint first image, cache skipped: %s", e)
            return None

    def _optimize_all(self, raw_images: List[bytes]) -> List[bytes]:
        return [
            optimize_image(
                img,
                max_side=self.settings.image_max_side_px,
                low_pct=self.settings.contrast_low_percentile,
                high_pct=self.settings.contrast_high_percentile,
            )[0]
            for img in raw_images
        ]

    def _lookup_reference(self, name: str) -> Optional[ReferenceMatch]:
        try:
            return self.reference.lookup(name)
        except Exception as e:
            logger.warning("[PIPELINE] Reference lookup failed for %r: %s", name, e)
            return None

    def _lookup_references(self, names: List[str]) -> Dict[str, Optional[ReferenceMatch]]:
        """One lookup per identified name; misses are kept as None."""
        return {name: self._lookup_reference(name) for name in names}

    def _correct_all(
        self, estimates: List[FoodEstimate], references: Dict[str, Optional[ReferenceMatch]]
    ) -> List[FoodEstimate]:
        corrected = []
        for estimate in estimates:
            key = find_match(estimate.name, references.keys())
            # names outside pass 1 were never looked up
            match = references[key] if key is not None else self._lookup_reference(estimate.name)
            if match is None:
                corrected.append(estimate)
                continue
            tolerance = (
                self.settings.local_carbs_tolerance
                if match.source == SOURCE_LOCAL
                else self.settings.public_carbs_tolerance
            )
            corrected.append(apply_reference(estimate, match, tolerance))
        return corrected

    def _personalize(self, user_id: str, estimate: FoodEstimate) -> FoodEstimate:
        try:
            return self.ledger.personalize(user_id, estimate)
        except Exception as e:
            logger.warning("[PIPELINE] Personalization skipped for %s: %s", estimate.name, e)
            return estimate

    def _store_in_cache(
        self,
        user_id: Optional[str],
        fingerprint: Optional[str],
        estimates: List[FoodEstimate],
        context: Optional[str],
    ) -> None:
        if not user_id or self.cache is None or not fingerprint:
            return
        self.cache.store_analysis(user_id, fingerprint, estimates, context)
