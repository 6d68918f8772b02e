"""Per-user cache of past analyses, looked up by perceptual fingerprint."""

import logging
from typing import List, Optional

from glucimiam.models import CacheEntry, FoodEstimate
from glucimiam.perceptual_hash import FINGERPRINT_BITS, compute_fingerprint, hamming_distance
from glucimiam.storage import CacheStore

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 20


class SimilarityCache:
    """
    "Likely same meal" lookup.

    Purely an optimization: every failure is logged and reported as a miss
    (lookup) or ignored (write).
    """

    def __init__(self, store: CacheStore, threshold: int = DEFAULT_THRESHOLD):
        if not 0 < threshold <= FINGERPRINT_BITS:
            raise ValueError(f"threshold must be in 1..{FINGERPRINT_BITS}, got {threshold}")
        self.store = store
        self.threshold = threshold

    def find(self, fingerprint: str, user_id: str) -> Optional[CacheEntry]:
        """Closest stored entry strictly below the threshold, or None."""
        try:
            entries = self.store.list_for_user(user_id)
        except Exception as e:
            logger.warning("[CACHE] Lookup failed for user=%s: %s", user_id, e)
            return None

        best: Optional[CacheEntry] = None
        for entry in entries:
            if len(entry.fingerprint) != len(fingerprint):
                continue
            distance = hamming_distance(fingerprint, entry.fingerprint)
            if distance < self.threshold and (best is None or distance < best.distance):
                entry.distance = distance
                best = entry

        if best is not None:
            logger.info(
                "[CACHE] Hit for user=%s at distance=%s (captured_at=%s)",
                user_id,
                best.distance,
                best.captured_at.isoformat(),
            )
        else:
            logger.info("[CACHE] Miss for user=%s among %s entries", user_id, len(entries))
        return best

    def find_for_image(self, image_bytes: bytes, user_id: str) -> Optional[CacheEntry]:
        try:
            fingerprint = compute_fingerprint(image_bytes)
        except ValueError as e:
            logger.warning("[CACHE] Cannot fingerprint image: %s", e)
            return None
        return self.find(fingerprint, user_id)

    def store_analysis(
        self,
        user_id: str,
        fingerprint: str,
        estimates: List[FoodEstimate],
        context: Optional[str] = None,
    ) -> Optional[CacheEntry]:
        entry = CacheEntry(
            user_id=user_id,
            fingerprint=fingerprint,
            estimates=list(estimates),
            context=context,
        )
        try:
            self.store.add(entry)
        except Exception as e:
            logger.warning("[CACHE] Write failed for user=%s: %s", user_id, e)
            return None
        logger.info("[CACHE] Stored %s estimates for user=%s", len(estimates), user_id)
        return entry
