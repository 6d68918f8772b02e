"""
Nutrition reference: curated local dictionary first, OpenFoodFacts second.

The reference has two jobs in the pipeline:
- seed the quantification prompt with authoritative carbs/100g values
- correct model estimates whose carbs/100g strays too far from the reference
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import httpx

from glucimiam.config import OPENFOODFACTS_TIMEOUT_S, OPENFOODFACTS_URL
from glucimiam.errors import ReferenceLookupFailure
from glucimiam.food_schema import CURATED_FOODS
from glucimiam.matching import keywords, normalize_name
from glucimiam.models import (
    PROVENANCE_CURATED,
    PROVENANCE_MANUAL,
    PROVENANCE_PUBLIC,
    FoodEstimate,
    NutritionRecord,
    compute_total_carbs,
)

logger = logging.getLogger(__name__)

SOURCE_LOCAL = "local"
SOURCE_PUBLIC = "public"

MAX_LOCAL_RESULTS = 5


def _tokens_overlap(query_kw: str, entry_kw: str) -> bool:
    # prefix in either direction so "pommes" meets "pomme"
    return query_kw.startswith(entry_kw) or entry_kw.startswith(query_kw)


# Preparation words that do not identify a food
_DESCRIPTORS = {"cuit", "cuite", "cuits", "cuites", "nature", "frais", "fraiche"}


def _entry_covered(query_kws: List[str], entry_name: str) -> bool:
    entry_kws = [e for e in keywords(entry_name) if e not in _DESCRIPTORS]
    return bool(entry_kws) and all(
        any(_tokens_overlap(q, e) for q in query_kws) for e in entry_kws
    )


class NutritionDictionary:
    """Local carbs/100g dictionary. Append-on-miss, edited only on user request."""

    def __init__(self, records: Optional[List[NutritionRecord]] = None):
        self._records: List[NutritionRecord] = []
        for record in records or []:
            self.add(record)

    @classmethod
    def curated(cls) -> "NutritionDictionary":
        return cls(
            [
                NutritionRecord(
                    name=name,
                    carbs_per_100g=values["carbs"],
                    provenance=PROVENANCE_CURATED,
                    category=values.get("category"),
                )
                for name, values in CURATED_FOODS.items()
            ]
        )

    def __len__(self) -> int:
        return len(self._records)

    def get(self, name: str) -> Optional[NutritionRecord]:
        key = normalize_name(name)
        for record in self._records:
            if normalize_name(record.name) == key:
                return record
        return None

    def add(self, record: NutritionRecord) -> bool:
        """Insert unless a record with the same normalized name exists."""
        if not normalize_name(record.name) or self.get(record.name) is not None:
            return False
        self._records.append(record)
        return True

    def update(self, name: str, carbs_per_100g: float, category: Optional[str] = None) -> NutritionRecord:
        """Explicit user edit; the record becomes a manual one."""
        record = self.get(name)
        if record is None:
            record = NutritionRecord(name=name.strip(), carbs_per_100g=carbs_per_100g)
            self._records.append(record)
        record.carbs_per_100g = float(carbs_per_100g)
        record.provenance = PROVENANCE_MANUAL
        if category is not None:
            record.category = category
        return record

    def search(self, query: str, limit: int = MAX_LOCAL_RESULTS) -> List[Tuple[NutritionRecord, int]]:
        """
        Rank records by number of query keywords they share.

        Ties go to the record matching the query's first keyword (the head
        noun in French dish names), then to the record with the larger share
        of its own tokens matched, then to the shorter name.
        """
        query_norm = normalize_name(query)
        query_kws = keywords(query)
        if not query_norm:
            return []

        scored = []
        for record in self._records:
            name_norm = normalize_name(record.name)
            if name_norm == query_norm:
                scored.append(((-1_000, 0, 0.0, 0), record, len(query_kws) or 1))
                continue
            entry_kws = keywords(record.name)
            if not query_kws or not entry_kws:
                if query_norm in name_norm.split():
                    scored.append(((-1, 0, 0.0, len(name_norm)), record, 1))
                continue
            hits = [q for q in query_kws if any(_tokens_overlap(q, e) for e in entry_kws)]
            if not hits:
                continue
            head = 1 if hits[0] == query_kws[0] else 0
            covered = sum(1 for e in entry_kws if any(_tokens_overlap(q, e) for q in query_kws))
            key = (-len(hits), -head, -covered / len(entry_kws), len(name_norm))
            scored.append((key, record, len(hits)))

        scored.sort(key=lambda item: item[0])
        return [(record, score) for _, record, score in scored[:limit]]

    def stats(self) -> Dict[str, object]:
        by_source: Dict[str, int] = {}
        for record in self._records:
            by_source[record.provenance] = by_source.get(record.provenance, 0) + 1
        return {"total": len(self._records), "bySource": by_source}


class OpenFoodFactsClient:
    """Public search on world.openfoodfacts.org, best product with carbs data."""

    def __init__(self, url: str = OPENFOODFACTS_URL, timeout_s: float = OPENFOODFACTS_TIMEOUT_S):
        self.url = url
        self.timeout_s = timeout_s

    def search(self, query: str) -> Optional[NutritionRecord]:
        params = {
            "search_terms": query,
            "search_simple": 1,
            "action": "process",
            "json": 1,
            "page_size": 5,
        }
        try:
            resp = httpx.get(self.url, params=params, timeout=self.timeout_s)
        except httpx.HTTPError as e:
            raise ReferenceLookupFailure(f"OpenFoodFacts request failed: {e}") from e
        if resp.status_code != 200:
            raise ReferenceLookupFailure(f"OpenFoodFacts returned {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise ReferenceLookupFailure(f"OpenFoodFacts returned invalid JSON: {e}") from e

        for product in data.get("products") or []:
            carbs = (product.get("nutriments") or {}).get("carbohydrates_100g")
            try:
                carbs = float(carbs)
            except (TypeError, ValueError):
                continue
            return NutritionRecord(
                name=(product.get("product_name") or query).strip(),
                carbs_per_100g=round(carbs, 2),
                provenance=PROVENANCE_PUBLIC,
                category=(product.get("categories_tags") or [None])[0],
            )
        return None


@dataclass(frozen=True)
class ReferenceMatch:
    record: NutritionRecord
    source: str

    @property
    def carbs_per_100g(self) -> float:
        return self.record.carbs_per_100g


class NutritionReference:
    def __init__(
        self,
        dictionary: NutritionDictionary,
        public_client: Optional[OpenFoodFactsClient] = None,
    ):
        self.dictionary = dictionary
        self.public_client = public_client

    def search_local(self, query: str) -> List[NutritionRecord]:
        return [record for record, _ in self.dictionary.search(query)]

    def search_public(self, query: str) -> Optional[NutritionRecord]:
        """OpenFoodFacts lookup; hits are persisted into the local dictionary."""
        if self.public_client is None:
            return None
        record = self.public_client.search(query)
        if record is not None:
            self.dictionary.add(record)
            logger.info(
                "OpenFoodFacts hit for %r: %s (%.1fg/100g)", query, record.name, record.carbs_per_100g
            )
        return record

    def lookup(self, food_name: str) -> Optional[ReferenceMatch]:
        """
        Reference carbs/100g for a food name, or None when unknown.

        The best local record is used when it accounts for every query
        keyword, or when the query accounts for every one of its own
        keywords ("poulet" for "poulet rôti"). Otherwise the public source is
        asked. Public lookup failures are logged and treated as unknown.
        """
        query_kws = keywords(food_name)
        ranked = self.dictionary.search(food_name, limit=1)
        if ranked:
            record, score = ranked[0]
            if score >= len(query_kws) or _entry_covered(query_kws, record.name):
                return ReferenceMatch(record, SOURCE_LOCAL)

        try:
            record = self.search_public(food_name)
        except ReferenceLookupFailure as e:
            logger.warning("Public nutrition lookup failed for %r: %s", food_name, e)
            return None
        return ReferenceMatch(record, SOURCE_PUBLIC) if record is not None else None


def apply_reference(
    estimate: FoodEstimate, match: ReferenceMatch, tolerance: float
) -> FoodEstimate:
    """
    Replace carbs/100g (and total) when the model strays past the tolerance.

    Name and confidence are never touched.
    """
    reference = match.carbs_per_100g
    if abs(estimate.carbs_per_100g - reference) <= tolerance:
        return estimate
    label = "base locale" if match.source == SOURCE_LOCAL else "OpenFoodFacts"
    corrected = estimate.with_rationale_note(
        f"[Corrigé via {label} ({match.record.name}): "
        f"{estimate.carbs_per_100g:g} -> {reference:g}g/100g]",
        carbs_per_100g=reference,
        total_carbs_g=compute_total_carbs(estimate.weight_g, reference),
    )
    logger.info(
        "Reference correction for %s: %.1f -> %.1fg/100g (%s)",
        estimate.name,
        estimate.carbs_per_100g,
        reference,
        match.source,
    )
    return corrected
