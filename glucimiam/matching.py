"""Food name canonicalization, matching and deduplication."""

import re
import unicodedata
from typing import Iterable, List, Optional

from glucimiam.models import FoodEstimate

_NON_WORD_RE = re.compile(r"[^a-z0-9]+")


def normalize_name(name: str) -> str:
    """Lowercase, strip diacritics, drop punctuation, collapse whitespace."""
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name.lower())
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD_RE.sub(" ", ascii_only).strip()


def names_match(a: str, b: str) -> bool:
    na, nb = normalize_name(a), normalize_name(b)
    if not na or not nb:
        return False
    return na == nb or na in nb or nb in na


def keywords(name: str) -> List[str]:
    """Normalized tokens long enough to be meaningful ("de", "au" are dropped)."""
    return [token for token in normalize_name(name).split() if len(token) > 2]


def find_match(name: str, candidates: Iterable[str]) -> Optional[str]:
    """Exact normalized match first, else the first equal-or-substring match."""
    candidates = list(candidates)
    key = normalize_name(name)
    for candidate in candidates:
        if key and normalize_name(candidate) == key:
            return candidate
    for candidate in candidates:
        if names_match(name, candidate):
            return candidate
    return None


def dedupe_names(names: Iterable[str]) -> List[str]:
    kept: List[str] = []
    for name in names:
        name = (name or "").strip()
        if not normalize_name(name):
            continue
        if find_match(name, kept) is None:
            kept.append(name)
    return kept


def dedupe_estimates(
    estimates: Iterable[FoodEstimate], cap: Optional[int] = None
) -> List[FoodEstimate]:
    """
    Merge same-food duplicates produced by multi-angle prompting.

    Estimates are visited by descending confidence (stable), so the
    higher-confidence entry of each matching group survives. The kept
    entries are pairwise non-matching, which makes the operation idempotent.
    """
    ordered = sorted(estimates, key=lambda e: e.confidence, reverse=True)
    kept: List[FoodEstimate] = []
    for estimate in ordered:
        if not normalize_name(estimate.name):
            continue
        if find_match(estimate.name, [k.name for k in kept]) is None:
            kept.append(estimate)
    if cap is not None and cap >= 0:
        kept = kept[:cap]
    return kept
