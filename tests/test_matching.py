from glucimiam.matching import (
    dedupe_estimates,
    dedupe_names,
    find_match,
    keywords,
    names_match,
    normalize_name,
)
from glucimiam.models import FoodEstimate


def test_normalize_name():
    assert normalize_name("  Pâtes  Carbonara! ") == "pates carbonara"
    assert normalize_name("Crème brûlée") == "creme brulee"
    assert normalize_name("jus d'orange") == "jus d orange"
    assert normalize_name("") == ""


def test_names_match_equal_or_substring():
    assert names_match("Riz", "riz")
    assert names_match("salade", "Salade verte")
    assert names_match("Purée de pommes de terre", "purée")
    assert not names_match("riz", "poulet")
    assert not names_match("", "riz")
    assert not names_match("!!", "riz")


def test_keywords_drop_short_tokens():
    assert keywords("salade de pâtes au thon") == ["salade", "pates", "thon"]


def test_duplicate_names_collapse_to_one():
    assert dedupe_names(["riz", "riz"]) == ["riz"]
    assert dedupe_names(["Riz blanc", "riz", "", "  ", "poulet"]) == ["Riz blanc", "poulet"]


def test_dedupe_keeps_higher_confidence_and_caps():
    estimates = [
        FoodEstimate("riz", weight_g=150, confidence=0.6),
        FoodEstimate("poulet rôti", weight_g=120, confidence=0.8),
        FoodEstimate("Riz blanc", weight_g=180, confidence=0.9),
    ]
    kept = dedupe_estimates(estimates, cap=2)
    assert [e.name for e in kept] == ["Riz blanc", "poulet rôti"]
    assert kept[0].weight_g == 180


def test_dedupe_cap_truncates_distinct_entries():
    estimates = [
        FoodEstimate("riz", confidence=0.9),
        FoodEstimate("poulet", confidence=0.8),
        FoodEstimate("haricots verts", confidence=0.7),
    ]
    assert [e.name for e in dedupe_estimates(estimates, cap=2)] == ["riz", "poulet"]


def test_dedupe_is_idempotent():
    estimates = [
        FoodEstimate("salade", confidence=0.5),
        FoodEstimate("salade verte", confidence=0.5),
        FoodEstimate("tomate", confidence=0.7),
        FoodEstimate("tomates cerises", confidence=0.4),
        FoodEstimate("pain", confidence=0.9),
    ]
    once = dedupe_estimates(estimates)
    assert dedupe_estimates(once) == once
    assert dedupe_names(dedupe_names(["pain", "Pain complet", "beurre"])) == ["pain", "beurre"]


def test_dedupe_is_stable_on_equal_confidence():
    estimates = [FoodEstimate("salade", confidence=0.5), FoodEstimate("salade verte", confidence=0.5)]
    assert [e.name for e in dedupe_estimates(estimates)] == ["salade"]


def test_find_match_prefers_exact_name():
    assert find_match("riz", ["riz blanc", "Riz"]) == "Riz"
    assert find_match("riz", ["riz blanc", "poulet"]) == "riz blanc"
    assert find_match("pâtes", ["riz"]) is None
