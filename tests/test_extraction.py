import json

import pytest

from glucimiam.errors import MalformedPayload, ModelDeclinedAnalysis
from glucimiam.extraction import (
    ExtractionStatus,
    extract_payload,
    parse_estimates,
    parse_food_names,
    salvage_records,
)

WELL_FORMED = [
    {"foods": ["riz blanc", "poulet"]},
    {"foodName": "pomme", "estimatedWeightG": 150, "carbsPer100g": 11.6, "confidence": 0.9},
    [{"foodName": "pâtes", "reasoning": "assiette \"creuse\" {pleine}"}],
    {"foods": [{"foodName": "riz", "estimatedWeightG": 120.5, "notes": [1, [2, {"x": None}]]}]},
]


@pytest.mark.parametrize("payload", WELL_FORMED)
def test_well_formed_payload_parses_like_json(payload):
    for text in (
        json.dumps(payload),
        json.dumps(payload, ensure_ascii=False, indent=2),
        "Voici l'analyse :\n```json\n%s\n```\nBon appétit !" % json.dumps(payload),
        "Résultat : %s (fin)" % json.dumps(payload),
    ):
        extraction = extract_payload(text)
        assert extraction.status is ExtractionStatus.SUCCESS
        assert extraction.payload == payload


def test_unterminated_fence_is_still_read():
    text = '```json\n{"foods": ["riz"]}\n'
    extraction = extract_payload(text)
    assert extraction.status is ExtractionStatus.SUCCESS
    assert extraction.payload == {"foods": ["riz"]}


def test_trailing_comma_is_tolerated():
    extraction = extract_payload('{"foods": ["riz", "poulet",]}')
    assert extraction.ok
    assert extraction.payload == {"foods": ["riz", "poulet"]}


def test_truncated_payload_is_closed():
    extraction = extract_payload('{"foods":[{"foodName":"pomme","estimatedWeightG":150')
    assert extraction.status is ExtractionStatus.TRUNCATED
    assert extraction.payload == {"foods": [{"foodName": "pomme", "estimatedWeightG": 150}]}


def test_truncated_inside_string_keeps_partial_name():
    extraction = extract_payload('{"foodName":"pom')
    assert extraction.status is ExtractionStatus.TRUNCATED
    assert extraction.payload == {"foodName": "pom"}


def test_no_brace_is_unrecoverable():
    assert extract_payload("Je ne vois pas de nourriture.").status is ExtractionStatus.UNRECOVERABLE
    assert extract_payload("").status is ExtractionStatus.UNRECOVERABLE


def test_truncated_estimate_defaults_missing_fields():
    estimates = parse_estimates('{"foods":[{"foodName":"pomme","estimatedWeightG":150')
    assert len(estimates) == 1
    estimate = estimates[0]
    assert estimate.name == "pomme"
    assert estimate.weight_g == 150
    assert estimate.carbs_per_100g == 0
    assert estimate.total_carbs_g == 0
    assert estimate.confidence == 0.5


def test_total_derived_when_missing():
    estimates = parse_estimates(
        '{"foods": [{"foodName": "riz", "estimatedWeightG": 150, "carbsPer100g": 28}]}'
    )
    assert estimates[0].total_carbs_g == 42.0


def test_numbers_given_as_text_are_read():
    estimates = parse_estimates(
        '{"foodName": "purée", "estimatedWeightG": "200 g", "carbsPer100g": "13,5", "confidence": "0.7"}'
    )
    assert estimates[0].weight_g == 200
    assert estimates[0].carbs_per_100g == 13.5
    assert estimates[0].total_carbs_g == 27.0
    assert estimates[0].confidence == 0.7


def test_items_and_name_keys_accepted():
    estimates = parse_estimates('{"items": [{"name": "banane", "estimatedWeightG": 100}]}')
    assert [e.name for e in estimates] == ["banane"]


def test_regex_salvage_on_broken_json():
    text = (
        'foods: {"foodName": "riz", "estimatedWeightG": 150, "carbsPer100g": 28 '
        '{"foodName": "poulet", "estimatedWeightG": "120", confidence: ??? '
    )
    records = salvage_records(text)
    assert [r["foodName"] for r in records] == ["riz", "poulet"]
    assert records[0]["estimatedWeightG"] == 150
    assert records[1]["confidence"] == 0.5


def test_malformed_payload_carries_diagnostic():
    raw = "x" * 500
    with pytest.raises(MalformedPayload) as exc:
        parse_estimates(raw)
    assert exc.value.diagnostic == "x" * 200


def test_declined_payload_raises_with_reason():
    with pytest.raises(ModelDeclinedAnalysis) as exc:
        parse_estimates('{"error": "Photo trop floue", "needsRetake": true}')
    assert exc.value.reason == "Photo trop floue"
    assert exc.value.needs_retake is True

    with pytest.raises(ModelDeclinedAnalysis):
        parse_food_names('```json\n{"error": "Pas de nourriture visible"}\n```')


def test_food_names_from_strings_objects_and_lists():
    assert parse_food_names('{"foods": ["riz", " poulet "]}') == ["riz", "poulet"]
    assert parse_food_names('{"foods": [{"name": "riz"}, {"foodName": "sauce"}]}') == ["riz", "sauce"]
    assert parse_food_names('["pomme", "banane"]') == ["pomme", "banane"]


def test_food_names_salvaged_or_empty():
    assert parse_food_names('{"foods": ["riz", "poulet", "sal') == ["riz", "poulet", "sal"]
    assert parse_food_names("Aucune idée, désolé.") == []


@pytest.mark.parametrize("indent", [None, 2])
def test_every_truncation_point_yields_related_data_or_fails(indent):
    payload = {
        "foods": [
            {"foodName": "pomme", "estimatedWeightG": 150, "carbsPer100g": 11.6,
             "totalCarbsG": 17.4, "confidence": 0.8, "reasoning": "une pomme moyenne"},
            {"foodName": "riz blanc", "estimatedWeightG": 180, "carbsPer100g": 28,
             "totalCarbsG": 50.4, "confidence": 0.7, "reasoning": "un bol"},
        ]
    }
    text = json.dumps(payload, indent=indent)
    full_names = [f["foodName"] for f in payload["foods"]]
    for cut in range(1, len(text) + 1):
        try:
            estimates = parse_estimates(text[:cut])
        except MalformedPayload:
            continue
        for estimate in estimates:
            assert estimate.name
            assert any(full.startswith(estimate.name) for full in full_names)
            assert 0 <= estimate.confidence <= 1
    assert [e.name for e in parse_estimates(text)] == full_names


def test_bracketed_aside_in_prose_does_not_hide_payload():
    text = 'Aliments vus sur les photos [1, 2] :\n{"foods": ["riz", "poulet"]}'
    assert extract_payload(text).payload == {"foods": ["riz", "poulet"]}
    assert parse_food_names(text) == ["riz", "poulet"]


def test_bare_list_of_objects_after_prose_is_kept_whole():
    text = 'Voici (2 aliments) : [{"foodName": "riz"}, {"foodName": "poulet"}]'
    assert [e.name for e in parse_estimates(text)] == ["riz", "poulet"]
