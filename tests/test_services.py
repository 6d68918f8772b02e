import pytest

from glucimiam.errors import MalformedPayload
from glucimiam.services import (
    ModelClient,
    estimate_single_food,
    identify_foods,
    quantify_foods,
)

from conftest import FakeProvider


def _client(provider):
    return ModelClient(provider="gemini", api_key="k", model="m", call=provider)


@pytest.mark.asyncio
async def test_identify_collapses_repeated_names():
    provider = FakeProvider(identify='{"foods": ["riz", "riz"]}')
    assert await identify_foods(_client(provider), [b"img"], 70) == ["riz"]


@pytest.mark.asyncio
async def test_model_client_forwards_settings():
    seen = []

    def recording(provider, api_key, model, images, prompt, max_tokens):
        seen.append((provider, api_key, model, images, max_tokens))
        return '{"foods": ["pomme"]}'

    client = ModelClient(provider="claude", api_key="k", model="m", max_tokens=99, call=recording)
    assert await identify_foods(client, (b"a", b"b"), 70) == ["pomme"]
    assert seen == [("claude", "k", "m", [b"a", b"b"], 99)]


@pytest.mark.asyncio
async def test_quantify_returns_estimates():
    provider = FakeProvider(
        quantify='{"foods": [{"foodName": "riz", "estimatedWeightG": 100, "carbsPer100g": 28}]}'
    )
    estimates = await quantify_foods(_client(provider), [b"img"], ["riz"], {"riz": 28.0}, 70)
    assert estimates[0].total_carbs_g == 28.0


@pytest.mark.asyncio
async def test_single_food_keeps_first_record():
    provider = FakeProvider(
        single='[{"foodName": "couscous", "estimatedWeightG": 300}, {"foodName": "merguez"}]'
    )
    estimate = await estimate_single_food(_client(provider), [b"img"], 70)
    assert estimate.name == "couscous"


@pytest.mark.asyncio
async def test_single_food_garbage_is_malformed():
    provider = FakeProvider(single="rien à signaler")
    with pytest.raises(MalformedPayload):
        await estimate_single_food(_client(provider), [b"img"], 70)
