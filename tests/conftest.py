from io import BytesIO

import numpy as np
import pytest
from PIL import Image

from glucimiam.config import AnalysisSettings


def make_image(width=64, height=48, pattern="gradient", fmt="PNG", seed=0) -> bytes:
    """Encode a synthetic meal photo."""
    if pattern == "gradient":
        row = np.linspace(40, 220, width, dtype=np.uint8)
        gray = np.tile(row, (height, 1))
    elif pattern == "checker":
        yy, xx = np.mgrid[0:height, 0:width]
        gray = (((yy // 8) + (xx // 8)) % 2 * 200 + 20).astype(np.uint8)
    elif pattern == "noise":
        gray = np.random.default_rng(seed).integers(0, 256, (height, width), dtype=np.uint8)
    else:
        gray = np.full((height, width), 128, dtype=np.uint8)
    rgb = np.stack([gray, gray // 2, 255 - gray], axis=-1)
    out = BytesIO()
    Image.fromarray(rgb).save(out, format=fmt)
    return out.getvalue()


class FakeProvider:
    """Stands in for call_provider; answers by recognizing the prompt."""

    def __init__(self, identify="", quantify="", single=""):
        self.responses = {"identify": identify, "quantify": quantify, "single": single}
        self.calls = []

    @staticmethod
    def stage_of(prompt: str) -> str:
        if "Aliments identifiés" in prompt:
            return "quantify"
        if "Analyse ce plat" in prompt:
            return "single"
        return "identify"

    def __call__(self, provider, api_key, model, images, prompt, max_tokens=2048):
        stage = self.stage_of(prompt)
        self.calls.append({"stage": stage, "prompt": prompt, "images": images})
        return self.responses[stage]

    def stages(self):
        return [c["stage"] for c in self.calls]


@pytest.fixture
def settings():
    return AnalysisSettings(provider="chatgpt", api_key="test-key", public_lookup=False)


@pytest.fixture
def meal_photo():
    return make_image(pattern="checker")
