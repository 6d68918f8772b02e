import os
from dataclasses import dataclass


def _parse_cors_origins(raw: str) -> list[str]:
    origins = [origin.strip() for origin in raw.split(",") if origin.strip()]
    return origins or ["*"]


CORS_ORIGINS = _parse_cors_origins(os.getenv("CORS_ORIGINS", "*"))
ALLOW_ALL_ORIGINS = CORS_ORIGINS == ["*"]

# -----------------------------------
# LLM provider configuration
# -----------------------------------

# LLM_PROVIDER: which vision backend answers the analysis prompts
# - "claude" | "chatgpt" | "gemini" | "perplexity"
LLM_PROVIDER = os.getenv("LLM_PROVIDER", "chatgpt").lower()

# LLM_API_KEY: credentials for the selected provider.
# OPENAI_API_KEY is still honoured so existing deployments keep working.
LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY") or ""

# LLM_MODEL: empty string selects the provider's default model
LLM_MODEL = os.getenv("LLM_MODEL", "").strip()

# LLM_TIMEOUT_S: each provider call races against this deadline, no retry
LLM_TIMEOUT_S = float(os.getenv("LLM_TIMEOUT_S", "30"))

# LLM_MAX_TOKENS: output budget per call. Low values truncate JSON payloads,
# which the extraction ladder repairs.
LLM_MAX_TOKENS = int(os.getenv("LLM_MAX_TOKENS", "2048"))

# -----------------------------------
# Image optimization
# -----------------------------------

# IMAGE_MAX_SIDE_PX: longer side of every photo before it is sent
IMAGE_MAX_SIDE_PX = int(os.getenv("IMAGE_MAX_SIDE_PX", "1024"))

# Percentile window used for the contrast stretch
CONTRAST_LOW_PERCENTILE = float(os.getenv("CONTRAST_LOW_PERCENTILE", "2"))
CONTRAST_HIGH_PERCENTILE = float(os.getenv("CONTRAST_HIGH_PERCENTILE", "98"))

# -----------------------------------
# Similarity cache / nutrition reference / personalization
# -----------------------------------

# ENABLE_ANALYSIS_CACHE: reuse analyses of near-identical photos
ENABLE_ANALYSIS_CACHE = os.getenv("ENABLE_ANALYSIS_CACHE", "true").lower() == "true"

# CACHE_HAMMING_THRESHOLD: max differing bits (out of 256) for a "same meal" hit
CACHE_HAMMING_THRESHOLD = int(os.getenv("CACHE_HAMMING_THRESHOLD", "20"))

# CACHE_MAX_ENTRIES_PER_USER: in-memory cache keeps only the newest entries
CACHE_MAX_ENTRIES_PER_USER = int(os.getenv("CACHE_MAX_ENTRIES_PER_USER", "50"))

# Carbs/100g gap that triggers a reference correction
LOCAL_CARBS_TOLERANCE = float(os.getenv("LOCAL_CARBS_TOLERANCE", "2"))
PUBLIC_CARBS_TOLERANCE = float(os.getenv("PUBLIC_CARBS_TOLERANCE", "5"))

# ENABLE_PUBLIC_LOOKUP: query OpenFoodFacts when the local dictionary misses
ENABLE_PUBLIC_LOOKUP = os.getenv("ENABLE_PUBLIC_LOOKUP", "true").lower() == "true"
OPENFOODFACTS_URL = os.getenv(
    "OPENFOODFACTS_URL", "https://world.openfoodfacts.org/cgi/search.pl"
)
OPENFOODFACTS_TIMEOUT_S = float(os.getenv("OPENFOODFACTS_TIMEOUT_S", "8"))

# PERSONALIZATION_TOLERANCE: average correction ratio must leave [1-t, 1+t]
PERSONALIZATION_TOLERANCE = float(os.getenv("PERSONALIZATION_TOLERANCE", "0.05"))

# CORRECTION_WINDOW: number of most recent samples averaged per (user, food)
CORRECTION_WINDOW = int(os.getenv("CORRECTION_WINDOW", "10"))


@dataclass(frozen=True)
class AnalysisSettings:
    """
    Configuration snapshot handed to the analysis pipeline.

    Resolved once by the caller; the pipeline never reads the environment.
    """

    provider: str
    api_key: str
    model: str = ""
    timeout_s: float = 30.0
    max_tokens: int = 2048
    image_max_side_px: int = 1024
    contrast_low_percentile: float = 2.0
    contrast_high_percentile: float = 98.0
    cache_enabled: bool = True
    cache_hamming_threshold: int = 20
    cache_max_entries_per_user: int = 50
    local_carbs_tolerance: float = 2.0
    public_carbs_tolerance: float = 5.0
    personalization_tolerance: float = 0.05
    correction_window: int = 10
    public_lookup: bool = True

    @classmethod
    def from_env(cls) -> "AnalysisSettings":
        return cls(
            provider=LLM_PROVIDER,
            api_key=LLM_API_KEY,
            model=LLM_MODEL,
            timeout_s=LLM_TIMEOUT_S,
            max_tokens=LLM_MAX_TOKENS,
            image_max_side_px=IMAGE_MAX_SIDE_PX,
            contrast_low_percentile=CONTRAST_LOW_PERCENTILE,
            contrast_high_percentile=CONTRAST_HIGH_PERCENTILE,
            cache_enabled=ENABLE_ANALYSIS_CACHE,
            cache_hamming_threshold=CACHE_HAMMING_THRESHOLD,
            cache_max_entries_per_user=CACHE_MAX_ENTRIES_PER_USER,
            local_carbs_tolerance=LOCAL_CARBS_TOLERANCE,
            public_carbs_tolerance=PUBLIC_CARBS_TOLERANCE,
            personalization_tolerance=PERSONALIZATION_TOLERANCE,
            correction_window=CORRECTION_WINDOW,
            public_lookup=ENABLE_PUBLIC_LOOKUP,
        )
