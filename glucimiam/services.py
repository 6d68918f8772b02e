"""Model passes of the analysis: identify, quantify, single-food fallback."""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence

from glucimiam.errors import NetworkTimeout
from glucimiam.extraction import parse_estimates, parse_food_names
from glucimiam.matching import dedupe_names
from glucimiam.models import FoodEstimate
from glucimiam.prompts import (
    build_identify_prompt,
    build_quantify_prompt,
    build_single_food_prompt,
)
from glucimiam.providers import call_provider

logger = logging.getLogger(__name__)

ProviderCall = Callable[..., str]


@dataclass
class ModelClient:
    """Provider settings bound to one analysis, plus the deadline for each call."""

    provider: str
    api_key: str
    model: str = ""
    max_tokens: int = 2048
    timeout_s: float = 30.0
    call: ProviderCall = call_provider

    async def ask(self, stage: str, images: Sequence[bytes], prompt: str) -> str:
        """
        Run one provider call in a worker thread, racing it against timeout_s.

        On timeout only the wait is abandoned: the thread may still finish and
        its answer is dropped. Never retried here.
        """
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(
                    self.call,
                    self.provider,
                    self.api_key,
                    self.model,
                    list(images),
                    prompt,
                    self.max_tokens,
                ),
                timeout=self.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.error("[%s] Provider call timed out after %ss", stage, self.timeout_s)
            raise NetworkTimeout(stage, self.timeout_s) from None


async def identify_foods(
    client: ModelClient,
    images: Sequence[bytes],
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[str]:
    """Pass 1: distinct food names across every angle; [] when nothing usable."""
    prompt = build_identify_prompt(len(images), finger_length_mm, user_context, now)
    raw = await client.ask("identify", images, prompt)
    logger.info("Identify raw response: %s", raw)
    names = parse_food_names(raw)
    unique = dedupe_names(names)
    if len(unique) != len(names):
        logger.info("Identify: collapsed %s names to %s: %s", len(names), len(unique), unique)
    return unique


async def quantify_foods(
    client: ModelClient,
    images: Sequence[bytes],
    food_names: List[str],
    references: Dict[str, float],
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> List[FoodEstimate]:
    """Pass 2: one weight/carbs estimate per identified name."""
    prompt = build_quantify_prompt(
        food_names, references, len(images), finger_length_mm, user_context, now
    )
    raw = await client.ask("quantify", images, prompt)
    logger.info("Quantify raw response: %s", raw)
    estimates = parse_estimates(raw)
    logger.info("Quantify parsed %s estimates", len(estimates))
    return estimates


async def estimate_single_food(
    client: ModelClient,
    images: Sequence[bytes],
    finger_length_mm: float,
    user_context: Optional[str] = None,
    now: Optional[datetime] = None,
) -> FoodEstimate:
    """Fallback when identification yields nothing: one estimate for the whole plate."""
    prompt = build_single_food_prompt(len(images), finger_length_mm, user_context, now)
    raw = await client.ask("single_food", images, prompt)
    logger.info("Single-food raw response: %s", raw)
    return parse_estimates(raw)[0]
