import logging
from functools import lru_cache
from typing import Optional

from openai import OpenAI

from glucimiam.errors import ConfigurationError

logger = logging.getLogger(__name__)


@lru_cache(maxsize=8)
def get_openai_client(api_key: str, base_url: Optional[str] = None) -> OpenAI:
    """One client per (key, endpoint); SDK retries are off, callers decide on retry."""
    if not api_key:
        raise ConfigurationError("API key is not set for OpenAI-compatible provider")
    logger.info("Initializing OpenAI client (base_url=%s)", base_url or "default")
    return OpenAI(api_key=api_key, base_url=base_url, max_retries=0)
