# codemind/core/token_counter.py
from functools import lru_cache
from typing import Any, Iterable, Optional

import tiktoken
from loguru import logger

from .models import PromptItem

DEFAULT_ENCODING = "cl100k_base"
FALLBACK_ENCODING = "gpt2"


@lru_cache(maxsize=4)
def _get_cached_encoder(encoding_name: str) -> Optional[Any]:
    """Loads and caches tiktoken encoders, falling back to gpt2 once."""
    try:
        return tiktoken.get_encoding(encoding_name)
    except Exception as e:  # encoder files may be downloaded on first use
        logger.warning(f"Failed to get tiktoken encoder '{encoding_name}': {e}. Trying fallback '{FALLBACK_ENCODING}'.")
        if encoding_name == FALLBACK_ENCODING:
            logger.error(f"Fallback encoder '{FALLBACK_ENCODING}' also failed. No encoder available.")
            return None
        return _get_cached_encoder(FALLBACK_ENCODING)


def count_tokens(text: str, encoding_name: str = DEFAULT_ENCODING) -> int:
    """
    Counts tokens in a string using tiktoken.
    Falls back to a characters/4 estimate when no encoder can be loaded.
    """
    if not text:
        return 0
    encoder = _get_cached_encoder(encoding_name)
    if encoder is None:
        return len(text) // 4
    try:
        return len(encoder.encode(text, disallowed_special=()))
    except ValueError as e:
        logger.error(f"Error encoding text for token count with '{encoding_name}': {e}")
        return len(text) // 4


def count_prompt_tokens(items: Iterable[PromptItem], encoding_name: str = DEFAULT_ENCODING) -> int:
    """Total tokens of a prompt basket (titles and contents)."""
    return sum(count_tokens(f"{item.title}\n{item.content}", encoding_name) for item in items)
