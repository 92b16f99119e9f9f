# codemind/services/async_utils.py
import asyncio
from typing import Callable, Set, TypeVar
from loguru import logger

T = TypeVar("T")


async def run_in_background(func: Callable[..., T], *args) -> T:
    """Runs a blocking callable on the default worker thread pool and awaits it."""
    logger.trace(f"Submitting {getattr(func, '__name__', func)} to worker thread")
    return await asyncio.to_thread(func, *args)


class InFlightRegistry:
    """
    Per-key in-flight markers. ``claim`` returns False while the key is already
    being processed, so duplicate requests become no-ops instead of retries.
    """

    def __init__(self):
        self._keys: Set[str] = set()

    def claim(self, key: str) -> bool:
        if key in self._keys:
            logger.debug(f"Request for {key!r} already in flight, ignoring.")
            return False
        self._keys.add(key)
        return True

    def release(self, key: str) -> None:
        self._keys.discard(key)

    def __contains__(self, key: str) -> bool:
        return key in self._keys

    def snapshot(self) -> Set[str]:
        return set(self._keys)
