# app/utils/retry.py
from typing import Any, Callable
import asyncio
import inspect
import logging

from app.core.exceptions import StorageError

logger = logging.getLogger(__name__)

async def retry_read(call: Callable[[], Any], attempts: int = 2, delay: float = 0.05) -> Any:
    """
    Run an idempotent read, retrying on StorageError.

    `call` may return a plain value or an awaitable. Only reads go through
    here; lifecycle writes are never retried.
    """
    attempts = max(1, attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = call()
            if inspect.isawaitable(result):
                result = await result
            return result
        except StorageError as e:
            if attempt == attempts:
                raise
            logger.warning(f"Read failed (attempt {attempt}/{attempts}), retrying: {e}")
            await asyncio.sleep(delay * attempt)
