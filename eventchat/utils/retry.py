import asyncio
import logging
from typing import Any, Awaitable, Callable, Tuple, Type

import httpx
from pymongo.errors import ConnectionFailure, ExecutionTimeout

logger = logging.getLogger(__name__)

RETRIES = 2
BACKOFF = 0.5

# Network-level Mongo failures only; DuplicateKeyError is an OperationFailure and is never retried.
TRANSIENT_MONGO_ERRORS: Tuple[Type[BaseException], ...] = (ConnectionFailure, ExecutionTimeout)


async def with_retry(
    operation: Callable[[], Awaitable[Any]],
    *,
    retries: int = RETRIES,
    base_delay: float = 0.1,
    max_delay: float = 1.0,
    retry_on: Tuple[Type[BaseException], ...] = TRANSIENT_MONGO_ERRORS,
    label: str = "operation",
) -> Any:
    """Run ``operation`` with exponential backoff, retrying only ``retry_on`` errors.

    The delay before retry ``n`` (0-based) is ``min(base_delay * 2**n, max_delay)``.
    The last error is re-raised once retries are exhausted.
    """
    for attempt in range(retries + 1):
        try:
            return await operation()
        except retry_on as exc:
            if attempt >= retries:
                raise
            delay = min(base_delay * (2 ** attempt), max_delay)
            logger.warning("%s failed (%s: %s), retry %d/%d in %.2fs",
                           label, type(exc).__name__, exc, attempt + 1, retries, delay)
            await asyncio.sleep(delay)


async def get_json_with_retry(client: httpx.AsyncClient, url: str, params: dict | None = None,
                              headers: dict | None = None, retries: int = 0) -> Any:
    async def _call():
        r = await client.get(url, params=params or {}, headers=headers or {})
        r.raise_for_status()
        return r.json()

    return await with_retry(_call, retries=retries, base_delay=BACKOFF, max_delay=BACKOFF * 4,
                            retry_on=(httpx.TransportError,), label=f"GET {url}")


async def post_json_with_retry(client: httpx.AsyncClient, url: str, payload: dict,
                               headers: dict | None = None, retries: int = 0) -> Any:
    async def _call():
        r = await client.post(url, json=payload, headers=headers or {})
        r.raise_for_status()
        return r.json()

    return await with_retry(_call, retries=retries, base_delay=BACKOFF, max_delay=BACKOFF * 4,
                            retry_on=(httpx.TransportError,), label=f"POST {url}")
