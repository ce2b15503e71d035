from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Sequence

from jobmatch.ai.errors import CompletionRateLimited
from jobmatch.ai.types import ChatMessage, CompletionClient

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


def backoff_delays(retries: int, base_delay_s: float) -> list[float]:
    """Delays before each retry: base, 2*base, 4*base, ..."""
    return [base_delay_s * (2**attempt) for attempt in range(max(0, retries))]


async def complete_with_backoff(
    client: CompletionClient,
    messages: Sequence[ChatMessage],
    *,
    schema: dict[str, Any],
    schema_name: str,
    retries: int = 3,
    base_delay_s: float = 2.0,
    temperature: float | None = None,
    label: str = "",
    sleep: Sleep = asyncio.sleep,
) -> dict[str, Any]:
    """Call the completion service, retrying only rate-limit responses.

    Every other error class is raised on the first occurrence.
    """
    delays = backoff_delays(retries, base_delay_s)
    attempt = 0
    while True:
        try:
            return await client.complete_json(
                messages,
                schema=schema,
                schema_name=schema_name,
                temperature=temperature,
            )
        except CompletionRateLimited as exc:
            if attempt >= len(delays):
                logger.warning(
                    "completion_rate_limit_exhausted label=%s attempts=%s: %s",
                    label,
                    attempt + 1,
                    exc,
                )
                raise
            delay = delays[attempt]
            attempt += 1
            logger.info(
                "completion_rate_limited label=%s retry=%s/%s delay_s=%.1f",
                label,
                attempt,
                len(delays),
                delay,
            )
            await sleep(delay)
