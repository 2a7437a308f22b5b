from __future__ import annotations

import asyncio
from typing import Any, Callable

from storefront.client.api import StorefrontClient
from storefront.core.logging import get_logger

logger = get_logger(__name__)


class PreviewScheduler:
    """Debounced checkout preview.

    Each ``schedule`` call cancels the previous timer or in-flight request, so
    only the latest coupon/points inputs ever produce a result.
    """

    def __init__(
        self,
        client: StorefrontClient,
        *,
        delay: float = 0.3,
        on_result: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._client = client
        self.delay = delay
        self.on_result = on_result
        self.latest: dict[str, Any] | None = None
        self.error: Exception | None = None
        self._task: asyncio.Task | None = None
        self._generation = 0

    def schedule(self, coupon_code: str | None = None, redeem_points: int = 0) -> asyncio.Task:
        self._generation += 1
        previous = self._task
        if previous is not None:
            if not previous.done():
                previous.cancel()
            elif not previous.cancelled() and previous.exception() is not None:
                logger.debug("Superseded checkout preview had failed", extra={"error": str(previous.exception())})
        self._task = asyncio.create_task(self._run(self._generation, coupon_code, redeem_points))
        return self._task

    async def _run(self, generation: int, coupon_code: str | None, redeem_points: int) -> dict[str, Any] | None:
        await asyncio.sleep(self.delay)
        try:
            result = await self._client.preview(coupon_code=coupon_code, redeem_points=redeem_points)
        except Exception as exc:
            if generation != self._generation:
                return None
            # A breakdown for older inputs must not stay on screen
            self.latest = None
            self.error = exc
            raise
        if generation != self._generation:
            return None
        self.latest = result
        self.error = None
        if self.on_result is not None:
            self.on_result(result)
        return result

    async def flush(self) -> dict[str, Any] | None:
        """Wait for the latest scheduled preview."""
        if self._task is None:
            return self.latest
        try:
            return await self._task
        except asyncio.CancelledError:
            return self.latest

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug("Checkout preview cancelled")
