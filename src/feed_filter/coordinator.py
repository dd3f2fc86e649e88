"""Batching of discovered items into serialized classification calls."""

import logging
from typing import Callable, Optional, Sequence

from feed_filter.core import Decision, FilterState, Item, PersistenceError
from feed_filter.use_cases import FilterService

logger = logging.getLogger(__name__)

DecisionConsumer = Callable[[list[Item], dict[str, Decision]], None]


class BatchCoordinator:
    """Queue items that arrive while a classification is in flight.

    At most one classification call runs at a time. Items submitted during a
    call are picked up by the running drain loop as soon as it finishes, so
    nothing is dropped and batch boundaries fall wherever the calls end.
    """

    def __init__(
        self,
        service: FilterService,
        consumer: DecisionConsumer,
        on_error: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.service = service
        self.consumer = consumer
        self.on_error = on_error
        self.has_error = False
        self._pending: list[Item] = []
        self._processing = False

    @property
    def pending(self) -> int:
        return len(self._pending)

    @property
    def processing(self) -> bool:
        return self._processing

    async def submit(self, items: Sequence[Item]) -> None:
        """Classify items, or queue them behind the running call."""
        if not items:
            return

        try:
            state = await self.service.get_state()
        except PersistenceError as e:
            logger.error("Could not read filter state, showing %d items: %s", len(items), e)
            batch = list(items)
            self.consumer(batch, self._passthrough(batch))
            return

        if not state.filter_enabled or not state.user_prompt.strip():
            logger.debug("Filtering disabled or no prompt, passing %d items through", len(items))
            batch = list(items)
            self.consumer(batch, self._passthrough(batch, state))
            return

        self._pending.extend(items)
        logger.debug("Added to batch. Pending: %d", len(self._pending))

        if self._processing:
            return

        await self._drain()

    def reset(self) -> None:
        """Drop queued items, e.g. after navigating away."""
        self._pending = []

    async def _drain(self) -> None:
        self._processing = True
        try:
            while self._pending:
                batch = self._pending
                self._pending = []
                await self._process(batch)
        finally:
            self._processing = False

    async def _process(self, batch: list[Item]) -> None:
        logger.info("Processing batch of %d items", len(batch))
        try:
            decisions = await self.service.classify(batch)
            # Re-read: hide_shorts may have changed while the call was in flight
            state = await self.service.get_state()
        except Exception as e:
            logger.error("Classification failed, showing batch: %s", e)
            self.has_error = True
            self.consumer(batch, self._passthrough(batch))
            if self.on_error:
                self.on_error(str(e) or type(e).__name__)
            return

        self.has_error = False
        self.consumer(batch, self._apply_shorts(batch, decisions, state.hide_shorts))

    def _passthrough(self, batch: list[Item], state: Optional[FilterState] = None) -> dict[str, Decision]:
        hide_shorts = state.hide_shorts if state else False
        return self._apply_shorts(batch, {}, hide_shorts)

    def _apply_shorts(
        self, batch: list[Item], decisions: dict[str, Decision], hide_shorts: bool
    ) -> dict[str, Decision]:
        result: dict[str, Decision] = {}
        for item in batch:
            if hide_shorts and item.is_short:
                result[item.id] = Decision.HIDE
            else:
                result[item.id] = decisions.get(item.id, Decision.SHOW)
        return result
