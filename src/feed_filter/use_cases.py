"""Business logic use cases."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Optional, Sequence

from feed_filter.config import PromptsConfig, Settings
from feed_filter.core import (
    ClassificationCache,
    Decision,
    FilterState,
    Item,
    KeyValueStorage,
    LLMClient,
    OracleError,
    PersistenceError,
    Schedule,
    StateStore,
    Stats,
    StatsTracker,
    StorageKeys,
    is_within_schedule,
)
from feed_filter.core.parsing import parse_classification_response, parse_schedule_response

logger = logging.getLogger(__name__)


class ClassificationService:
    """Classify item batches against a preference, consulting the cache first."""

    def __init__(
        self,
        llm_client: LLMClient,
        cache: ClassificationCache,
        stats: StatsTracker,
        prompts: Optional[PromptsConfig] = None,
    ) -> None:
        self.llm_client = llm_client
        self.cache = cache
        self.stats = stats
        self.prompts = prompts or PromptsConfig()

    async def classify_items(self, items: Sequence[Item], user_prompt: str) -> dict[str, Decision]:
        """Return a decision for every item id.

        Raises:
            OracleError: the oracle call for the uncached items failed
        """
        if not items:
            return {}

        if not user_prompt.strip():
            logger.debug("No preference set, showing %d items", len(items))
            return {item.id: Decision.SHOW for item in items}

        self.cache.set_active_preference(user_prompt)

        cached = self.cache.get_batch(item.id for item in items)

        misses: list[Item] = []
        seen_ids: set[str] = set()
        for item in items:
            if item.id not in cached and item.id not in seen_ids:
                seen_ids.add(item.id)
                misses.append(item)

        logger.info("Cache check: %d hits out of %d", len(cached), len(items))

        if not misses:
            return dict(cached)

        prompt = self._build_prompt(misses, user_prompt)
        response = await self.llm_client.classify(
            self.prompts.classification.get("system", ""),
            prompt,
        )

        classifications = parse_classification_response(response, misses)
        self.cache.put_batch(classifications)

        result = {**classifications, **cached}

        hidden = sum(1 for decision in result.values() if decision is Decision.HIDE)
        logger.info("Classified %d items: %d hidden", len(result), hidden)
        await self.stats.update(hidden, len(items))

        return result

    def _build_prompt(self, items: Sequence[Item], user_prompt: str) -> str:
        video_list = "\n".join(
            f'{i}. "{item.title}" by {item.source}' for i, item in enumerate(items, 1)
        )
        return self.prompts.classification.get("user", "").format(
            user_prompt=user_prompt,
            video_list=video_list,
        )


class ScheduleService:
    """Derive an activity schedule from free-form preference text."""

    def __init__(
        self,
        llm_client: LLMClient,
        state_store: StateStore,
        prompts: Optional[PromptsConfig] = None,
    ) -> None:
        self.llm_client = llm_client
        self.state_store = state_store
        self.prompts = prompts or PromptsConfig()

    async def extract_schedule(self, user_prompt: str) -> Schedule:
        """Ask the oracle for a weekly window; any failure means no schedule."""
        if not user_prompt.strip():
            return Schedule.disabled()

        prompt = self.prompts.schedule.get("user", "").format(user_prompt=user_prompt)
        try:
            response = await self.llm_client.classify(
                self.prompts.schedule.get("system", ""),
                prompt,
            )
        except OracleError as e:
            logger.warning("Failed to extract schedule: %s", e)
            return Schedule.disabled()

        return parse_schedule_response(response)

    async def process_prompt_schedule(self, user_prompt: str) -> Schedule:
        """Extract the schedule for user_prompt and store it."""
        schedule = await self.extract_schedule(user_prompt)
        await self.state_store.set_schedule(schedule)
        if schedule.enabled:
            logger.info(
                "Schedule: %s %s-%s", ",".join(schedule.days or []),
                schedule.start_time, schedule.end_time,
            )
        return schedule


class ScheduleDriver:
    """Keep ``filter_enabled`` in line with the stored schedule.

    Ticks once on start and then every ``interval`` seconds. A disabled schedule
    leaves the flag under manual control.
    """

    def __init__(
        self,
        state_store: StateStore,
        interval: float = 60.0,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.state_store = state_store
        self.interval = interval
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def tick(self) -> Optional[bool]:
        """Reconcile once.

        Returns:
            The value written to ``filter_enabled``, or None if nothing changed
        """
        now = self._clock()

        def reconcile(state: FilterState) -> dict[str, Any]:
            if not state.schedule.enabled:
                return {}
            should_be_enabled = is_within_schedule(state.schedule, now)
            if should_be_enabled == state.filter_enabled:
                return {}
            return {"filter_enabled": should_be_enabled}

        changes = await self.state_store.modify(reconcile)
        if not changes:
            return None

        enabled = changes["filter_enabled"]
        logger.info("Schedule: filter %s", "enabled" if enabled else "disabled")
        return enabled

    async def start(self) -> None:
        """Tick immediately, then keep ticking in the background."""
        if self.running:
            await self.stop()
        await self._safe_tick()
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self._safe_tick()

    async def _safe_tick(self) -> None:
        try:
            await self.tick()
        except Exception:
            logger.exception("Schedule check error")


class FilterService:
    """Process-wide filtering engine: owns cache, stats, state and schedule driver.

    Construct once at startup, call ``start()``, and ``close()`` on shutdown.
    """

    def __init__(
        self,
        state_store: StateStore,
        cache: ClassificationCache,
        stats: StatsTracker,
        classifier: ClassificationService,
        scheduler: ScheduleService,
        driver: ScheduleDriver,
    ) -> None:
        self.state_store = state_store
        self.cache = cache
        self.stats = stats
        self.classifier = classifier
        self.scheduler = scheduler
        self.driver = driver

    @classmethod
    def create(
        cls,
        settings: Settings,
        llm_client: LLMClient,
        storage: KeyValueStorage,
        clock: Callable[[], datetime] = datetime.now,
    ) -> "FilterService":
        """Wire all components from settings."""
        keys = StorageKeys(prefix=settings.storage.key_prefix)
        state_store = StateStore(storage, keys)
        cache = ClassificationCache(
            storage,
            keys.cache,
            ttl_seconds=settings.cache_ttl_seconds,
            persist_delay=settings.cache.persist_delay,
        )
        stats = StatsTracker(storage, keys.stats)
        return cls(
            state_store=state_store,
            cache=cache,
            stats=stats,
            classifier=ClassificationService(llm_client, cache, stats, settings.prompts),
            scheduler=ScheduleService(llm_client, state_store, settings.prompts),
            driver=ScheduleDriver(state_store, settings.schedule_check_interval, clock=clock),
        )

    async def start(self, run_driver: bool = True) -> None:
        """Load persisted data and start the schedule driver."""
        await self.cache.load()
        await self.stats.load()
        try:
            state = await self.state_store.get_state()
        except PersistenceError as e:
            logger.error("Failed to load filter state, using defaults: %s", e)
            state = FilterState()
        self.cache.set_active_preference(state.user_prompt)
        if run_driver:
            await self.driver.start()
        logger.info("Filter service ready")

    async def close(self) -> None:
        """Stop the driver and flush pending cache writes."""
        await self.driver.stop()
        await self.cache.close()

    async def classify(self, items: Sequence[Item], user_prompt: Optional[str] = None) -> dict[str, Decision]:
        """Classify items against user_prompt, or the stored preference if None."""
        if user_prompt is None:
            user_prompt = (await self.state_store.get_state()).user_prompt
        return await self.classifier.classify_items(items, user_prompt)

    async def get_state(self) -> FilterState:
        return await self.state_store.get_state()

    async def update_state(self, **changes: Any) -> None:
        """Apply a partial state update.

        A changed preference re-fingerprints the cache, resets stats and
        re-derives the schedule.
        """
        previous = await self.state_store.get_state()
        await self.state_store.update_state(**changes)

        user_prompt = changes.get("user_prompt")
        if user_prompt is None or user_prompt == previous.user_prompt:
            return

        self.cache.set_active_preference(user_prompt)
        await self.stats.reset()
        await self.scheduler.process_prompt_schedule(user_prompt)
        await self.driver.tick()

    def get_stats(self) -> Stats:
        return self.stats.get()

    async def reset_stats(self) -> None:
        await self.stats.reset()

    async def clear_cache(self) -> None:
        await self.cache.clear()

    async def handle(self, command: str, payload: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        """Dispatch an inbound command and wrap the outcome in an envelope."""
        payload = payload or {}
        logger.debug("Handling command: %s", command)
        try:
            if command == "classify":
                items = [Item.from_dict(raw) for raw in payload.get("items", [])]
                classifications = await self.classify(items, payload.get("user_prompt"))
                return {
                    "success": True,
                    "classifications": {
                        item_id: decision.value for item_id, decision in classifications.items()
                    },
                }

            if command == "get_state":
                state = await self.get_state()
                return {"success": True, "state": state.to_dict()}

            if command == "update_state":
                changes = dict(payload.get("state", {}))
                if "schedule" in changes:
                    changes["schedule"] = Schedule.from_dict(changes["schedule"])
                await self.update_state(**changes)
                return {"success": True}

            if command == "get_stats":
                return {"success": True, "stats": self.get_stats().to_dict()}

            if command == "clear_cache":
                await self.clear_cache()
                return {"success": True}

            logger.warning("Unknown command: %s", command)
            return {"success": False, "error": f"Unknown command: {command}"}

        except Exception as e:
            logger.error("Command %s failed: %s", command, e)
            return {"success": False, "error": str(e) or type(e).__name__}
