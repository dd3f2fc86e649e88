"""Tests for use cases."""

from datetime import datetime
from unittest.mock import AsyncMock

import pytest

from feed_filter.config import Settings
from feed_filter.core import (
    ClassificationCache,
    Decision,
    Item,
    OracleError,
    Schedule,
    StateStore,
    StatsTracker,
)
from feed_filter.use_cases import (
    ClassificationService,
    FilterService,
    ScheduleDriver,
    ScheduleService,
)

WEEKDAYS_RESPONSE = (
    '{"enabled":true,"days":["mon","tue","wed","thu","fri"],'
    '"startTime":"09:00","endTime":"17:00"}'
)

# 2024-01-01 is a Monday
MONDAY_EVENING = datetime(2024, 1, 1, 20, 0)
MONDAY_MORNING = datetime(2024, 1, 1, 10, 0)


@pytest.fixture
def items() -> list[Item]:
    return [
        Item(id="a", title="Chill lofi mix", source="Lofi Girl"),
        Item(id="b", title="Election debate recap", source="News Now"),
        Item(id="c", title="Jazzhop for coding", source="Beats"),
    ]


@pytest.fixture
def mock_llm() -> AsyncMock:
    """Create mock oracle."""
    llm = AsyncMock()
    llm.classify.return_value = '{"1": "SHOW", "2": "HIDE", "3": "SHOW"}'
    return llm


@pytest.fixture
def classifier(storage, mock_llm: AsyncMock) -> ClassificationService:
    cache = ClassificationCache(storage, "cache", persist_delay=0.01)
    stats = StatsTracker(storage, "stats")
    return ClassificationService(mock_llm, cache, stats)


@pytest.mark.asyncio
async def test_classify_items(classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]) -> None:
    """Test classification of uncached items."""
    result = await classifier.classify_items(items, "only lofi")

    assert result == {"a": Decision.SHOW, "b": Decision.HIDE, "c": Decision.SHOW}
    mock_llm.classify.assert_called_once()

    stats = classifier.stats.get()
    assert stats.hidden_this_session == 1
    assert stats.total_classified == 3


@pytest.mark.asyncio
async def test_prompt_lists_items_in_order(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test the rendered oracle prompt."""
    await classifier.classify_items(items, "only lofi")

    system_prompt, user_prompt = mock_llm.classify.call_args.args
    assert "classifier" in system_prompt
    assert 'My preference: "only lofi"' in user_prompt
    assert '1. "Chill lofi mix" by Lofi Girl\n2. "Election debate recap" by News Now' in user_prompt
    assert '{"1": "SHOW", "2": "HIDE", ...}' in user_prompt


@pytest.mark.asyncio
async def test_empty_prompt_bypasses_oracle_and_cache(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test that no preference shows everything without any calls."""
    result = await classifier.classify_items(items, "   ")

    assert set(result.values()) == {Decision.SHOW}
    assert len(result) == 3
    mock_llm.classify.assert_not_called()
    assert classifier.cache.size == 0


@pytest.mark.asyncio
async def test_empty_batch(classifier: ClassificationService, mock_llm: AsyncMock) -> None:
    """Test that an empty batch is a no-op."""
    assert await classifier.classify_items([], "only lofi") == {}
    mock_llm.classify.assert_not_called()


@pytest.mark.asyncio
async def test_second_call_served_from_cache(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test idempotence: an unchanged batch hits the oracle once."""
    first = await classifier.classify_items(items, "only lofi")
    second = await classifier.classify_items(items, "only lofi")

    assert first == second
    assert mock_llm.classify.call_count == 1


@pytest.mark.asyncio
async def test_only_misses_sent_to_oracle(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test that cached items are merged and not re-sent."""
    await classifier.classify_items(items[:2], "only lofi")
    mock_llm.classify.return_value = '{"1": "HIDE"}'

    result = await classifier.classify_items(items, "only lofi")

    user_prompt = mock_llm.classify.call_args.args[1]
    assert '1. "Jazzhop for coding" by Beats' in user_prompt
    assert "Chill lofi mix" not in user_prompt
    assert result == {"a": Decision.SHOW, "b": Decision.HIDE, "c": Decision.HIDE}


@pytest.mark.asyncio
async def test_preference_change_reclassifies(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test that a new preference never reuses old decisions."""
    await classifier.classify_items(items, "only lofi")
    mock_llm.classify.return_value = '{"1": "HIDE", "2": "HIDE", "3": "HIDE"}'

    result = await classifier.classify_items(items, "no music")

    assert mock_llm.classify.call_count == 2
    assert set(result.values()) == {Decision.HIDE}


@pytest.mark.asyncio
async def test_duplicate_ids_sent_once(classifier: ClassificationService, mock_llm: AsyncMock) -> None:
    """Test that repeated ids in one batch are classified once."""
    mock_llm.classify.return_value = '{"1": "HIDE"}'
    item = Item(id="a", title="Chill lofi mix", source="Lofi Girl")

    result = await classifier.classify_items([item, item], "only lofi")

    assert result == {"a": Decision.HIDE}
    assert "2." not in mock_llm.classify.call_args.args[1]


@pytest.mark.asyncio
async def test_malformed_response_shows_all(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test malformed JSON fails open without raising."""
    mock_llm.classify.return_value = "I think the first one is fine {oops"

    result = await classifier.classify_items(items, "only lofi")

    assert result == {"a": Decision.SHOW, "b": Decision.SHOW, "c": Decision.SHOW}


@pytest.mark.asyncio
async def test_oracle_error_propagates(
    classifier: ClassificationService, mock_llm: AsyncMock, items: list[Item]
) -> None:
    """Test that oracle failures surface for the whole batch."""
    mock_llm.classify.side_effect = OracleError(500, "boom")

    with pytest.raises(OracleError):
        await classifier.classify_items(items, "only lofi")

    assert classifier.cache.size == 0
    assert classifier.stats.get().total_classified == 0


@pytest.mark.asyncio
async def test_extract_schedule(storage) -> None:
    """Test schedule extraction for a weekday window."""
    mock_llm = AsyncMock()
    mock_llm.classify.return_value = f"Sure! {WEEKDAYS_RESPONSE}"
    service = ScheduleService(mock_llm, StateStore(storage))

    schedule = await service.extract_schedule("weekdays 9-5")

    assert schedule == Schedule(
        enabled=True,
        days=["mon", "tue", "wed", "thu", "fri"],
        start_time="09:00",
        end_time="17:00",
    )
    assert 'from: "weekdays 9-5"' in mock_llm.classify.call_args.args[1]


@pytest.mark.asyncio
async def test_extract_schedule_without_window(storage) -> None:
    """Test a preference with no schedule."""
    mock_llm = AsyncMock()
    mock_llm.classify.return_value = '{"enabled":false}'
    service = ScheduleService(mock_llm, StateStore(storage))

    assert await service.extract_schedule("only lofi") == Schedule.disabled()


@pytest.mark.asyncio
async def test_extract_schedule_empty_text_skips_oracle(storage) -> None:
    """Test that empty text never calls the oracle."""
    mock_llm = AsyncMock()
    service = ScheduleService(mock_llm, StateStore(storage))

    assert await service.extract_schedule("") == Schedule.disabled()
    mock_llm.classify.assert_not_called()


@pytest.mark.asyncio
async def test_extract_schedule_oracle_error_fails_open(storage) -> None:
    """Test oracle failure collapses to no schedule."""
    mock_llm = AsyncMock()
    mock_llm.classify.side_effect = OracleError(0, "timeout")
    service = ScheduleService(mock_llm, StateStore(storage))

    assert await service.extract_schedule("weekdays 9-5") == Schedule.disabled()


@pytest.mark.asyncio
async def test_process_prompt_schedule_persists(storage) -> None:
    """Test the extracted schedule is stored."""
    mock_llm = AsyncMock()
    mock_llm.classify.return_value = WEEKDAYS_RESPONSE
    store = StateStore(storage)
    service = ScheduleService(mock_llm, store)

    await service.process_prompt_schedule("weekdays 9-5")

    stored = await store.get_schedule()
    assert stored.enabled is True
    assert stored.days == ["mon", "tue", "wed", "thu", "fri"]


@pytest.mark.asyncio
async def test_driver_disables_outside_window(storage) -> None:
    """Test the driver flips the flag to match the schedule."""
    store = StateStore(storage)
    await store.set_schedule(Schedule(enabled=True, days=["mon"], start_time="09:00", end_time="17:00"))
    driver = ScheduleDriver(store, clock=lambda: MONDAY_EVENING)

    assert await driver.tick() is False
    assert (await store.get_state()).filter_enabled is False

    # Already in agreement: nothing written
    assert await driver.tick() is None


@pytest.mark.asyncio
async def test_driver_enables_inside_window(storage) -> None:
    """Test the driver turns the filter back on."""
    store = StateStore(storage)
    await store.update_state(
        filter_enabled=False,
        schedule=Schedule(enabled=True, days=["mon"], start_time="09:00", end_time="17:00"),
    )
    driver = ScheduleDriver(store, clock=lambda: MONDAY_MORNING)

    assert await driver.tick() is True
    assert (await store.get_state()).filter_enabled is True


@pytest.mark.asyncio
async def test_driver_leaves_manual_control_alone(storage) -> None:
    """Test a disabled schedule never touches the flag."""
    store = StateStore(storage)
    await store.update_state(filter_enabled=False)
    driver = ScheduleDriver(store, clock=lambda: MONDAY_MORNING)

    assert await driver.tick() is None
    assert (await store.get_state()).filter_enabled is False


@pytest.mark.asyncio
async def test_driver_start_ticks_immediately_and_stops(storage) -> None:
    """Test start runs one tick before the periodic loop."""
    store = StateStore(storage)
    await store.set_schedule(Schedule(enabled=True, days=["mon"], start_time="09:00", end_time="17:00"))
    driver = ScheduleDriver(store, interval=3600, clock=lambda: MONDAY_EVENING)

    await driver.start()
    assert driver.running
    assert (await store.get_state()).filter_enabled is False

    await driver.stop()
    assert not driver.running


@pytest.mark.asyncio
async def test_driver_survives_storage_failure(storage) -> None:
    """Test start does not raise when the first tick fails."""
    store = StateStore(storage)
    driver = ScheduleDriver(store, interval=3600)
    storage.fail = True

    await driver.start()
    assert driver.running
    await driver.stop()


@pytest.fixture
def service(storage, mock_llm: AsyncMock) -> FilterService:
    """Create a fully wired filter service."""
    settings = Settings()
    settings.cache.persist_delay = 0.01
    return FilterService.create(settings, mock_llm, storage, clock=lambda: MONDAY_EVENING)


@pytest.mark.asyncio
async def test_service_update_prompt_derives_schedule(service: FilterService, mock_llm: AsyncMock) -> None:
    """Test a new preference resets stats and applies its schedule."""
    await service.start(run_driver=False)
    await service.stats.update(5, 10)
    mock_llm.classify.return_value = WEEKDAYS_RESPONSE

    await service.update_state(user_prompt="no gaming, weekdays 9-5")

    state = await service.get_state()
    assert state.user_prompt == "no gaming, weekdays 9-5"
    assert state.schedule.enabled is True
    # Monday 20:00 is outside the window
    assert state.filter_enabled is False
    assert service.get_stats().total_classified == 0
    await service.close()


@pytest.mark.asyncio
async def test_service_toggle_does_not_reextract(service: FilterService, mock_llm: AsyncMock) -> None:
    """Test non-preference updates skip schedule extraction."""
    await service.update_state(filter_enabled=False, hide_shorts=True)

    state = await service.get_state()
    assert state.filter_enabled is False
    assert state.hide_shorts is True
    mock_llm.classify.assert_not_called()


@pytest.mark.asyncio
async def test_service_start_primes_fingerprint(service: FilterService, storage) -> None:
    """Test the stored preference becomes the active fingerprint on start."""
    await service.state_store.update_state(user_prompt="only lofi")

    await service.start(run_driver=False)

    expected = ClassificationCache(storage, "x")
    expected.set_active_preference("only lofi")
    assert service.cache.fingerprint == expected.fingerprint
    await service.close()


@pytest.mark.asyncio
async def test_handle_classify_envelope(service: FilterService) -> None:
    """Test the classify command."""
    await service.state_store.update_state(user_prompt="only lofi")

    response = await service.handle(
        "classify",
        {"items": [
            {"id": "a", "title": "Chill lofi mix", "channel": "Lofi Girl"},
            {"id": "b", "title": "Election debate recap", "channel": "News Now"},
        ]},
    )

    assert response == {"success": True, "classifications": {"a": "SHOW", "b": "HIDE"}}
    await service.close()


@pytest.mark.asyncio
async def test_handle_classify_oracle_error(service: FilterService, mock_llm: AsyncMock) -> None:
    """Test oracle failures become an error envelope."""
    await service.state_store.update_state(user_prompt="only lofi")
    mock_llm.classify.side_effect = OracleError(503, "overloaded")

    response = await service.handle("classify", {"items": [{"id": "a", "title": "x", "source": "y"}]})

    assert response["success"] is False
    assert "overloaded" in response["error"]


@pytest.mark.asyncio
async def test_handle_state_and_stats(service: FilterService) -> None:
    """Test state, stats and cache commands."""
    update = await service.handle("update_state", {"state": {"hide_shorts": True}})
    state = await service.handle("get_state")
    stats = await service.handle("get_stats")
    cleared = await service.handle("clear_cache")

    assert update == {"success": True}
    assert state["state"]["hide_shorts"] is True
    assert state["state"]["schedule"] == {"enabled": False}
    assert stats["stats"]["total_classified"] == 0
    assert cleared == {"success": True}


@pytest.mark.asyncio
async def test_handle_rejects_bad_input(service: FilterService) -> None:
    """Test unknown commands and fields answer with an error."""
    unknown = await service.handle("explode")
    bad_field = await service.handle("update_state", {"state": {"colour": "red"}})

    assert unknown["success"] is False
    assert "Unknown command" in unknown["error"]
    assert bad_field["success"] is False


@pytest.mark.asyncio
async def test_handle_classify_with_explicit_prompt(service: FilterService, mock_llm: AsyncMock) -> None:
    """Test a preference passed with the command overrides the stored one."""
    response = await service.handle(
        "classify",
        {"items": [{"id": "a", "title": "Chill lofi mix", "source": "Lofi Girl"}], "user_prompt": "only lofi"},
    )

    assert response["classifications"] == {"a": "SHOW"}
    assert 'My preference: "only lofi"' in mock_llm.classify.call_args.args[1]
    await service.close()


@pytest.mark.asyncio
async def test_handle_update_state_rejects_invalid_schedule(service: FilterService) -> None:
    """Test an inbound schedule with bad days or times is stored as disabled."""
    response = await service.handle(
        "update_state",
        {"state": {"schedule": {"enabled": True, "days": ["Mon"], "start_time": "25:99", "end_time": "17:00"}}},
    )

    assert response == {"success": True}
    state = await service.get_state()
    assert state.schedule == Schedule.disabled()
    assert await service.driver.tick() is None
    assert state.filter_enabled is True


@pytest.mark.asyncio
async def test_handle_update_state_normalises_schedule(service: FilterService) -> None:
    """Test an inbound schedule is lowercased and zero-padded before storing."""
    await service.handle(
        "update_state",
        {"state": {"schedule": {"enabled": True, "days": ["Mon"], "start_time": "9:00", "end_time": "17:00"}}},
    )

    schedule = await service.state_store.get_schedule()
    assert schedule == Schedule(enabled=True, days=["mon"], start_time="09:00", end_time="17:00")


@pytest.mark.asyncio
async def test_service_start_with_unreadable_storage(service: FilterService, storage) -> None:
    """Test startup falls back to defaults when storage cannot be read."""
    storage.fail = True

    await service.start()

    assert service.driver.running
    expected = ClassificationCache(storage, "x")
    expected.set_active_preference("")
    assert service.cache.fingerprint == expected.fingerprint

    storage.fail = False
    await service.close()
