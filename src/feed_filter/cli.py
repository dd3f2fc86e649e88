"""CLI entry point for feed filter."""

import asyncio
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
import yaml

from feed_filter.adapters.llm import OpenAIClient
from feed_filter.adapters.storage import YamlFileStorage
from feed_filter.config import Settings, get_settings
from feed_filter.core import Decision, Item, OracleError, is_within_schedule
from feed_filter.coordinator import BatchCoordinator
from feed_filter.use_cases import FilterService

app = typer.Typer(help="Filter a video feed against a natural-language preference.")

CONFIG_OPTION = typer.Option(Path("config.yaml"), "--config", "-c", help="Path to config.yaml")


def _setup(config: Path, debug: bool = False) -> tuple[Settings, FilterService]:
    settings = get_settings(config)
    logging.basicConfig(
        level=logging.DEBUG if debug else getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    service = FilterService.create(
        settings,
        llm_client=OpenAIClient(settings),
        storage=YamlFileStorage(settings.storage_dir),
    )
    return settings, service


def _load_items(path: Path) -> list[Item]:
    """Load items from a YAML or JSON list of {id, title, source} records."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, dict):
        data = data.get("items", [])
    return [Item.from_dict(raw) for raw in data]


def _format_schedule(schedule) -> str:
    if not schedule.enabled:
        return "always active"
    return f"{', '.join(schedule.days or [])} {schedule.start_time}-{schedule.end_time}"


@app.command()
def classify(
    items_file: Path = typer.Argument(..., exists=True, help="YAML/JSON list of items"),
    prompt: Optional[str] = typer.Option(None, "--prompt", "-p", help="Set the preference first"),
    config: Path = CONFIG_OPTION,
    debug: bool = False,
) -> None:
    """Classify items from a file against the stored preference."""
    asyncio.run(_classify(items_file, prompt, config, debug))


async def _classify(items_file: Path, prompt: Optional[str], config: Path, debug: bool) -> None:
    _, service = _setup(config, debug)
    items = _load_items(items_file)

    await service.start(run_driver=False)
    try:
        if prompt is not None:
            await service.update_state(user_prompt=prompt)

        state = await service.get_state()
        print(f"\n🎯 Preference: {state.user_prompt or '(none)'}")
        print(f"  • Filter: {'on' if state.filter_enabled else 'off'}")
        print(f"  • Items: {len(items)}")

        def show(batch: list[Item], decisions: dict[str, Decision]) -> None:
            for item in batch:
                decision = decisions[item.id]
                marker = "✗" if decision is Decision.HIDE else "✓"
                print(f"  {marker} {decision.value:4} {item.title[:70]} ({item.source})")

        def report_error(message: str) -> None:
            print(f"⚠️  Classification failed, showing everything: {message}")

        coordinator = BatchCoordinator(service, show, on_error=report_error)
        print()
        await coordinator.submit(items)

        stats = service.get_stats()
        print(f"\n📊 Hidden: {stats.hidden_this_session} / classified: {stats.total_classified}")
    finally:
        await service.close()


@app.command("set-prompt")
def set_prompt(
    text: str = typer.Argument(..., help="Natural-language preference, empty to clear"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Store a new preference and derive its schedule."""
    asyncio.run(_set_prompt(text, config))


async def _set_prompt(text: str, config: Path) -> None:
    _, service = _setup(config)
    await service.start(run_driver=False)
    try:
        await service.update_state(user_prompt=text, has_seen_onboarding=True)
        state = await service.get_state()
        print(f"✓ Preference saved")
        print(f"  • Schedule: {_format_schedule(state.schedule)}")
        print(f"  • Filter: {'on' if state.filter_enabled else 'off'}")
    finally:
        await service.close()


@app.command()
def toggle(
    hide_shorts: bool = typer.Option(False, "--hide-shorts", help="Toggle always-hide for shorts instead"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Flip the filter (or the hide-shorts flag) on or off."""
    asyncio.run(_toggle(hide_shorts, config))


async def _toggle(hide_shorts: bool, config: Path) -> None:
    _, service = _setup(config)
    field = "hide_shorts" if hide_shorts else "filter_enabled"
    changes = await service.state_store.modify(lambda state: {field: not getattr(state, field)})
    print(f"✓ {field}: {'on' if changes[field] else 'off'}")


@app.command()
def status(config: Path = CONFIG_OPTION) -> None:
    """Show stored state, schedule and stats."""
    asyncio.run(_status(config))


async def _status(config: Path) -> None:
    settings, service = _setup(config)
    await service.start(run_driver=False)
    try:
        state = await service.get_state()
        stats = service.get_stats()
        cache_stats = service.cache.stats()

        print(f"\n🎯 Preference: {state.user_prompt or '(none)'}")
        print(f"  • Filter: {'on' if state.filter_enabled else 'off'}")
        print(f"  • Hide shorts: {'yes' if state.hide_shorts else 'no'}")
        print(f"  • Schedule: {_format_schedule(state.schedule)}")
        if state.schedule.enabled:
            active = is_within_schedule(state.schedule, datetime.now())
            print(f"    └─ {'inside' if active else 'outside'} the window now")
        print(f"\n💾 Cache: {cache_stats['size']} entries in {settings.storage_dir}")
        print(f"📊 Hidden: {stats.hidden_this_session} / classified: {stats.total_classified}")
    finally:
        await service.close()


@app.command()
def schedule(
    text: str = typer.Argument(..., help="Preference text to extract a schedule from"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Extract a schedule from text without storing it."""
    asyncio.run(_schedule(text, config))


async def _schedule(text: str, config: Path) -> None:
    _, service = _setup(config)
    extracted = await service.scheduler.extract_schedule(text)
    print(f"🗓️  {_format_schedule(extracted)}")
    if extracted.enabled:
        active = is_within_schedule(extracted, datetime.now())
        print(f"  └─ {'inside' if active else 'outside'} the window now")


@app.command()
def stats(
    reset: bool = typer.Option(False, "--reset", help="Zero the counters"),
    config: Path = CONFIG_OPTION,
) -> None:
    """Show (or reset) classification counters."""
    asyncio.run(_stats(reset, config))


async def _stats(reset: bool, config: Path) -> None:
    _, service = _setup(config)
    await service.stats.load()
    if reset:
        await service.reset_stats()
        print("✓ Stats reset")
        return
    current = service.get_stats()
    updated = datetime.fromtimestamp(current.last_updated).strftime("%Y-%m-%d %H:%M")
    print(f"📊 Hidden: {current.hidden_this_session}")
    print(f"   Classified: {current.total_classified}")
    print(f"   Updated: {updated}")


@app.command("clear-cache")
def clear_cache(config: Path = CONFIG_OPTION) -> None:
    """Drop all cached classifications."""
    asyncio.run(_clear_cache(config))


async def _clear_cache(config: Path) -> None:
    _, service = _setup(config)
    await service.clear_cache()
    print("✓ Cache cleared")


@app.command()
def watch(config: Path = CONFIG_OPTION, debug: bool = False) -> None:
    """Run the schedule driver until interrupted."""
    try:
        asyncio.run(_watch(config, debug))
    except KeyboardInterrupt:
        print("\n👋 Stopped")


async def _watch(config: Path, debug: bool) -> None:
    settings, service = _setup(config, debug)
    await service.start()
    print(f"⏱️  Checking schedule every {settings.schedule_check_interval:.0f}s (Ctrl+C to stop)")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await service.close()


def main() -> None:
    """CLI entry point."""
    try:
        app()
    except OracleError as e:
        print(f"❌ {e}")
        raise SystemExit(1)


if __name__ == "__main__":
    main()
