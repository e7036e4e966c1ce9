from __future__ import annotations

import pytest

from app.models import Drama, Episode, ProgressRecord
from app.services.progress import ProgressChange, ProgressState, ProgressStore
from app.storage import MemoryKeyValueStore


def _record(drama_id: str, position: float = 10.0, duration: float = 100.0) -> ProgressRecord:
    return ProgressRecord(
        drama_id=drama_id,
        episode_ordinal=0,
        episode_name="Episode 1",
        position_seconds=position,
        duration_seconds=duration,
        title=f"Drama {drama_id}",
    )


@pytest.fixture
def progress(clock) -> ProgressStore:
    return ProgressStore(MemoryKeyValueStore(), clock=clock)


@pytest.mark.anyio
async def test_continue_watching_excludes_near_complete(progress, clock) -> None:
    await progress.save(_record("A", position=600, duration=1200))
    clock.advance(1)
    await progress.save(_record("B", position=1180, duration=1200))

    assert [record.drama_id for record in await progress.get_continue_watching()] == ["A"]

    clock.advance(1)
    await progress.update_progress("A", 1200, 1200)

    assert await progress.get_continue_watching() == []
    assert await progress.status("A") is ProgressState.COMPLETED


@pytest.mark.anyio
async def test_continue_watching_skips_unstarted_and_respects_limit(progress, clock) -> None:
    await progress.save(_record("zero", position=0))
    for drama_id in ("1", "2", "3"):
        clock.advance(1)
        await progress.save(_record(drama_id))

    assert [r.drama_id for r in await progress.get_continue_watching(limit=2)] == ["3", "2"]
    assert await progress.get_continue_watching(limit=0) == []


@pytest.mark.anyio
async def test_history_is_capped_and_evicts_oldest(progress, clock) -> None:
    for index in range(51):
        clock.advance(1)
        await progress.save(_record(f"d{index}"))

    history = await progress.history()

    assert len(history) == 50
    assert history[0].drama_id == "d50"
    assert all(record.drama_id != "d0" for record in history)


@pytest.mark.anyio
async def test_save_upserts_and_moves_to_front(progress, clock) -> None:
    await progress.save(_record("A", position=10))
    clock.advance(1)
    await progress.save(_record("B"))
    clock.advance(1)
    saved = await progress.save(_record("A", position=50))

    history = await progress.history()

    assert [record.drama_id for record in history] == ["A", "B"]
    assert history[0].position_seconds == 50
    assert saved.last_watched_at.timestamp() == pytest.approx(clock())


@pytest.mark.anyio
async def test_update_progress_without_record_is_noop(progress) -> None:
    assert await progress.update_progress("ghost", 10, 100) is None
    assert await progress.history() == []


@pytest.mark.anyio
async def test_position_is_clamped_to_duration(progress) -> None:
    saved = await progress.save(_record("A", position=150, duration=100))

    assert saved.position_seconds == 100
    assert saved.progress_percent == 100


@pytest.mark.anyio
async def test_status_transitions(progress) -> None:
    assert await progress.status("A") is ProgressState.UNSTARTED

    await progress.save(_record("A", position=30, duration=100))
    assert await progress.status("A") is ProgressState.IN_PROGRESS
    assert (await progress.get("A")).progress_percent == 30


@pytest.mark.anyio
async def test_save_playback_snapshots_drama_fields(progress) -> None:
    drama = Drama(id="9", title="Nine", cover_url="https://img/9.jpg", episode_count=60)
    episode = Episode(drama_id="9", ordinal=4, display_name="EP 5", duration_seconds=90.0)

    record = await progress.save_playback(drama, episode, position_seconds=45)

    assert record.title == "Nine"
    assert record.cover_url == "https://img/9.jpg"
    assert record.total_episodes == 60
    assert record.episode_ordinal == 4
    assert record.episode_name == "EP 5"
    assert record.duration_seconds == 90.0


@pytest.mark.anyio
async def test_remove_and_clear_notify_listeners(progress) -> None:
    changes: list[ProgressChange] = []
    unsubscribe = progress.subscribe(changes.append)

    await progress.save(_record("A"))
    await progress.update_progress("A", 20, 100)
    assert await progress.remove("A") is True
    assert await progress.remove("A") is False
    await progress.clear()
    unsubscribe()
    await progress.save(_record("B"))

    assert [(change.action, change.drama_id) for change in changes] == [
        ("save", "A"),
        ("update", "A"),
        ("remove", "A"),
        ("clear", None),
    ]


@pytest.mark.anyio
async def test_full_storage_evicts_least_recent(clock) -> None:
    store = MemoryKeyValueStore(capacity_bytes=1_024)
    progress = ProgressStore(store, clock=clock)

    for index in range(10):
        clock.advance(1)
        await progress.save(_record(f"drama-{index}"))

    history = await progress.history()

    assert 0 < len(history) < 10
    assert history[0].drama_id == "drama-9"
    ids = [record.drama_id for record in history]
    assert ids == sorted(ids, reverse=True)


@pytest.mark.anyio
async def test_refused_write_keeps_history_and_skips_notification(clock) -> None:
    progress = ProgressStore(MemoryKeyValueStore(capacity_bytes=1_024), clock=clock)
    changes: list[ProgressChange] = []
    progress.subscribe(changes.append)
    await progress.save(_record("A"))
    oversized = _record("B").model_copy(update={"title": "x" * 2_000})

    clock.advance(1)
    await progress.save(oversized)
    clock.advance(1)
    await progress.update_progress("A", 50, 100)

    assert [record.drama_id for record in await progress.history()] == ["A"]
    assert [(change.action, change.drama_id) for change in changes] == [
        ("save", "A"),
        ("update", "A"),
    ]


@pytest.mark.anyio
async def test_history_survives_new_store_instance(clock) -> None:
    store = MemoryKeyValueStore()
    await ProgressStore(store, clock=clock).save(_record("A"))

    reloaded = ProgressStore(store, clock=clock)

    assert (await reloaded.get("A")).title == "Drama A"


@pytest.mark.anyio
async def test_unreadable_entries_are_skipped(clock) -> None:
    store = MemoryKeyValueStore()
    await store.set("progress:history", [{"drama_id": ""}, _record("ok").model_dump(mode="json")])

    progress = ProgressStore(store, clock=clock)

    assert [record.drama_id for record in await progress.history()] == ["ok"]


def test_limit_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ProgressStore(MemoryKeyValueStore(), limit=0)


@pytest.mark.anyio
async def test_finished_episode_leaves_continue_watching_but_stays_in_history(progress) -> None:
    await progress.save(
        ProgressRecord(drama_id="X", episode_ordinal=2, position_seconds=30, duration_seconds=1200)
    )
    assert [r.drama_id for r in await progress.get_continue_watching(10)] == ["X"]

    await progress.save(
        ProgressRecord(drama_id="X", episode_ordinal=2, position_seconds=1180, duration_seconds=1200)
    )

    assert await progress.get_continue_watching(10) == []
    record = await progress.get("X")
    assert record is not None
    assert record.position_seconds == 1180
