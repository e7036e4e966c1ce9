from __future__ import annotations

from app.models import CdnGroup, Episode, StreamVariant
from app.services.stream_selector import (
    available_qualities,
    select_best_url,
    select_cdn_group,
    select_variant,
)


def _variant(cdn: str, quality, *, default: bool = False) -> StreamVariant:
    return StreamVariant(
        cdn_id=cdn, quality=quality, is_default=default, url=f"https://{cdn}/{quality}.mp4"
    )


def _episode(*groups: CdnGroup, video_url: str | None = None) -> Episode:
    return Episode(
        drama_id="1",
        ordinal=0,
        display_name="Episode 1",
        video_url=video_url,
        cdn_groups=groups,
    )


STANDARD = CdnGroup(
    cdn_id="a",
    is_default=True,
    variants=(_variant("a", 480), _variant("a", 720, default=True), _variant("a", 1080)),
)


def test_ladder_prefers_1080() -> None:
    assert select_best_url(_episode(STANDARD)) == "https://a/1080.mp4"


def test_preferred_quality_wins_when_available() -> None:
    assert select_best_url(_episode(STANDARD), 480) == "https://a/480.mp4"


def test_missing_preferred_quality_falls_back_to_ladder() -> None:
    assert select_best_url(_episode(STANDARD), 360) == "https://a/1080.mp4"


def test_default_variant_used_when_no_ladder_rung_matches() -> None:
    group = CdnGroup(
        cdn_id="b",
        variants=(_variant("b", 360), _variant("b", 240, default=True)),
    )

    assert select_best_url(_episode(group)) == "https://b/240.mp4"


def test_highest_quality_used_as_last_resort() -> None:
    group = CdnGroup(
        cdn_id="c",
        variants=(_variant("c", "default"), _variant("c", 360), _variant("c", 540)),
    )

    assert select_variant(_episode(group)).quality == 540


def test_default_cdn_group_is_selected() -> None:
    other = CdnGroup(cdn_id="z", variants=(_variant("z", 1080),))
    episode = _episode(other, STANDARD)

    assert select_cdn_group(episode).cdn_id == "a"
    assert select_best_url(episode) == "https://a/1080.mp4"


def test_first_group_used_without_default_flag() -> None:
    first = CdnGroup(cdn_id="x", variants=(_variant("x", 720),))
    second = CdnGroup(cdn_id="y", variants=(_variant("y", 1080),))

    assert select_best_url(_episode(first, second)) == "https://x/720.mp4"


def test_custom_ladder() -> None:
    assert select_best_url(_episode(STANDARD), ladder=(720, 1080)) == "https://a/720.mp4"


def test_direct_url_beats_cdn_variants() -> None:
    episode = _episode(STANDARD, video_url="https://direct/ep1.m3u8")

    assert select_best_url(episode, 480) == "https://direct/ep1.m3u8"


def test_unplayable_episode_returns_none() -> None:
    assert select_best_url(_episode()) is None
    assert select_best_url(_episode(CdnGroup(cdn_id="empty"))) is None


def test_available_qualities_are_sorted_descending() -> None:
    assert available_qualities(_episode(STANDARD)) == [1080, 720, 480]
    assert available_qualities(_episode()) == []
