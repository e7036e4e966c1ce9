from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from app.models import CdnGroup, Drama, Episode, ProgressRecord, StreamVariant


def test_drama_is_immutable() -> None:
    drama = Drama(id="1", title="Hidden Heiress")
    with pytest.raises(ValidationError):
        drama.title = "Changed"  # type: ignore[misc]


def test_drama_requires_identifier() -> None:
    with pytest.raises(ValidationError):
        Drama(id="")


def test_display_title_falls_back_to_id() -> None:
    assert Drama(id="41000102").display_title() == "41000102"


def test_cdn_group_rejects_duplicate_quality() -> None:
    with pytest.raises(ValidationError, match="more than once"):
        CdnGroup(
            cdn_id="a",
            variants=(
                StreamVariant(cdn_id="a", quality=720, url="https://a/1.mp4"),
                StreamVariant(cdn_id="a", quality=720, url="https://a/2.mp4"),
            ),
        )


def test_episode_without_variants_is_unplayable() -> None:
    episode = Episode(drama_id="1", ordinal=0, display_name="Episode 1")
    assert episode.is_playable is False


def test_progress_position_is_clamped_to_duration() -> None:
    record = ProgressRecord(
        drama_id="X",
        position_seconds=1300,
        duration_seconds=1200,
        last_watched_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )

    assert record.position_seconds == 1200
    assert record.completion_ratio == 1.0
    assert record.progress_percent == 100


def test_progress_percent_without_duration_is_zero() -> None:
    record = ProgressRecord(drama_id="X", position_seconds=30)
    assert record.progress_percent == 0
