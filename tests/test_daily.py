"""Tests for the per-day tag selection service."""

import random
import tempfile
from collections import Counter
from pathlib import Path

import pytest

from curiosity.config import copy_defaults, load_default_tags
from curiosity.errors import DailySelectionNotFound, NoTagsAvailable, TagNotFound
from curiosity.models import DEEP_DIVE, HISTORY, MODE_DEEP_DIVE, RANDOM, STRATEGIES, WILDCARD
from curiosity.services import build_services
from curiosity.storage.memory import MemoryStore
from curiosity.storage.sqlite import SQLiteStore

DAY = "2026-03-14"


def _services(store=None):
    services = build_services(copy_defaults(), store=store or MemoryStore(), rng=random.Random(3))
    services.daily.initialize_default_tags()
    return services


def test_default_catalog_loads():
    tags = load_default_tags()
    assert len(tags) > 50
    assert all(t["cluster"] and t["is_default"] for t in tags)
    assert len({t["name"].lower() for t in tags}) == len(tags)


def test_initialize_default_tags_only_once():
    services = _services()
    count = services.tags.get_tag_count()

    assert count == len(load_default_tags())
    assert services.daily.initialize_default_tags() == []
    assert services.tags.get_tag_count() == count


def test_initialize_with_custom_tags():
    services = build_services(copy_defaults(), store=MemoryStore())
    created = services.daily.initialize_default_tags([{"name": "Jazz", "cluster": "music"}])
    assert [t.name for t in created] == ["Jazz"]


def test_generate_is_idempotent_per_day():
    services = _services()

    first = services.daily.generate_daily_tags(day=DAY)
    second = services.daily.generate_daily_tags(day=DAY)

    assert second.id == first.id
    assert second.tags == first.tags
    assert len(first.tags) == 5
    assert not first.is_manually_edited
    usage = {t.id: t.usage_count for t in services.tags.get_tags_by_ids(first.tags)}
    assert set(usage.values()) == {1}
    assert len(services.store.list_history()) == 5


def test_generate_records_strategy_per_tag():
    services = _services()

    selection = services.daily.generate_daily_tags(day=DAY)

    history = services.store.list_history()
    assert sorted(e.tag_id for e in history) == sorted(selection.tags)
    assert all(e.strategy in STRATEGIES for e in history)
    assert all(e.used_at == selection.created_at for e in history)
    assert Counter(e.strategy for e in history) == {WILDCARD: 1, RANDOM: 4}


def test_force_replaces_selection():
    services = _services()
    first = services.daily.generate_daily_tags(day=DAY)

    forced = services.daily.generate_daily_tags(force=True, day=DAY, count=3)

    assert forced.id != first.id
    assert len(forced.tags) == 3
    assert services.daily.get_daily_tags(DAY).id == forced.id
    assert len(services.store.list_history()) == 8


def test_generate_without_tags_raises():
    services = build_services(copy_defaults(), store=MemoryStore())
    with pytest.raises(NoTagsAvailable):
        services.daily.generate_daily_tags(day=DAY)
    assert services.daily.get_daily_tags(DAY) is None


def test_manual_edit():
    services = _services()
    services.daily.generate_daily_tags(day=DAY)
    chosen = [t.id for t in services.tags.get_all_tags()[:2]]

    edited = services.daily.update_daily_tags(chosen + [chosen[0]], day=DAY)

    assert edited.tags == chosen
    assert edited.is_manually_edited
    stored = services.daily.get_daily_tags(DAY)
    assert stored.tags == chosen
    assert stored.is_manually_edited

    # regenerating without force keeps the edit
    assert services.daily.generate_daily_tags(day=DAY).tags == chosen


def test_manual_edit_errors():
    services = _services()
    with pytest.raises(DailySelectionNotFound):
        services.daily.update_daily_tags([], day=DAY)

    services.daily.generate_daily_tags(day=DAY)
    with pytest.raises(TagNotFound):
        services.daily.update_daily_tags(["no-such-tag"], day=DAY)


def test_should_refresh_and_todays_tags():
    services = _services()
    assert services.daily.should_refresh_daily_tags()

    tags = services.daily.get_todays_tags()

    assert len(tags) == 5
    assert not services.daily.should_refresh_daily_tags()
    assert [t.id for t in services.daily.get_todays_tags()] == [t.id for t in tags]


def test_reset_tag_usage():
    services = _services()
    services.daily.generate_daily_tags(day=DAY)

    services.daily.reset_tag_usage()

    assert all(t.usage_count == 0 and t.last_used is None for t in services.tags.get_all_tags())
    assert services.store.list_history() == []
    assert services.daily.get_daily_tags(DAY) is not None


def test_daily_flow_on_sqlite():
    with tempfile.TemporaryDirectory() as tmpdir:
        db = str(Path(tmpdir) / "engine.db")
        services = _services(SQLiteStore(db))
        selection = services.daily.generate_daily_tags(day=DAY)
        services.close()

        reopened = build_services(copy_defaults(), store=SQLiteStore(db))
        stored = reopened.daily.get_daily_tags(DAY)
        assert stored.id == selection.id
        assert stored.tags == selection.tags
        assert reopened.daily.initialize_default_tags() == []
        reopened.close()


def test_recorded_deep_dive_spark_feeds_next_selection():
    config = copy_defaults()
    config["tags"]["weights"] = {HISTORY: 0.0, WILDCARD: 0.0, DEEP_DIVE: 1.0}
    services = build_services(config, store=MemoryStore(), rng=random.Random(3))
    services.daily.initialize_default_tags()
    chosen = [t.id for t in services.tags.get_all_tags()[:2]]

    spark = services.daily.record_spark("s1", chosen + chosen[:1], mode=MODE_DEEP_DIVE, text="tides")
    assert spark.tags == chosen

    services.daily.generate_daily_tags(day=DAY, count=2)

    history = services.store.list_history()
    assert sorted(e.tag_id for e in history) == sorted(chosen)
    assert {e.strategy for e in history} == {DEEP_DIVE}


def test_record_spark_validates_tags_and_mode():
    services = _services()
    tag = services.tags.get_all_tags()[0]

    with pytest.raises(TagNotFound):
        services.daily.record_spark("s1", [tag.id, "missing"])
    with pytest.raises(ValueError):
        services.daily.record_spark("s1", [tag.id], mode=7)
    assert services.store.counts()["sparks"] == 0

    services.daily.record_spark("s1", [tag.id])
    services.daily.record_spark("s1", [tag.id], mode=MODE_DEEP_DIVE)
    assert services.store.counts()["sparks"] == 1
