"""Adaptive daily tag sampler.

A daily slate is split across four strategies by fixed weights:

- history:   tags used most in the 7..3 days before now (recent days skipped)
- wildcard:  one tag from each of several categories not touched this week
- deep-dive: tags of the most recent deep-dive sparks
- random:    uniform sample of whatever is left

Floors are taken for the first three buckets; the random bucket takes the
remainder. Strategies run in that order and never pick a tag twice.
"""

import logging
import math
import random
import uuid
from typing import Any

from ..errors import NoTagsAvailable
from ..models import (
    DEEP_DIVE,
    HISTORY,
    MODE_DEEP_DIVE,
    RANDOM,
    STRATEGIES,
    WILDCARD,
    Tag,
    TagHistoryEntry,
    TagPick,
    now_ms,
)
from ..storage import GraphStoreBase

logger = logging.getLogger(__name__)

DAY_MS = 24 * 60 * 60 * 1000


class AdaptiveRandomizer:
    """Picks the daily tag slate."""

    def __init__(
        self,
        store: GraphStoreBase,
        config: dict[str, Any] | None = None,
        rng: random.Random | None = None,
    ):
        self.store = store
        self.rng = rng or random.Random()
        tags_cfg = (config or {}).get("tags", {})
        weights = tags_cfg.get("weights", {})
        self.history_weight = weights.get(HISTORY, 0.4)
        self.wildcard_weight = weights.get(WILDCARD, 0.3)
        self.deep_dive_weight = weights.get(DEEP_DIVE, 0.2)
        self.per_day = tags_cfg.get("per_day", 5)
        self.history_lookback_days = tags_cfg.get("history_lookback_days", 7)
        self.avoid_repetition_days = tags_cfg.get("avoid_repetition_days", 3)
        self.wildcard_lookback_days = tags_cfg.get("wildcard_lookback_days", 7)
        self.deep_dive_recent = tags_cfg.get("deep_dive_recent", 10)

    def strategy_counts(self, count: int) -> dict[str, int]:
        """Split count across strategies; random absorbs the rounding loss."""
        if count < 0:
            raise ValueError(f"count must be >= 0, got {count}")
        # epsilon absorbs float error in count * weight
        history = math.floor(count * self.history_weight + 1e-9)
        wildcard = math.floor(count * self.wildcard_weight + 1e-9)
        deep_dive = math.floor(count * self.deep_dive_weight + 1e-9)
        return {
            HISTORY: history,
            WILDCARD: wildcard,
            DEEP_DIVE: deep_dive,
            RANDOM: count - history - wildcard - deep_dive,
        }

    def select_daily_picks(self, count: int | None = None, now: int | None = None) -> list[TagPick]:
        """Select a shuffled slate, keeping the strategy behind each tag.

        Raises:
            NoTagsAvailable: if the catalog is empty.
        """
        count = self.per_day if count is None else count
        now = now if now is not None else now_ms()

        all_tags = self.store.list_tags()
        if not all_tags:
            raise NoTagsAvailable()

        split = self.strategy_counts(count)
        picks: list[TagPick] = []
        used: set[str] = set()

        def take(batch: list[TagPick]) -> None:
            picks.extend(batch)
            used.update(p.tag.id for p in batch)

        take(self._label(self._select_from_history(split[HISTORY], all_tags, used, now), HISTORY))
        take(self._select_wildcard(split[WILDCARD], all_tags, used, now))
        take(self._select_from_deep_dive(split[DEEP_DIVE], all_tags, used))
        # Also covers any shortfall of the earlier buckets
        take(self._label(self._select_random(count - len(picks), all_tags, used), RANDOM))

        self.rng.shuffle(picks)
        logger.debug(f"Selected {len(picks)} tag(s) with split {split}")
        return picks

    def select_daily_tags(self, count: int | None = None, now: int | None = None) -> list[Tag]:
        """Select a shuffled slate of `count` distinct tags."""
        return [p.tag for p in self.select_daily_picks(count, now)]

    @staticmethod
    def _label(tags: list[Tag], strategy: str) -> list[TagPick]:
        return [TagPick(tag=t, strategy=strategy) for t in tags]

    def _select_from_history(self, n: int, all_tags: list[Tag], exclude: set[str], now: int) -> list[Tag]:
        if n <= 0:
            return []
        start = now - self.history_lookback_days * DAY_MS
        end = now - self.avoid_repetition_days * DAY_MS
        by_id = {t.id: t for t in all_tags}
        ranked = [
            by_id[tag_id] for tag_id, _ in self.store.history_counts(start, end)
            if tag_id in by_id and tag_id not in exclude
        ]
        return ranked[:n]

    def _select_wildcard(self, n: int, all_tags: list[Tag], exclude: set[str], now: int) -> list[TagPick]:
        if n <= 0:
            return []
        recent = self._recent_categories(now)
        groups: dict[str, list[Tag]] = {}
        for tag in all_tags:
            if tag.id in exclude or not tag.cluster or tag.cluster in recent:
                continue
            groups.setdefault(tag.cluster, []).append(tag)

        if not groups:
            return self._label(self._select_random(n, all_tags, exclude), RANDOM)

        categories = list(groups)
        self.rng.shuffle(categories)
        return self._label([self.rng.choice(groups[c]) for c in categories[:n]], WILDCARD)

    def _select_from_deep_dive(self, n: int, all_tags: list[Tag], exclude: set[str]) -> list[TagPick]:
        if n <= 0:
            return []
        deep_ids = {
            tag_id
            for tag_ids in self.store.recent_spark_tags(MODE_DEEP_DIVE, self.deep_dive_recent)
            for tag_id in tag_ids
        }
        eligible = [t for t in all_tags if t.id in deep_ids and t.id not in exclude]
        if not eligible:
            return self._label(self._select_random(n, all_tags, exclude), RANDOM)
        return self._label(eligible[:n], DEEP_DIVE)

    def _select_random(self, n: int, all_tags: list[Tag], exclude: set[str]) -> list[Tag]:
        if n <= 0:
            return []
        eligible = [t for t in all_tags if t.id not in exclude]
        return self.rng.sample(eligible, min(n, len(eligible)))

    def _recent_categories(self, now: int) -> set[str]:
        """Categories of tags used within the wildcard lookback window."""
        since = now - self.wildcard_lookback_days * DAY_MS
        tag_ids = self.store.tag_ids_used_since(since)
        if not tag_ids:
            return set()
        return {t.cluster for t in self.store.get_tags(sorted(tag_ids)) if t.cluster}

    def record_tag_usage(self, tag_ids: list[str], strategy: str, used_at: int | None = None) -> None:
        """Append one history row per tag, all labelled with `strategy`."""
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown strategy: {strategy}")
        used_at = used_at if used_at is not None else now_ms()
        self.store.insert_history([
            TagHistoryEntry(id=str(uuid.uuid4()), tag_id=tag_id, used_at=used_at, strategy=strategy)
            for tag_id in tag_ids
        ])

    def record_picks(self, picks: list[TagPick], used_at: int | None = None) -> None:
        """Record usage with each tag's own strategy."""
        used_at = used_at if used_at is not None else now_ms()
        by_strategy: dict[str, list[str]] = {}
        for pick in picks:
            by_strategy.setdefault(pick.strategy, []).append(pick.tag.id)
        for strategy, tag_ids in by_strategy.items():
            self.record_tag_usage(tag_ids, strategy, used_at)
