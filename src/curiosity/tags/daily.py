"""Per-day tag slate: generated once per calendar date, editable by hand."""

import logging
import uuid
from datetime import date
from typing import Any

from ..config import load_default_tags
from ..errors import DailySelectionNotFound, TagNotFound
from ..models import MODE_DEEP_DIVE, MODE_QUICK, MODE_THREAD, DailyTagSelection, Spark, Tag, now_ms
from ..storage import GraphStoreBase
from .randomizer import AdaptiveRandomizer
from .repository import TagRepository

logger = logging.getLogger(__name__)


def today_string() -> str:
    """Local calendar date as YYYY-MM-DD."""
    return date.today().isoformat()


class DailyTagService:
    """Generates, stores and edits the daily tag selection."""

    def __init__(
        self,
        store: GraphStoreBase,
        repository: TagRepository,
        randomizer: AdaptiveRandomizer,
    ):
        self.store = store
        self.repository = repository
        self.randomizer = randomizer

    def initialize_default_tags(self, tags: list[dict[str, Any]] | None = None) -> list[Tag]:
        """Seed the catalog if it is empty. Returns the tags created."""
        if self.repository.get_tag_count() > 0:
            logger.info("Tags already initialized")
            return []
        tags = tags if tags is not None else load_default_tags()
        created = self.repository.bulk_create_tags(tags)
        logger.info(f"Initialized {len(created)} default tags")
        return created

    def get_daily_tags(self, day: str | None = None) -> DailyTagSelection | None:
        return self.store.get_daily(day or today_string())

    def generate_daily_tags(
        self,
        force: bool = False,
        day: str | None = None,
        count: int | None = None,
    ) -> DailyTagSelection:
        """Return the day's selection, generating it if needed.

        With force=True an existing selection is replaced. Usage counts and
        history are updated for the chosen tags, each history row carrying
        the strategy that picked that tag.
        """
        day = day or today_string()
        existing = self.store.get_daily(day)
        if existing and not force:
            logger.info(f"Daily tags already generated for {day}")
            return existing

        now = now_ms()
        picks = self.randomizer.select_daily_picks(count, now=now)
        tag_ids = [p.tag.id for p in picks]

        self.repository.increment_usage_count_batch(tag_ids, now)

        if existing:
            self.store.delete_daily(day)

        selection = DailyTagSelection(
            id=str(uuid.uuid4()),
            date=day,
            tags=tag_ids,
            is_manually_edited=False,
            created_at=now,
        )
        self.store.insert_daily(selection)
        self.randomizer.record_picks(picks, now)

        logger.info(f"Daily tags generated for {day}: {[p.tag.name for p in picks]}")
        return selection

    def update_daily_tags(self, tag_ids: list[str], day: str | None = None) -> DailyTagSelection:
        """Replace the day's tags by hand. The sampler is not involved."""
        day = day or today_string()
        existing = self.store.get_daily(day)
        if existing is None:
            raise DailySelectionNotFound(day)

        tag_ids = list(dict.fromkeys(tag_ids))
        known = {t.id for t in self.repository.get_tags_by_ids(tag_ids)}
        for tag_id in tag_ids:
            if tag_id not in known:
                raise TagNotFound(tag_id)

        self.store.update_daily(day, tag_ids, is_manually_edited=True)
        existing.tags = tag_ids
        existing.is_manually_edited = True
        return existing

    def record_spark(
        self,
        spark_id: str,
        tag_ids: list[str],
        mode: int = MODE_QUICK,
        text: str = "",
        created_at: int | None = None,
    ) -> Spark:
        """Store a generated content item with the tags it came from.

        The tags of the most recent deep-dive sparks feed the deep-dive
        strategy of later selections.

        Raises:
            TagNotFound: for an unknown tag id.
            ValueError: for an unknown mode.
        """
        if mode not in (MODE_QUICK, MODE_DEEP_DIVE, MODE_THREAD):
            raise ValueError(f"Unknown spark mode: {mode}")
        tag_ids = list(dict.fromkeys(tag_ids))
        known = {t.id for t in self.repository.get_tags_by_ids(tag_ids)}
        for tag_id in tag_ids:
            if tag_id not in known:
                raise TagNotFound(tag_id)

        spark = Spark(
            id=spark_id,
            text=text,
            tags=tag_ids,
            mode=mode,
            created_at=created_at if created_at is not None else now_ms(),
        )
        self.store.insert_spark(spark)
        logger.debug(f"Recorded spark {spark_id} (mode {mode}) with {len(tag_ids)} tag(s)")
        return spark

    def get_todays_tags(self) -> list[Tag]:
        selection = self.get_daily_tags() or self.generate_daily_tags()
        return self.repository.get_tags_by_ids(selection.tags)

    def should_refresh_daily_tags(self, day: str | None = None) -> bool:
        return self.get_daily_tags(day) is None

    def reset_tag_usage(self) -> None:
        """Zero usage counts and clear the usage history."""
        self.repository.reset_all_usage_counts()
        self.store.delete_history()
        logger.info("All tag usage data reset")
