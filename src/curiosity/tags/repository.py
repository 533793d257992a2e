"""Tag catalog access."""

import logging
import uuid
from typing import Any

from ..errors import DuplicateTagError, TagNotFound
from ..models import Tag, TagStatistics, now_ms
from ..storage import GraphStoreBase

logger = logging.getLogger(__name__)

WEEK_MS = 7 * 24 * 60 * 60 * 1000


class TagRepository:
    """CRUD and reporting queries over the tag catalog."""

    def __init__(self, store: GraphStoreBase):
        self.store = store

    def create_tag(self, name: str, cluster: str | None = None, is_default: bool = False) -> Tag:
        name = name.strip()
        if not name:
            raise ValueError("Tag name must not be empty")
        if self.store.find_tag_by_name(name):
            raise DuplicateTagError(name)
        tag = Tag(
            id=str(uuid.uuid4()),
            name=name,
            cluster=cluster or None,
            is_default=is_default,
            created_at=now_ms(),
        )
        self.store.insert_tag(tag)
        return tag

    def bulk_create_tags(self, tags: list[dict[str, Any]]) -> list[Tag]:
        """Create tags from dicts with name, cluster and is_default keys."""
        created = [
            self.create_tag(t["name"], t.get("cluster"), t.get("is_default", False))
            for t in tags
        ]
        logger.info(f"Created {len(created)} tag(s)")
        return created

    def update_tag(self, tag_id: str, name: str | None = None, cluster: str | None = None) -> Tag:
        fields: dict[str, Any] = {}
        if name is not None:
            other = self.store.find_tag_by_name(name)
            if other and other.id != tag_id:
                raise DuplicateTagError(name)
            fields["name"] = name.strip()
        if cluster is not None:
            fields["cluster"] = cluster or None
        if not self.store.update_tag(tag_id, fields):
            raise TagNotFound(tag_id)
        return self.require_tag(tag_id)

    def delete_tag(self, tag_id: str) -> bool:
        return self.store.delete_tag(tag_id)

    def get_tag_by_id(self, tag_id: str) -> Tag | None:
        return self.store.get_tag(tag_id)

    def get_tag_by_name(self, name: str) -> Tag | None:
        return self.store.find_tag_by_name(name)

    def require_tag(self, tag_id: str) -> Tag:
        tag = self.store.get_tag(tag_id)
        if tag is None:
            raise TagNotFound(tag_id)
        return tag

    def get_tags_by_ids(self, tag_ids: list[str]) -> list[Tag]:
        return self.store.get_tags(tag_ids)

    def get_all_tags(self) -> list[Tag]:
        return self.store.list_tags()

    def get_default_tags(self) -> list[Tag]:
        return [t for t in self.store.list_tags() if t.is_default]

    def get_tags_by_cluster(self, cluster: str) -> list[Tag]:
        tags = [t for t in self.store.list_tags() if t.cluster == cluster]
        return sorted(tags, key=lambda t: -t.usage_count)

    def search_tags(self, query: str) -> list[Tag]:
        """Case-insensitive substring match on name or category."""
        q = query.lower()
        hits = [
            t for t in self.store.list_tags()
            if q in t.name.lower() or (t.cluster and q in t.cluster.lower())
        ]
        return sorted(hits, key=lambda t: -t.usage_count)

    def get_most_used_tags(self, limit: int = 10) -> list[Tag]:
        return sorted(self.store.list_tags(), key=lambda t: -t.usage_count)[:limit]

    def get_recently_used_tags(self, limit: int = 10) -> list[Tag]:
        used = [t for t in self.store.list_tags() if t.last_used is not None]
        return sorted(used, key=lambda t: -t.last_used)[:limit]

    def get_unused_tags(self) -> list[Tag]:
        return [t for t in self.store.list_tags() if t.usage_count == 0]

    def get_tags_by_usage_range(self, min_usage: int, max_usage: int) -> list[Tag]:
        tags = [t for t in self.store.list_tags() if min_usage <= t.usage_count <= max_usage]
        return sorted(tags, key=lambda t: -t.usage_count)

    def get_tag_statistics(self, tag_id: str, now: int | None = None) -> TagStatistics:
        """Usage of a tag in each of the last four weeks, oldest first."""
        tag = self.require_tag(tag_id)
        now = now if now is not None else now_ms()
        history = self.store.list_history(tag_id)

        usage_by_week = []
        for i in range(4):
            start = now - (i + 1) * WEEK_MS
            end = now - i * WEEK_MS
            usage_by_week.insert(0, sum(1 for e in history if start <= e.used_at < end))

        return TagStatistics(
            tag_id=tag.id,
            tag_name=tag.name,
            total_usage=tag.usage_count,
            last_used=tag.last_used,
            usage_by_week=usage_by_week,
            cluster=tag.cluster,
        )

    def get_cluster_distribution(self) -> dict[str, int]:
        """Tag count per category, largest first."""
        counts: dict[str, int] = {}
        for tag in self.store.list_tags():
            if tag.cluster:
                counts[tag.cluster] = counts.get(tag.cluster, 0) + 1
        return dict(sorted(counts.items(), key=lambda kv: -kv[1]))

    def get_tag_count(self) -> int:
        return len(self.store.list_tags())

    def increment_usage_count_batch(self, tag_ids: list[str], used_at: int | None = None) -> None:
        self.store.increment_tag_usage(tag_ids, used_at if used_at is not None else now_ms())

    def reset_all_usage_counts(self) -> None:
        self.store.reset_tag_usage()
