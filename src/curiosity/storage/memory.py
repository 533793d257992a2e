"""In-process store. Nothing is persisted; useful for tests and dry runs."""

import threading
from dataclasses import replace
from typing import Any

from ..models import (
    ConceptCluster,
    ConceptLink,
    ConceptNode,
    DailyTagSelection,
    Spark,
    Tag,
    TagHistoryEntry,
)
from .base import GraphStoreBase, name_key


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


class MemoryStore(GraphStoreBase):
    """Dict-backed store with the same ordering rules as SQLiteStore.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self.nodes: dict[str, ConceptNode] = {}
        self.links: dict[str, ConceptLink] = {}
        self.clusters: dict[str, ConceptCluster] = {}
        self.tags: dict[str, Tag] = {}
        self.history: list[TagHistoryEntry] = []
        self.daily: dict[str, DailyTagSelection] = {}
        self.sparks: list[Spark] = []

    @staticmethod
    def _copy(record):
        # list fields are the only mutable members
        fields = {k: list(v) for k, v in vars(record).items() if isinstance(v, list)}
        return replace(record, **fields)

    # --- concept nodes ---

    def upsert_concept(self, candidate: ConceptNode, origin_id: str, delta: float) -> ConceptNode:
        key = name_key(candidate.name)
        with self._lock:
            for node in self.nodes.values():
                if name_key(node.name) == key:
                    node.weight = _clamp(node.weight + delta)
                    if origin_id not in node.spark_ids:
                        node.spark_ids.append(origin_id)
                    node.last_updated = candidate.last_updated
                    return self._copy(node)
            self.nodes[candidate.id] = self._copy(candidate)
            return self._copy(candidate)

    def get_concept(self, concept_id: str) -> ConceptNode | None:
        with self._lock:
            node = self.nodes.get(concept_id)
            return self._copy(node) if node else None

    def find_concept_by_name(self, name: str) -> ConceptNode | None:
        key = name_key(name)
        with self._lock:
            for node in self.nodes.values():
                if name_key(node.name) == key:
                    return self._copy(node)
        return None

    def list_concepts(self) -> list[ConceptNode]:
        with self._lock:
            nodes = [self._copy(n) for n in self.nodes.values()]
        nodes.sort(key=lambda n: (-n.weight, n.created_at))
        return nodes

    def delete_concept(self, concept_id: str) -> bool:
        with self._lock:
            removed = self.nodes.pop(concept_id, None) is not None
            for link_id in [l.id for l in self.links.values() if concept_id in (l.concept_a, l.concept_b)]:
                del self.links[link_id]
        return removed

    # --- concept links ---

    def _find_link(self, concept_a: str, concept_b: str) -> ConceptLink | None:
        for link in self.links.values():
            if link.concept_a == concept_a and link.concept_b == concept_b:
                return link
        return None

    def upsert_link(self, candidate: ConceptLink, origin_id: str, delta: float) -> ConceptLink:
        with self._lock:
            link = self._find_link(candidate.concept_a, candidate.concept_b)
            if link:
                link.strength = _clamp(link.strength + delta)
                if origin_id not in link.spark_ids:
                    link.spark_ids.append(origin_id)
                link.last_update = candidate.last_update
                return self._copy(link)
            self.links[candidate.id] = self._copy(candidate)
            return self._copy(candidate)

    def get_link(self, link_id: str) -> ConceptLink | None:
        with self._lock:
            link = self.links.get(link_id)
            return self._copy(link) if link else None

    def find_link(self, concept_a: str, concept_b: str) -> ConceptLink | None:
        with self._lock:
            link = self._find_link(concept_a, concept_b)
            return self._copy(link) if link else None

    def _sorted_links(self, keep) -> list[ConceptLink]:
        with self._lock:
            links = [self._copy(l) for l in self.links.values() if keep(l)]
        links.sort(key=lambda l: -l.strength)
        return links

    def list_links(self) -> list[ConceptLink]:
        return self._sorted_links(lambda l: True)

    def links_for_concept(self, concept_id: str) -> list[ConceptLink]:
        return self._sorted_links(lambda l: concept_id in (l.concept_a, l.concept_b))

    def links_above(self, threshold: float) -> list[ConceptLink]:
        return self._sorted_links(lambda l: l.strength >= threshold)

    def most_connected_concepts(self, limit: int) -> list[tuple[ConceptNode, int]]:
        with self._lock:
            degree = {node_id: 0 for node_id in self.nodes}
            for link in self.links.values():
                for end in (link.concept_a, link.concept_b):
                    if end in degree:
                        degree[end] += 1
            ranked = [(self._copy(n), degree[n.id]) for n in self.nodes.values()]
        ranked.sort(key=lambda pair: (-pair[1], -pair[0].weight))
        return ranked[:limit]

    def delete_link(self, link_id: str) -> bool:
        with self._lock:
            return self.links.pop(link_id, None) is not None

    # --- concept clusters ---

    def upsert_cluster(self, cluster: ConceptCluster) -> ConceptCluster:
        with self._lock:
            for stored in self.clusters.values():
                if stored.name == cluster.name:
                    stored.concepts = list(cluster.concepts)
                    stored.coherence = cluster.coherence
                    stored.spark_count = cluster.spark_count
                    stored.last_updated = cluster.last_updated
                    return self._copy(stored)
            self.clusters[cluster.id] = self._copy(cluster)
            return self._copy(cluster)

    def get_cluster(self, cluster_id: str) -> ConceptCluster | None:
        with self._lock:
            cluster = self.clusters.get(cluster_id)
            return self._copy(cluster) if cluster else None

    def find_cluster_by_name(self, name: str) -> ConceptCluster | None:
        with self._lock:
            for cluster in self.clusters.values():
                if cluster.name == name:
                    return self._copy(cluster)
        return None

    def list_clusters(self) -> list[ConceptCluster]:
        with self._lock:
            clusters = [self._copy(c) for c in self.clusters.values()]
        clusters.sort(key=lambda c: (-c.coherence, -c.spark_count))
        return clusters

    def delete_cluster(self, cluster_id: str) -> bool:
        with self._lock:
            return self.clusters.pop(cluster_id, None) is not None

    def reset_graph(self) -> None:
        with self._lock:
            self.nodes.clear()
            self.links.clear()
            self.clusters.clear()

    # --- tags ---

    def insert_tag(self, tag: Tag) -> None:
        with self._lock:
            key = name_key(tag.name)
            if any(name_key(t.name) == key for t in self.tags.values()):
                raise ValueError(f"UNIQUE constraint failed: tags.name_key ({tag.name})")
            self.tags[tag.id] = self._copy(tag)

    def get_tag(self, tag_id: str) -> Tag | None:
        with self._lock:
            tag = self.tags.get(tag_id)
            return self._copy(tag) if tag else None

    def get_tags(self, tag_ids: list[str]) -> list[Tag]:
        with self._lock:
            return [self._copy(self.tags[i]) for i in dict.fromkeys(tag_ids) if i in self.tags]

    def find_tag_by_name(self, name: str) -> Tag | None:
        key = name_key(name)
        with self._lock:
            for tag in self.tags.values():
                if name_key(tag.name) == key:
                    return self._copy(tag)
        return None

    def list_tags(self) -> list[Tag]:
        with self._lock:
            tags = [self._copy(t) for t in self.tags.values()]
        tags.sort(key=lambda t: t.name)
        return tags

    def update_tag(self, tag_id: str, fields: dict[str, Any]) -> bool:
        with self._lock:
            tag = self.tags.get(tag_id)
            if tag is None:
                return False
            for key in ("name", "cluster"):
                if key in fields:
                    setattr(tag, key, fields[key])
            return True

    def delete_tag(self, tag_id: str) -> bool:
        with self._lock:
            return self.tags.pop(tag_id, None) is not None

    def increment_tag_usage(self, tag_ids: list[str], used_at: int) -> None:
        with self._lock:
            for tag_id in set(tag_ids):
                tag = self.tags.get(tag_id)
                if tag:
                    tag.usage_count += 1
                    tag.last_used = used_at

    def reset_tag_usage(self) -> None:
        with self._lock:
            for tag in self.tags.values():
                tag.usage_count = 0
                tag.last_used = None

    # --- tag history ---

    def insert_history(self, entries: list[TagHistoryEntry]) -> None:
        with self._lock:
            self.history.extend(self._copy(e) for e in entries)

    def history_counts(self, start: int, end: int) -> list[tuple[str, int]]:
        counts: dict[str, int] = {}
        with self._lock:
            for entry in self.history:
                if start <= entry.used_at < end:
                    counts[entry.tag_id] = counts.get(entry.tag_id, 0) + 1
        return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))

    def tag_ids_used_since(self, since: int) -> set[str]:
        with self._lock:
            return {e.tag_id for e in self.history if e.used_at >= since}

    def list_history(self, tag_id: str | None = None) -> list[TagHistoryEntry]:
        with self._lock:
            rows = [
                (i, self._copy(e)) for i, e in enumerate(self.history)
                if tag_id is None or e.tag_id == tag_id
            ]
        rows.sort(key=lambda pair: (-pair[1].used_at, -pair[0]))
        return [e for _, e in rows]

    def delete_history(self, tag_ids: list[str] | None = None) -> int:
        with self._lock:
            before = len(self.history)
            if tag_ids is None:
                self.history.clear()
            else:
                drop = set(tag_ids)
                self.history = [e for e in self.history if e.tag_id not in drop]
            return before - len(self.history)

    # --- daily selections ---

    def get_daily(self, date: str) -> DailyTagSelection | None:
        with self._lock:
            selection = self.daily.get(date)
            return self._copy(selection) if selection else None

    def insert_daily(self, selection: DailyTagSelection) -> None:
        with self._lock:
            if selection.date in self.daily:
                raise ValueError(f"UNIQUE constraint failed: daily_tag_selections.date ({selection.date})")
            self.daily[selection.date] = self._copy(selection)

    def update_daily(self, date: str, tag_ids: list[str], is_manually_edited: bool) -> bool:
        with self._lock:
            selection = self.daily.get(date)
            if selection is None:
                return False
            selection.tags = list(tag_ids)
            selection.is_manually_edited = is_manually_edited
            return True

    def delete_daily(self, date: str) -> bool:
        with self._lock:
            return self.daily.pop(date, None) is not None

    # --- sparks ---

    def insert_spark(self, spark: Spark) -> None:
        with self._lock:
            self.sparks = [s for s in self.sparks if s.id != spark.id]
            self.sparks.append(self._copy(spark))

    def recent_spark_tags(self, mode: int, limit: int) -> list[list[str]]:
        with self._lock:
            ordered = [(i, s) for i, s in enumerate(self.sparks) if s.mode == mode]
        ordered.sort(key=lambda pair: (-pair[1].created_at, -pair[0]))
        return [list(s.tags) for _, s in ordered[:limit]]

    # --- misc ---

    def counts(self) -> dict[str, int]:
        with self._lock:
            return {
                "concept_nodes": len(self.nodes),
                "concept_links": len(self.links),
                "concept_clusters": len(self.clusters),
                "tags": len(self.tags),
                "tag_history": len(self.history),
                "daily_tag_selections": len(self.daily),
                "sparks": len(self.sparks),
            }
