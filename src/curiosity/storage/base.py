"""Abstract base class for graph/tag stores and factory function."""

from abc import ABC, abstractmethod
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


def name_key(name: str) -> str:
    """Case-insensitive lookup key for concept and tag names."""
    return name.strip().casefold()


class GraphStoreBase(ABC):
    """Common interface for persistence backends.

    List-valued fields (spark ids, cluster members, tag ids) always come back
    as lists, never None. Weight and strength increments are applied by the
    store in a single step so concurrent callers cannot lose an update.
    """

    # --- concept nodes ---

    @abstractmethod
    def upsert_concept(self, candidate: ConceptNode, origin_id: str, delta: float) -> ConceptNode:
        """Insert candidate, or if a node with the same name key exists, add
        delta to its weight (clamped to [0, 1]) and append origin_id to its
        spark ids. Returns the stored node."""

    @abstractmethod
    def get_concept(self, concept_id: str) -> ConceptNode | None:
        """Get a node by id."""

    @abstractmethod
    def find_concept_by_name(self, name: str) -> ConceptNode | None:
        """Case-insensitive lookup by name."""

    @abstractmethod
    def list_concepts(self) -> list[ConceptNode]:
        """All nodes, heaviest first."""

    @abstractmethod
    def delete_concept(self, concept_id: str) -> bool:
        """Delete a node and every link touching it."""

    # --- concept links ---

    @abstractmethod
    def upsert_link(self, candidate: ConceptLink, origin_id: str, delta: float) -> ConceptLink:
        """Insert candidate, or if the (concept_a, concept_b) pair exists, add
        delta to its strength (clamped to [0, 1]) and append origin_id."""

    @abstractmethod
    def get_link(self, link_id: str) -> ConceptLink | None:
        """Get a link by id."""

    @abstractmethod
    def find_link(self, concept_a: str, concept_b: str) -> ConceptLink | None:
        """Get the link for an already canonical (a < b) pair."""

    @abstractmethod
    def list_links(self) -> list[ConceptLink]:
        """All links, strongest first."""

    @abstractmethod
    def links_for_concept(self, concept_id: str) -> list[ConceptLink]:
        """Links incident to a node, strongest first."""

    @abstractmethod
    def links_above(self, threshold: float) -> list[ConceptLink]:
        """Links with strength >= threshold, strongest first."""

    @abstractmethod
    def most_connected_concepts(self, limit: int) -> list[tuple[ConceptNode, int]]:
        """Nodes with their incident link count, by count then weight."""

    @abstractmethod
    def delete_link(self, link_id: str) -> bool:
        """Delete a link by id."""

    # --- concept clusters ---

    @abstractmethod
    def upsert_cluster(self, cluster: ConceptCluster) -> ConceptCluster:
        """Insert, or overwrite members/scores of the cluster with the same name.
        The stored id is kept on overwrite."""

    @abstractmethod
    def get_cluster(self, cluster_id: str) -> ConceptCluster | None:
        """Get a cluster by id."""

    @abstractmethod
    def find_cluster_by_name(self, name: str) -> ConceptCluster | None:
        """Exact-name lookup."""

    @abstractmethod
    def list_clusters(self) -> list[ConceptCluster]:
        """All clusters by coherence, then spark count, descending."""

    @abstractmethod
    def delete_cluster(self, cluster_id: str) -> bool:
        """Delete a cluster by id."""

    @abstractmethod
    def reset_graph(self) -> None:
        """Delete all nodes, links and clusters."""

    # --- tags ---

    @abstractmethod
    def insert_tag(self, tag: Tag) -> None:
        """Insert a tag. Names are unique."""

    @abstractmethod
    def get_tag(self, tag_id: str) -> Tag | None:
        """Get a tag by id."""

    @abstractmethod
    def get_tags(self, tag_ids: list[str]) -> list[Tag]:
        """Get the tags that exist among tag_ids, in the order given."""

    @abstractmethod
    def find_tag_by_name(self, name: str) -> Tag | None:
        """Case-insensitive lookup by name."""

    @abstractmethod
    def list_tags(self) -> list[Tag]:
        """All tags ordered by name."""

    @abstractmethod
    def update_tag(self, tag_id: str, fields: dict[str, Any]) -> bool:
        """Update name and/or cluster of a tag."""

    @abstractmethod
    def delete_tag(self, tag_id: str) -> bool:
        """Delete a tag by id."""

    @abstractmethod
    def increment_tag_usage(self, tag_ids: list[str], used_at: int) -> None:
        """Add one to usage_count and set last_used for each tag."""

    @abstractmethod
    def reset_tag_usage(self) -> None:
        """Zero every usage count and clear last_used."""

    # --- tag history ---

    @abstractmethod
    def insert_history(self, entries: list[TagHistoryEntry]) -> None:
        """Append usage rows."""

    @abstractmethod
    def history_counts(self, start: int, end: int) -> list[tuple[str, int]]:
        """(tag_id, uses) for rows with start <= used_at < end, most used first."""

    @abstractmethod
    def tag_ids_used_since(self, since: int) -> set[str]:
        """Distinct tag ids with a history row at or after since."""

    @abstractmethod
    def list_history(self, tag_id: str | None = None) -> list[TagHistoryEntry]:
        """History rows, newest first, optionally for one tag."""

    @abstractmethod
    def delete_history(self, tag_ids: list[str] | None = None) -> int:
        """Delete history rows for the given tags, or all rows if None."""

    # --- daily selections ---

    @abstractmethod
    def get_daily(self, date: str) -> DailyTagSelection | None:
        """Get the selection for a YYYY-MM-DD date."""

    @abstractmethod
    def insert_daily(self, selection: DailyTagSelection) -> None:
        """Insert a selection. Dates are unique."""

    @abstractmethod
    def update_daily(self, date: str, tag_ids: list[str], is_manually_edited: bool) -> bool:
        """Overwrite the tag list of a date's selection."""

    @abstractmethod
    def delete_daily(self, date: str) -> bool:
        """Delete a date's selection."""

    # --- sparks ---

    @abstractmethod
    def insert_spark(self, spark: Spark) -> None:
        """Record a generated content item, replacing one with the same id."""

    @abstractmethod
    def recent_spark_tags(self, mode: int, limit: int) -> list[list[str]]:
        """Tag id lists of the newest sparks of a mode, newest first."""

    # --- misc ---

    @abstractmethod
    def counts(self) -> dict[str, int]:
        """Record count per kind."""

    def close(self) -> None:
        """Release backend resources."""


def get_store(config: dict[str, Any]) -> GraphStoreBase:
    """Factory: return the right store based on config."""
    backend = config.get("storage_backend", "sqlite")

    if backend == "sqlite":
        from .sqlite import SQLiteStore
        return SQLiteStore(config.get("db_path", ":memory:"))
    elif backend == "memory":
        from .memory import MemoryStore
        return MemoryStore()
    else:
        raise ValueError(f"Unknown storage_backend: {backend}")
