"""Data models used throughout the curiosity engine."""

import time
from dataclasses import dataclass, field

# Tag selection strategies, in the order the randomizer runs them.
HISTORY = "history"
WILDCARD = "wildcard"
DEEP_DIVE = "deep-dive"
RANDOM = "random"
STRATEGIES = (HISTORY, WILDCARD, DEEP_DIVE, RANDOM)

# Spark modes
MODE_QUICK = 1
MODE_DEEP_DIVE = 2
MODE_THREAD = 3


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass
class ConceptNode:
    """A single extracted concept with an importance weight and provenance."""
    id: str
    name: str
    cluster: str = "uncategorized"
    weight: float = 0.5
    spark_ids: list[str] = field(default_factory=list)
    created_at: int = field(default_factory=now_ms)
    last_updated: int = field(default_factory=now_ms)
    description: str | None = None


@dataclass
class ConceptLink:
    """An undirected, strength-weighted relation. Always concept_a < concept_b."""
    id: str
    concept_a: str
    concept_b: str
    strength: float = 0.3
    link_type: str = "semantic"
    spark_ids: list[str] = field(default_factory=list)
    last_update: int = field(default_factory=now_ms)

    def other(self, concept_id: str) -> str:
        """Return the endpoint opposite to concept_id."""
        return self.concept_b if concept_id == self.concept_a else self.concept_a


@dataclass
class ConceptCluster:
    """A named group of at least two connected concepts."""
    id: str
    name: str
    concepts: list[str]
    coherence: float = 0.5
    spark_count: int = 0
    last_updated: int = field(default_factory=now_ms)
    description: str | None = None


@dataclass
class ClusterAnalysis:
    """Strongest and weakest members of a cluster, by weight."""
    cluster_id: str
    cluster_name: str
    dominant_concepts: list[str]
    weak_concepts: list[str]


@dataclass
class Tag:
    """A user-facing topic tag. `cluster` is a curated category label."""
    id: str
    name: str
    cluster: str | None = None
    usage_count: int = 0
    last_used: int | None = None
    is_default: bool = False
    created_at: int = field(default_factory=now_ms)


@dataclass
class TagHistoryEntry:
    """One row of the append-only tag usage log."""
    id: str
    tag_id: str
    used_at: int
    strategy: str


@dataclass
class TagPick:
    """A selected tag together with the strategy that chose it."""
    tag: Tag
    strategy: str


@dataclass
class TagStatistics:
    tag_id: str
    tag_name: str
    total_usage: int
    last_used: int | None
    usage_by_week: list[int]  # oldest week first, last 4 weeks
    cluster: str | None


@dataclass
class DailyTagSelection:
    """The tag slate for one calendar date."""
    id: str
    date: str  # YYYY-MM-DD
    tags: list[str]
    is_manually_edited: bool = False
    created_at: int = field(default_factory=now_ms)


@dataclass
class Spark:
    """A generated content item, as far as tag selection needs to know it."""
    id: str
    text: str
    tags: list[str] = field(default_factory=list)
    mode: int = MODE_QUICK
    created_at: int = field(default_factory=now_ms)


@dataclass
class GraphStats:
    total_concepts: int = 0
    total_links: int = 0
    total_clusters: int = 0
    avg_weight: float = 0.0
    avg_strength: float = 0.0
    avg_coherence: float = 0.0
    isolated_concepts: list[str] = field(default_factory=list)
    most_connected: list[tuple[str, int]] = field(default_factory=list)
