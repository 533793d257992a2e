"""Connected-component clustering of the concept graph."""

import logging
import uuid
from collections import deque
from typing import Any

import numpy as np

from ..errors import ClusterNotFound
from ..graph.concepts import ConceptGraph
from ..models import ClusterAnalysis, ConceptCluster, ConceptLink, ConceptNode, now_ms

logger = logging.getLogger(__name__)


def connected_components(
    nodes: list[ConceptNode],
    links: list[ConceptLink],
    min_strength: float = 0.3,
) -> list[list[str]]:
    """Group node ids into components joined by links of at least min_strength.

    Components come out in the order of their first node in `nodes`, and
    members in breadth-first order.
    """
    adjacency: dict[str, list[str]] = {n.id: [] for n in nodes}
    for link in links:
        if link.strength < min_strength:
            continue
        if link.concept_a in adjacency and link.concept_b in adjacency:
            adjacency[link.concept_a].append(link.concept_b)
            adjacency[link.concept_b].append(link.concept_a)

    visited: set[str] = set()
    components = []
    for node in nodes:
        if node.id in visited:
            continue
        component = []
        queue = deque([node.id])
        visited.add(node.id)
        while queue:
            current = queue.popleft()
            component.append(current)
            for neighbor in adjacency[current]:
                if neighbor not in visited:
                    visited.add(neighbor)
                    queue.append(neighbor)
        components.append(component)
    return components


def cluster_name(members: list[ConceptNode], top: int = 3) -> str:
    """Join the names of the heaviest members with ' & '. Ties keep input order."""
    ranked = sorted(members, key=lambda n: -n.weight)
    return " & ".join(n.name for n in ranked[:top])


def coherence(member_ids: set[str], links: list[ConceptLink]) -> float:
    """0.7 x mean intra-cluster link strength + 0.3 x link density.

    Returns 0.5 when no link has both ends inside the cluster.
    """
    strengths = [
        l.strength for l in links
        if l.concept_a in member_ids and l.concept_b in member_ids
    ]
    if not strengths:
        return 0.5
    n = len(member_ids)
    density = len(strengths) / (n * (n - 1) / 2)
    return float(0.7 * np.mean(strengths) + 0.3 * density)


def spark_count(members: list[ConceptNode]) -> int:
    """Number of distinct origin ids across members."""
    return len({sid for n in members for sid in n.spark_ids})


class ClusterEngine:
    """Partitions the concept graph into named, scored clusters."""

    def __init__(self, graph: ConceptGraph, config: dict[str, Any] | None = None):
        self.graph = graph
        self.store = graph.store
        cluster_cfg = (config or {}).get("clustering", {})
        self.min_link_strength = cluster_cfg.get("min_link_strength", 0.3)
        self.name_concepts = cluster_cfg.get("name_concepts", 3)
        self.variance_threshold = cluster_cfg.get("variance_threshold", 0.3)
        self.prune_stale = cluster_cfg.get("prune_stale", False)

    def detect_clusters(self) -> list[ConceptCluster]:
        """Recompute clusters from a full snapshot of the graph and store them.

        Clusters are upserted by name. Clusters from earlier runs whose name
        does not recur are kept unless prune_stale is set.
        """
        nodes = self.graph.get_all_concepts()
        links = self.graph.get_all_links()
        if not nodes:
            return []

        now = now_ms()
        clusters = []
        for component in connected_components(nodes, links, self.min_link_strength):
            if len(component) < 2:
                continue
            # snapshot order: weight desc, then creation
            in_component = set(component)
            members = [n for n in nodes if n.id in in_component]
            cluster = ConceptCluster(
                id=str(uuid.uuid4()),
                name=cluster_name(members, self.name_concepts),
                concepts=component,
                coherence=coherence(in_component, links),
                spark_count=spark_count(members),
                last_updated=now,
            )
            clusters.append(self.store.upsert_cluster(cluster))

        if self.prune_stale:
            current = {c.id for c in clusters}
            for stale in self.store.list_clusters():
                if stale.id not in current:
                    self.store.delete_cluster(stale.id)
                    logger.info(f"Pruned stale cluster {stale.name}")

        logger.info(f"Detected {len(clusters)} cluster(s) from {len(nodes)} concepts")
        return clusters

    def get_cluster_by_id(self, cluster_id: str) -> ConceptCluster | None:
        return self.store.get_cluster(cluster_id)

    def get_cluster_by_name(self, name: str) -> ConceptCluster | None:
        return self.store.find_cluster_by_name(name)

    def get_all_clusters(self) -> list[ConceptCluster]:
        """All stored clusters, most coherent first."""
        return self.store.list_clusters()

    def _members(self, cluster: ConceptCluster) -> list[ConceptNode]:
        nodes = (self.graph.get_concept_by_id(i) for i in cluster.concepts)
        return [n for n in nodes if n is not None]

    def analyze_cluster(self, cluster_id: str) -> ClusterAnalysis:
        """Top three and bottom three members by weight.

        The two lists come from the same ranking and overlap for clusters of
        five or fewer members.
        """
        cluster = self.store.get_cluster(cluster_id)
        if cluster is None:
            raise ClusterNotFound(cluster_id)

        members = sorted(self._members(cluster), key=lambda n: -n.weight)
        return ClusterAnalysis(
            cluster_id=cluster.id,
            cluster_name=cluster.name,
            dominant_concepts=[n.name for n in members[:3]],
            weak_concepts=[n.name for n in members[-3:]],
        )

    def rebalance_clusters(self) -> list[str]:
        """Flag clusters whose member weights vary too much to be one topic.

        Advisory only: nothing is split or modified. Returns flagged names.
        """
        flagged = []
        for cluster in self.store.list_clusters():
            weights = [n.weight for n in self._members(cluster)]
            if not weights:
                continue
            variance = float(np.var(weights))
            if variance > self.variance_threshold:
                logger.warning(f"High variance ({variance:.3f}) in cluster {cluster.name}, consider splitting")
                flagged.append(cluster.name)
        return flagged

    def delete_cluster(self, cluster_id: str) -> None:
        if not self.store.delete_cluster(cluster_id):
            raise ClusterNotFound(cluster_id)
