"""Concept graph traversal and summary statistics."""

from collections import deque

import numpy as np

from ..graph.concepts import ConceptGraph
from ..models import ConceptNode, GraphStats


def build_adjacency(graph: ConceptGraph) -> dict[str, list[str]]:
    """Map each concept id to the ids it is linked to, strongest link first."""
    adjacency: dict[str, list[str]] = {n.id: [] for n in graph.get_all_concepts()}
    for link in graph.get_all_links():
        adjacency.setdefault(link.concept_a, []).append(link.concept_b)
        adjacency.setdefault(link.concept_b, []).append(link.concept_a)
    return adjacency


def concept_neighbors(graph: ConceptGraph, concept_id: str) -> list[ConceptNode]:
    """Concepts directly linked to concept_id."""
    neighbor_ids = {l.other(concept_id) for l in graph.get_links_for_concept(concept_id)}
    return [n for n in graph.get_all_concepts() if n.id in neighbor_ids]


def find_path(graph: ConceptGraph, from_id: str, to_id: str, max_depth: int = 3) -> list[str] | None:
    """Shortest chain of concept ids from from_id to to_id.

    Args:
        graph: The concept graph.
        from_id: Starting concept id.
        to_id: Target concept id.
        max_depth: Maximum number of hops.

    Returns:
        The id path including both ends, or None if no path within max_depth.
    """
    if from_id == to_id:
        return [from_id]

    adjacency = build_adjacency(graph)
    visited = {from_id}
    queue = deque([[from_id]])

    while queue:
        path = queue.popleft()
        if len(path) > max_depth:
            continue
        for neighbor in adjacency.get(path[-1], []):
            if neighbor in visited:
                continue
            if neighbor == to_id:
                return path + [neighbor]
            visited.add(neighbor)
            queue.append(path + [neighbor])

    return None


def graph_stats(graph: ConceptGraph, top: int = 5) -> GraphStats:
    """Totals and averages over nodes, links and stored clusters."""
    nodes = graph.get_all_concepts()
    links = graph.get_all_links()
    clusters = graph.store.list_clusters()

    linked = {l.concept_a for l in links} | {l.concept_b for l in links}

    return GraphStats(
        total_concepts=len(nodes),
        total_links=len(links),
        total_clusters=len(clusters),
        avg_weight=float(np.mean([n.weight for n in nodes])) if nodes else 0.0,
        avg_strength=float(np.mean([l.strength for l in links])) if links else 0.0,
        avg_coherence=float(np.mean([c.coherence for c in clusters])) if clusters else 0.0,
        isolated_concepts=[n.id for n in nodes if n.id not in linked],
        most_connected=[(n.id, count) for n, count in graph.store.most_connected_concepts(top)],
    )
