"""Store maintenance: dangling links, orphan history, broken clusters."""

import logging

from ..services import Services

logger = logging.getLogger(__name__)


def run_janitor(services: Services, prune_clusters: bool = False) -> dict[str, int]:
    """Run maintenance tasks on the store.

    Returns stats about what was fixed.
    """
    store = services.store
    stats = {
        "dangling_links_removed": 0,
        "orphan_history_removed": 0,
        "broken_clusters": 0,
        "broken_clusters_removed": 0,
        "high_variance_clusters": 0,
    }

    # Links whose endpoints are gone
    node_ids = {n.id for n in store.list_concepts()}
    for link in store.list_links():
        if link.concept_a not in node_ids or link.concept_b not in node_ids:
            store.delete_link(link.id)
            stats["dangling_links_removed"] += 1

    # History rows of deleted tags
    tag_ids = {t.id for t in store.list_tags()}
    orphans = sorted({e.tag_id for e in store.list_history()} - tag_ids)
    if orphans:
        stats["orphan_history_removed"] = store.delete_history(orphans)

    # Clusters with fewer than two surviving members
    for cluster in store.list_clusters():
        alive = [c for c in cluster.concepts if c in node_ids]
        if len(alive) >= 2:
            continue
        stats["broken_clusters"] += 1
        if prune_clusters:
            store.delete_cluster(cluster.id)
            stats["broken_clusters_removed"] += 1

    stats["high_variance_clusters"] = len(services.clusters.rebalance_clusters())

    logger.info(f"Janitor finished: {stats}")
    return stats
