"""Construct the engine's services around a single store."""

import random
from dataclasses import dataclass
from typing import Any

from .clustering.cluster import ClusterEngine
from .graph.concepts import ConceptGraph
from .storage import GraphStoreBase, get_store
from .tags.daily import DailyTagService
from .tags.randomizer import AdaptiveRandomizer
from .tags.repository import TagRepository


@dataclass
class Services:
    """One instance of each engine service, sharing one store."""
    store: GraphStoreBase
    graph: ConceptGraph
    clusters: ClusterEngine
    tags: TagRepository
    randomizer: AdaptiveRandomizer
    daily: DailyTagService

    def close(self) -> None:
        self.store.close()


def build_services(
    config: dict[str, Any],
    store: GraphStoreBase | None = None,
    rng: random.Random | None = None,
) -> Services:
    """Wire up the services. Pass `store` to reuse an existing backend."""
    store = store or get_store(config)
    graph = ConceptGraph(store, config)
    tags = TagRepository(store)
    randomizer = AdaptiveRandomizer(store, config, rng=rng)
    return Services(
        store=store,
        graph=graph,
        clusters=ClusterEngine(graph, config),
        tags=tags,
        randomizer=randomizer,
        daily=DailyTagService(store, tags, randomizer),
    )
