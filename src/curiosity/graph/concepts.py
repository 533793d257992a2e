"""Concept graph: weighted concept nodes and undirected co-occurrence links."""

import logging
import uuid
from itertools import combinations
from typing import Any, Callable

from ..errors import ConceptNotFound
from ..models import ConceptLink, ConceptNode, now_ms
from ..storage import GraphStoreBase, name_key

logger = logging.getLogger(__name__)

Extractor = Callable[[str], list[str]]


def canonical_pair(id_a: str, id_b: str) -> tuple[str, str]:
    """Order a pair of node ids so the smaller one comes first."""
    return (id_a, id_b) if id_a <= id_b else (id_b, id_a)


class ConceptGraph:
    """Owns concept nodes and links and applies incremental updates.

    Every content item (a "spark") that mentions a set of concepts bumps the
    weight of each concept and links every pair of them.
    """

    def __init__(self, store: GraphStoreBase, config: dict[str, Any] | None = None):
        self.store = store
        graph_cfg = (config or {}).get("graph", {})
        self.default_cluster = graph_cfg.get("default_cluster", "uncategorized")
        self.initial_weight = graph_cfg.get("initial_weight", 0.5)
        self.weight_increment = graph_cfg.get("weight_increment", 0.1)
        self.initial_strength = graph_cfg.get("initial_strength", 0.3)
        self.strength_increment = graph_cfg.get("strength_increment", 0.1)
        self.link_type = graph_cfg.get("link_type", "semantic")

    def add_or_update_concept(
        self,
        name: str,
        origin_id: str,
        default_cluster: str | None = None,
    ) -> ConceptNode:
        """Create a concept at the initial weight, or reinforce an existing one.

        Lookup is case-insensitive; the first spelling seen is kept.
        """
        name = name.strip()
        if not name:
            raise ValueError("Concept name must not be empty")
        now = now_ms()
        candidate = ConceptNode(
            id=str(uuid.uuid4()),
            name=name,
            cluster=default_cluster or self.default_cluster,
            weight=self.initial_weight,
            spark_ids=[origin_id],
            created_at=now,
            last_updated=now,
        )
        return self.store.upsert_concept(candidate, origin_id, self.weight_increment)

    def create_or_update_link(
        self,
        name_a: str,
        name_b: str,
        origin_id: str,
        increment: float | None = None,
    ) -> ConceptLink:
        """Link two existing concepts, or strengthen their link.

        Raises:
            ConceptNotFound: if either name has no node. Nodes are never
                created here.
        """
        node_a = self.store.find_concept_by_name(name_a)
        if node_a is None:
            raise ConceptNotFound(name_a)
        node_b = self.store.find_concept_by_name(name_b)
        if node_b is None:
            raise ConceptNotFound(name_b)
        if node_a.id == node_b.id:
            raise ValueError(f"Cannot link concept to itself: {name_a}")

        id_a, id_b = canonical_pair(node_a.id, node_b.id)
        candidate = ConceptLink(
            id=str(uuid.uuid4()),
            concept_a=id_a,
            concept_b=id_b,
            strength=self.initial_strength,
            link_type=self.link_type,
            spark_ids=[origin_id],
            last_update=now_ms(),
        )
        delta = self.strength_increment if increment is None else increment
        return self.store.upsert_link(candidate, origin_id, delta)

    def process_content_concepts(self, origin_id: str, concept_names: list[str]) -> list[ConceptNode]:
        """Add every concept of one content item and link every pair of them.

        Blank names are dropped and case-insensitive duplicates collapse to
        the first spelling. An empty list is a no-op.
        """
        names = _dedupe_names(concept_names)
        if not names:
            logger.info(f"No concepts for {origin_id}, graph unchanged")
            return []

        nodes = [self.add_or_update_concept(name, origin_id) for name in names]
        for name_a, name_b in combinations(names, 2):
            self.create_or_update_link(name_a, name_b, origin_id)

        logger.info(
            f"Processed {len(names)} concepts, {len(names) * (len(names) - 1) // 2} links for {origin_id}"
        )
        return nodes

    def process_text(self, origin_id: str, text: str, extract: Extractor) -> list[ConceptNode]:
        """Extract concepts from text with an external extractor and process them.

        A failing extractor counts as an empty extraction.
        """
        try:
            concepts = extract(text) or []
        except Exception as e:
            logger.warning(f"Concept extraction failed for {origin_id}: {e}")
            concepts = []
        return self.process_content_concepts(origin_id, [c for c in concepts if isinstance(c, str)])

    # --- queries ---

    def get_concept_by_id(self, concept_id: str) -> ConceptNode | None:
        return self.store.get_concept(concept_id)

    def get_concept_by_name(self, name: str) -> ConceptNode | None:
        return self.store.find_concept_by_name(name)

    def get_all_concepts(self) -> list[ConceptNode]:
        """All concepts, heaviest first."""
        return self.store.list_concepts()

    def get_all_links(self) -> list[ConceptLink]:
        """All links, strongest first."""
        return self.store.list_links()

    def get_link_by_concepts(self, concept_a: str, concept_b: str) -> ConceptLink | None:
        """Look up a link by node ids, in either order."""
        return self.store.find_link(*canonical_pair(concept_a, concept_b))

    def get_links_for_concept(self, concept_id: str) -> list[ConceptLink]:
        return self.store.links_for_concept(concept_id)

    def get_strong_links(self, threshold: float = 0.5) -> list[ConceptLink]:
        return self.store.links_above(threshold)

    def get_most_connected_concepts(self, limit: int = 10) -> list[ConceptNode]:
        return [node for node, _ in self.store.most_connected_concepts(limit)]

    # --- deletion ---

    def delete_concept(self, concept_id: str) -> bool:
        """Delete a concept and its incident links."""
        return self.store.delete_concept(concept_id)

    def delete_link(self, link_id: str) -> bool:
        return self.store.delete_link(link_id)

    def reset_graph(self) -> None:
        """Delete every concept, link and cluster. Irreversible."""
        self.store.reset_graph()
        logger.info("Graph reset complete")


def _dedupe_names(names: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for name in names:
        if not isinstance(name, str) or not name.strip():
            continue
        key = name_key(name)
        if key in seen:
            continue
        seen.add(key)
        result.append(name.strip())
    return result
