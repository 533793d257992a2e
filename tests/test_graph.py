"""Tests for the concept graph engine."""

import pytest

from curiosity.errors import ConceptNotFound
from curiosity.graph.concepts import ConceptGraph, canonical_pair
from curiosity.storage.memory import MemoryStore
from curiosity.storage.sqlite import SQLiteStore

BACKENDS = ["memory", "sqlite"]


def _graph(backend="memory") -> ConceptGraph:
    store = MemoryStore() if backend == "memory" else SQLiteStore(":memory:")
    return ConceptGraph(store)


@pytest.mark.parametrize("backend", BACKENDS)
def test_process_creates_nodes_and_pairwise_links(backend):
    graph = _graph(backend)
    graph.process_content_concepts("s1", ["Fotosintesis", "Klorofil", "Karbon"])

    nodes = graph.get_all_concepts()
    assert [n.name for n in nodes] == ["Fotosintesis", "Klorofil", "Karbon"]
    assert all(n.weight == pytest.approx(0.5) for n in nodes)
    assert all(n.spark_ids == ["s1"] for n in nodes)

    links = graph.get_all_links()
    assert len(links) == 3
    assert all(l.strength == pytest.approx(0.3) for l in links)
    pairs = {(l.concept_a, l.concept_b) for l in links}
    ids = [n.id for n in nodes]
    assert pairs == {canonical_pair(a, b) for a, b in [(ids[0], ids[1]), (ids[0], ids[2]), (ids[1], ids[2])]}


@pytest.mark.parametrize("backend", BACKENDS)
def test_reoccurrence_bumps_only_that_concept(backend):
    graph = _graph(backend)
    graph.process_content_concepts("s1", ["Fotosintesis", "Klorofil", "Karbon"])

    node = graph.add_or_update_concept("Fotosintesis", "s2")
    assert node.weight == pytest.approx(0.6)
    assert node.spark_ids == ["s1", "s2"]

    assert graph.get_concept_by_name("Klorofil").weight == pytest.approx(0.5)
    assert graph.get_concept_by_name("Karbon").spark_ids == ["s1"]


@pytest.mark.parametrize("backend", BACKENDS)
def test_name_lookup_is_case_insensitive(backend):
    graph = _graph(backend)
    graph.add_or_update_concept("Klorofil", "s1")
    node = graph.add_or_update_concept("  klorofil ", "s2")

    assert node.name == "Klorofil"
    assert node.weight == pytest.approx(0.6)
    assert len(graph.get_all_concepts()) == 1
    assert graph.get_concept_by_name("KLOROFIL").id == node.id


@pytest.mark.parametrize("backend", BACKENDS)
def test_same_origin_is_not_recorded_twice(backend):
    graph = _graph(backend)
    graph.add_or_update_concept("Entropy", "s1")
    node = graph.add_or_update_concept("Entropy", "s1")
    assert node.spark_ids == ["s1"]
    assert node.weight == pytest.approx(0.6)


@pytest.mark.parametrize("backend", BACKENDS)
def test_link_identity_ignores_argument_order(backend):
    graph = _graph(backend)
    graph.add_or_update_concept("Atom", "s1")
    graph.add_or_update_concept("Electron", "s1")

    first = graph.create_or_update_link("Atom", "Electron", "s1")
    second = graph.create_or_update_link("Electron", "Atom", "s2")

    assert first.id == second.id
    assert second.concept_a < second.concept_b
    assert second.strength == pytest.approx(0.4)
    assert second.spark_ids == ["s1", "s2"]
    assert len(graph.get_all_links()) == 1
    assert graph.get_link_by_concepts(second.concept_b, second.concept_a).id == first.id


@pytest.mark.parametrize("backend", BACKENDS)
def test_weight_and_strength_saturate_at_one(backend):
    graph = _graph(backend)
    for i in range(12):
        graph.process_content_concepts(f"s{i}", ["Gravity", "Mass"])

    for node in graph.get_all_concepts():
        assert 0.0 <= node.weight <= 1.0
        assert node.weight == pytest.approx(1.0)
    link = graph.get_all_links()[0]
    assert link.strength <= 1.0
    assert link.strength == pytest.approx(1.0)

    link = graph.create_or_update_link("Gravity", "Mass", "extra", increment=0.5)
    assert link.strength <= 1.0


@pytest.mark.parametrize("backend", BACKENDS)
def test_link_to_unknown_concept_fails_without_creating_it(backend):
    graph = _graph(backend)
    graph.add_or_update_concept("Atom", "s1")

    with pytest.raises(ConceptNotFound):
        graph.create_or_update_link("Atom", "Quark", "s1")
    with pytest.raises(ConceptNotFound):
        graph.create_or_update_link("Quark", "Atom", "s1")

    assert graph.get_concept_by_name("Quark") is None
    assert len(graph.get_all_concepts()) == 1
    assert graph.get_all_links() == []


@pytest.mark.parametrize("backend", BACKENDS)
def test_empty_extraction_is_a_noop(backend):
    graph = _graph(backend)
    graph.process_content_concepts("s1", ["A", "B"])
    before = (graph.get_all_concepts(), graph.get_all_links())

    assert graph.process_content_concepts("s2", []) == []

    assert (graph.get_all_concepts(), graph.get_all_links()) == before


def test_duplicate_and_blank_names_collapse():
    graph = _graph()
    nodes = graph.process_content_concepts("s1", ["Orbit", "orbit", "  ", "Moon"])

    assert [n.name for n in nodes] == ["Orbit", "Moon"]
    assert len(graph.get_all_links()) == 1


def test_process_text_treats_extractor_failure_as_empty():
    graph = _graph()

    def broken(text):
        raise RuntimeError("model unavailable")

    assert graph.process_text("s1", "some text", broken) == []
    assert graph.get_all_concepts() == []

    nodes = graph.process_text("s2", "text", lambda text: ["Wave", "Particle"])
    assert len(nodes) == 2


@pytest.mark.parametrize("backend", BACKENDS)
def test_queries(backend):
    graph = _graph(backend)
    graph.process_content_concepts("s1", ["Hub", "B", "C"])
    graph.process_content_concepts("s2", ["Hub", "D"])
    graph.create_or_update_link("Hub", "B", "s3", increment=0.3)

    hub = graph.get_concept_by_name("hub")
    assert graph.get_concept_by_id(hub.id).name == "Hub"
    assert graph.get_most_connected_concepts(1)[0].id == hub.id
    assert len(graph.get_links_for_concept(hub.id)) == 3

    strong = graph.get_strong_links(0.5)
    assert len(strong) == 1
    assert strong[0].strength == pytest.approx(0.6)
    assert graph.get_all_links()[0].id == strong[0].id


@pytest.mark.parametrize("backend", BACKENDS)
def test_delete_concept_cascades_to_links(backend):
    graph = _graph(backend)
    graph.process_content_concepts("s1", ["A", "B", "C"])
    a = graph.get_concept_by_name("A")

    assert graph.delete_concept(a.id)
    assert graph.get_concept_by_id(a.id) is None
    assert len(graph.get_all_links()) == 1
    assert graph.get_links_for_concept(a.id) == []


@pytest.mark.parametrize("backend", BACKENDS)
def test_reset_graph_clears_everything(backend):
    from curiosity.clustering.cluster import ClusterEngine

    graph = _graph(backend)
    graph.process_content_concepts("s1", ["A", "B"])
    ClusterEngine(graph).detect_clusters()

    graph.reset_graph()

    assert graph.get_all_concepts() == []
    assert graph.get_all_links() == []
    assert graph.store.list_clusters() == []


@pytest.mark.parametrize("backend", BACKENDS)
def test_blank_concept_name_is_rejected(backend):
    graph = _graph(backend)
    with pytest.raises(ValueError):
        graph.add_or_update_concept("   ", "s1")
    assert graph.get_all_concepts() == []
