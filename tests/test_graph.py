import pytest

from driftgate.core.errors import NodeNotFoundError
from driftgate.models.domain import GraphEdge, GraphNode, NodeType
from driftgate.services.graph import GraphStore
from tests.factories import API_ID, PAYMENT_ID, SERVICE_ID, payment_graph


def _node(node_id: str) -> GraphNode:
    return GraphNode(id=node_id, type=NodeType.SCHEMA, name=node_id, file_path=f"{node_id}.ts")


def test_downstream_follows_consumers_with_distances():
    graph = GraphStore.from_document(payment_graph())

    downstream = graph.get_downstream(PAYMENT_ID)

    assert [(item.node_id, item.distance) for item in downstream] == [(SERVICE_ID, 1), (API_ID, 2)]
    assert downstream[1].path == [PAYMENT_ID, SERVICE_ID, API_ID]


def test_downstream_respects_max_depth_and_zero_depth():
    graph = GraphStore.from_document(payment_graph())

    assert [item.node_id for item in graph.get_downstream(PAYMENT_ID, max_depth=1)] == [SERVICE_ID]
    assert graph.get_downstream(PAYMENT_ID, max_depth=0) == []


def test_downstream_terminates_on_cycles_and_first_path_wins():
    nodes = [_node(name) for name in ("a", "b", "c", "d")]
    edges = [
        GraphEdge(id="ab", source="a", target="b"),
        GraphEdge(id="ac", source="a", target="c"),
        GraphEdge(id="bd", source="b", target="d"),
        GraphEdge(id="cd", source="c", target="d"),
        GraphEdge(id="da", source="d", target="a"),
    ]
    graph = GraphStore(nodes, edges)

    downstream = graph.get_downstream("a", max_depth=10)

    assert [item.node_id for item in downstream] == ["b", "c", "d"]
    assert downstream[-1].path == ["a", "b", "d"]


def test_edges_may_reference_nodes_outside_the_snapshot():
    graph = GraphStore([_node("a")], [GraphEdge(id="ax", source="a", target="external")])

    downstream = graph.get_downstream("a")

    assert [item.node_id for item in downstream] == ["external"]


def test_unknown_node_raises_not_found():
    graph = GraphStore.from_document(payment_graph())

    with pytest.raises(NodeNotFoundError) as excinfo:
        graph.get_downstream("missing")
    assert "missing" in str(excinfo.value)
    with pytest.raises(NodeNotFoundError):
        graph.get_provenance("missing")


def test_provenance_walks_upstream():
    graph = GraphStore.from_document(payment_graph())

    sources = [link.node_id for link in graph.get_provenance(API_ID)]

    assert sources == [SERVICE_ID, PAYMENT_ID]


def test_remove_node_drops_touching_edges():
    graph = GraphStore.from_document(payment_graph())

    graph.remove_node(SERVICE_ID)

    assert not graph.has_node(SERVICE_ID)
    assert [node.id for node in graph.get_all_nodes()] == [PAYMENT_ID, API_ID]
    assert graph.get_outgoing_edges(PAYMENT_ID) == []
    assert graph.get_downstream(PAYMENT_ID) == []


def test_document_round_trip_keeps_nodes_and_edges():
    graph = GraphStore.from_document(payment_graph().model_dump(mode="json", by_alias=True))

    rebuilt = GraphStore.from_document(graph.to_document())

    assert set(rebuilt.nodes_by_id()) == {PAYMENT_ID, SERVICE_ID, API_ID}
    assert len(rebuilt.get_all_edges()) == 2


def test_provenance_reports_each_ancestry_before_the_next_source():
    graph = GraphStore(
        [_node(name) for name in ("A", "B", "C", "D")],
        [
            GraphEdge(id="b-a", source="B", target="A"),
            GraphEdge(id="c-a", source="C", target="A"),
            GraphEdge(id="d-b", source="D", target="B"),
        ],
    )

    assert [link.node_id for link in graph.get_provenance("A")] == ["B", "D", "C"]


def test_provenance_terminates_on_cycles():
    graph = GraphStore(
        [_node("A"), _node("B")],
        [GraphEdge(id="a-b", source="A", target="B"), GraphEdge(id="b-a", source="B", target="A")],
    )

    assert [link.node_id for link in graph.get_provenance("A")] == ["B", "A"]
