from hypothesis import given, settings as hypothesis_settings, strategies as st

from driftgate.models.domain import GraphEdge, GraphNode, NodeType
from driftgate.models.governance import DriftChangeType, DriftVector
from driftgate.services.differ import SchemaDiffer
from driftgate.services.graph import GraphStore
from driftgate.services.impact import ImpactAnalyzer
from driftgate.services.precedent import set_similarity
from driftgate.services.receipts import create_receipt, verify_receipt

from tests.factories import payment_node

TYPES = ["string", "number", "boolean", "Date"]


@st.composite
def chains(draw):
    """A linear dependency chain n0 -> n1 -> ... plus random extra forward edges."""

    size = draw(st.integers(min_value=2, max_value=8))
    ids = [f"n{index}" for index in range(size)]
    edges = [GraphEdge(id=f"c{index}", source=ids[index], target=ids[index + 1]) for index in range(size - 1)]
    extras = draw(st.lists(st.tuples(st.integers(0, size - 1), st.integers(0, size - 1)), max_size=6))
    for offset, (source, target) in enumerate(extras):
        edges.append(GraphEdge(id=f"x{offset}", source=ids[source], target=ids[target]))
    nodes = [GraphNode(id=node_id, type=NodeType.SCHEMA, name=node_id, file_path="f.ts") for node_id in ids]
    return GraphStore(nodes, edges)


@given(st.sampled_from(TYPES))
def test_diffing_a_node_against_itself_is_unchanged(amount_type):
    node = payment_node(amount_type)

    diff = SchemaDiffer().diff(node, node)

    assert diff.changes == []
    assert diff.breaking is False


@given(chains(), st.integers(min_value=0, max_value=6))
def test_impact_confidence_never_increases_with_distance(graph, depth):
    result = ImpactAnalyzer(graph, decay=0.15, floor=0.4).analyze("n0", depth)

    ordered = sorted(result.impacted, key=lambda item: item.distance)
    for earlier, later in zip(ordered, ordered[1:]):
        assert earlier.confidence >= later.confidence
    assert all(1 <= item.distance <= depth for item in result.impacted)
    assert all(0.4 <= item.confidence <= 1.0 for item in result.impacted)
    assert "n0" not in {item.node_id for item in result.impacted}


vectors = st.lists(
    st.builds(
        DriftVector,
        entity=st.sampled_from(["payment", "order", "user"]),
        breaking=st.booleans(),
        change_type=st.sampled_from(list(DriftChangeType)),
    ),
    min_size=1,
    max_size=5,
)


@given(vectors, vectors)
def test_similarity_is_bounded_and_reflexive(current, candidate):
    score = set_similarity(current, candidate)

    assert 0.0 <= score <= 1.0 + 1e-9
    assert abs(set_similarity(current, current) - 1.0) < 1e-9


@hypothesis_settings(max_examples=50)
@given(
    st.sampled_from(["change_id", "artifacts_hash", "issued_at", "expires_at", "risk_level"]),
    st.data(),
)
def test_any_single_character_change_breaks_the_signature(field, data):
    receipt = create_receipt("chg_prop", "approve", "low", False, {"graph": {}}, key="prop-key")
    payload = receipt.model_dump(mode="json")
    value = payload[field]
    index = data.draw(st.integers(min_value=0, max_value=len(value) - 1))
    replacement = data.draw(st.characters(min_codepoint=33, max_codepoint=126).filter(lambda char: char != value[index]))
    payload[field] = value[:index] + replacement + value[index + 1 :]

    assert verify_receipt(payload, key="prop-key").reason.value == "invalid_signature"
