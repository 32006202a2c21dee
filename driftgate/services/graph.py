"""In-memory dependency graph store with bounded downstream traversal."""

from __future__ import annotations

from collections import deque
from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional

from driftgate.core.errors import NodeNotFoundError
from driftgate.models.domain import DownstreamNode, GraphEdge, GraphNode, ProvenanceLink
from driftgate.schemas.artifacts import GraphDocument, decode_document

GRAPH_VERSION = "1.1.0"


class GraphStore:
    """Holds nodes and ``source -> target`` edges, where the target uses the source.

    "Downstream" of a node means its consumers: the targets of its outgoing
    edges, transitively. Edges may name nodes that are not in the snapshot.
    """

    def __init__(
        self,
        nodes: Iterable[GraphNode] | None = None,
        edges: Iterable[GraphEdge] | None = None,
        *,
        version: str = GRAPH_VERSION,
        last_crawl: str | None = None,
    ) -> None:
        self._nodes: dict[str, GraphNode] = {}
        self._edges: dict[str, GraphEdge] = {}
        self.version = version
        self.last_crawl = last_crawl or datetime.now(timezone.utc).isoformat()
        for node in nodes or []:
            self.add_node(node)
        for edge in edges or []:
            self.add_edge(edge)

    def add_node(self, node: GraphNode) -> None:
        self._nodes[node.id] = node

    def remove_node(self, node_id: str) -> None:
        self._nodes.pop(node_id, None)
        stale = [eid for eid, edge in self._edges.items() if node_id in (edge.source, edge.target)]
        for eid in stale:
            del self._edges[eid]

    def add_edge(self, edge: GraphEdge) -> None:
        self._edges[edge.id] = edge

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def get_all_nodes(self) -> list[GraphNode]:
        return list(self._nodes.values())

    def get_all_edges(self) -> list[GraphEdge]:
        return list(self._edges.values())

    def nodes_by_id(self) -> dict[str, GraphNode]:
        return dict(self._nodes)

    def get_outgoing_edges(self, node_id: str) -> list[GraphEdge]:
        return [edge for edge in self._edges.values() if edge.source == node_id]

    def get_incoming_edges(self, node_id: str) -> list[GraphEdge]:
        return [edge for edge in self._edges.values() if edge.target == node_id]

    def get_downstream(self, node_id: str, max_depth: int = 3) -> list[DownstreamNode]:
        """Breadth-first walk over consumers of ``node_id`` up to ``max_depth`` hops.

        The first path found to each node wins; ties follow edge insertion
        order. Visited nodes are never expanded twice, so cycles terminate.
        """

        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)

        visited: set[str] = set()
        queue: deque[tuple[str, int, list[str]]] = deque([(node_id, 0, [node_id])])
        result: list[DownstreamNode] = []

        while queue:
            current, distance, path = queue.popleft()
            if current in visited or distance > max_depth:
                continue
            visited.add(current)
            if current != node_id:
                result.append(DownstreamNode(node_id=current, distance=distance, path=path))
            for edge in self.get_outgoing_edges(current):
                if edge.target not in visited:
                    queue.append((edge.target, distance + 1, [*path, edge.target]))

        return result

    def get_provenance(self, node_id: str) -> list[ProvenanceLink]:
        """Upstream sources of ``node_id``, depth first along incoming edges.

        Each link is emitted before the walk descends into its source, so a
        source's own ancestry follows it directly. Every edge into a visited
        node is reported; each node is expanded once.
        """

        if node_id not in self._nodes:
            raise NodeNotFoundError(node_id)

        visited = {node_id}
        result: list[ProvenanceLink] = []
        stack = [iter(self.get_incoming_edges(node_id))]
        while stack:
            edge = next(stack[-1], None)
            if edge is None:
                stack.pop()
                continue
            result.append(ProvenanceLink(node_id=edge.source, relationship=edge.type))
            if edge.source not in visited:
                visited.add(edge.source)
                stack.append(iter(self.get_incoming_edges(edge.source)))
        return result

    @classmethod
    def from_document(cls, document: Mapping) -> "GraphStore":
        """Build a store from a ``graph`` artifact document.

        ``nodes``/``edges`` may be id-keyed mappings or plain lists.
        """

        parsed = document if isinstance(document, GraphDocument) else decode_document("graph", GraphDocument, document)
        return cls(
            parsed.node_list(),
            parsed.edge_list(),
            version=parsed.version,
            last_crawl=parsed.last_crawl,
        )

    def to_document(self) -> dict:
        return {
            "nodes": {nid: node.model_dump(mode="json", by_alias=True) for nid, node in self._nodes.items()},
            "edges": {eid: edge.model_dump(mode="json") for eid, edge in self._edges.items()},
            "version": self.version,
            "lastCrawl": self.last_crawl,
        }
