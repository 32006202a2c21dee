from __future__ import annotations

import json
from pathlib import Path

from driftgate.models.domain import FieldInfo, GraphEdge, GraphNode, NodeType
from driftgate.schemas.artifacts import GraphDocument

PAYMENT_ID = "schemas/Payment.ts:Payment"
SERVICE_ID = "services/PaymentService.ts:PaymentService"
API_ID = "api/payments.ts:POST /payments"


def payment_node(amount_type: str = "number", **overrides) -> GraphNode:
    data = dict(
        id=PAYMENT_ID,
        type=NodeType.SCHEMA,
        name="Payment",
        file_path="schemas/Payment.ts",
        properties=[
            FieldInfo(name="id", type="string"),
            FieldInfo(name="amount", type=amount_type),
            FieldInfo(name="currency", type="string"),
        ],
    )
    data.update(overrides)
    return GraphNode(**data)


def service_node() -> GraphNode:
    return GraphNode(id=SERVICE_ID, type=NodeType.SERVICE, name="PaymentService", file_path="services/PaymentService.ts")


def api_node() -> GraphNode:
    return GraphNode(id=API_ID, type=NodeType.API, name="POST /payments", file_path="api/payments.ts")


def payment_graph(amount_type: str = "number") -> GraphDocument:
    return GraphDocument(
        nodes={node.id: node for node in (payment_node(amount_type), service_node(), api_node())},
        edges={
            "e1": GraphEdge(id="e1", source=PAYMENT_ID, target=SERVICE_ID),
            "e2": GraphEdge(id="e2", source=SERVICE_ID, target=API_ID),
        },
    )


def write_json(path: Path, payload) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return path


