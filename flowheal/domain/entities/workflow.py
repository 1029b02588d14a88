"""Workflow 实体 - 校验与修复的基本单元

业务定义：
- Workflow = nodes + edges，没有额外的包装状态
- 由模型输出构造一次，校验器只读，修复器先 clone 再修改
- 核心内不保存任何 Workflow（无持久化）
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.exceptions import WorkflowParseError
from flowheal.domain.value_objects.node_type import NodeType


@dataclass
class Workflow:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)

    @classmethod
    def from_raw(cls, raw_nodes: Any, raw_edges: Any) -> Workflow:
        """把模型输出的 nodes/edges 转换为实体

        抛出：
            WorkflowParseError: nodes 或 edges 不是数组
        """
        if raw_edges is None:
            raw_edges = []
        if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
            raise WorkflowParseError("nodes/edges 必须是数组")
        return cls(
            nodes=[Node.from_dict(item) for item in raw_nodes],
            edges=[Edge.from_dict(item) for item in raw_edges],
        )

    @classmethod
    def from_payload(cls, payload: Any) -> Workflow:
        if not isinstance(payload, dict):
            raise WorkflowParseError("工作流必须是包含 nodes/edges 的对象")
        return cls.from_raw(payload.get("nodes"), payload.get("edges"))

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    def clone(self) -> Workflow:
        return copy.deepcopy(self)

    def node_ids(self) -> set[str]:
        return {node.id for node in self.nodes if node.id}

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def nodes_of_kind(self, kind: NodeType) -> list[Node]:
        return [node for node in self.nodes if node.kind == kind]
