"""StructureDefectDetector - 结构缺陷的单次检测

按修复器的执行顺序模拟一遍，产出有序的 StructureDefect 列表：
1. 端点规范化（id 大小写 / label → id）
2. 删除端点无法解析的连线
3. 删除重复连线（保留第一次出现）
4. 反复删除环的闭合边，直到无环
5. 清除非分支连线上的 sourceHandle
6. 孤立节点的重连建议（只报告）
7. 为缺少 id 的连线生成确定性 id

检测不修改输入；报告型与修改型的消费者都基于同一份结果。
"""

from __future__ import annotations

from dataclasses import dataclass

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.graph_analysis import find_back_edge, orphan_reachability
from flowheal.domain.services.template_references import normalize_label
from flowheal.domain.value_objects.defect import StructureDefect, StructureDefectKind
from flowheal.domain.value_objects.node_type import NodeType

# 孤立节点重连时的拓扑优先级：input > 处理节点 > branch > output
_TYPE_PRIORITY: dict[NodeType | None, int] = {
    NodeType.INPUT: 0,
    NodeType.LLM: 1,
    NodeType.RAG: 1,
    NodeType.TOOL: 1,
    NodeType.IMAGEGEN: 1,
    NodeType.BRANCH: 2,
    NodeType.OUTPUT: 3,
}
_DEFAULT_PRIORITY = 1


@dataclass
class _WorkingEdge:
    index: int
    source: str
    target: str
    edge: Edge


def derive_edge_id(source: str, target: str, used: set[str]) -> str:
    base = f"edge_{source}_{target}"
    if base not in used:
        return base
    suffix = 1
    while f"{base}_{suffix}" in used:
        suffix += 1
    return f"{base}_{suffix}"


class EndpointResolver:
    """把连线端点解析为节点 id：精确 id → 唯一的大小写不敏感 id → 精确 label → 归一化 label"""

    def __init__(self, nodes: list[Node]) -> None:
        self._ids: set[str] = set()
        self._ids_by_lower: dict[str, list[str]] = {}
        self._id_by_label: dict[str, str] = {}
        self._id_by_norm_label: dict[str, str] = {}
        for node in nodes:
            if not node.id or node.id in self._ids:
                continue
            self._ids.add(node.id)
            self._ids_by_lower.setdefault(node.id.lower(), []).append(node.id)
            if node.label.strip():
                self._id_by_label.setdefault(node.label, node.id)
                self._id_by_norm_label.setdefault(normalize_label(node.label), node.id)

    def resolve(self, value: str) -> str | None:
        if not value:
            return None
        if value in self._ids:
            return value
        by_lower = self._ids_by_lower.get(value.lower(), [])
        if len(by_lower) == 1:
            return by_lower[0]
        if value in self._id_by_label:
            return self._id_by_label[value]
        return self._id_by_norm_label.get(normalize_label(value))


class StructureDefectDetector:
    def detect(self, workflow: Workflow) -> list[StructureDefect]:
        nodes = _unique_nodes(workflow.nodes)
        node_by_id = {node.id: node for node in nodes}
        order = [node.id for node in nodes]

        defects: list[StructureDefect] = []
        working = self._resolve_endpoints(workflow.edges, EndpointResolver(nodes), defects)
        working = self._drop_duplicates(working, defects)
        working = self._break_cycles(order, working, defects)
        self._clear_stray_handles(working, node_by_id, defects)
        self._propose_orphan_links(nodes, working, defects)
        self._backfill_edge_ids(working, defects)
        return defects

    @staticmethod
    def _resolve_endpoints(
        edges: list[Edge], resolver: EndpointResolver, defects: list[StructureDefect]
    ) -> list[_WorkingEdge]:
        working: list[_WorkingEdge] = []
        for index, edge in enumerate(edges):
            source = resolver.resolve(edge.source)
            target = resolver.resolve(edge.target)
            if source is None or target is None:
                defects.append(
                    StructureDefect(
                        kind=StructureDefectKind.DANGLING_EDGE,
                        edge_index=index,
                        edge_id=edge.id,
                        source=edge.source,
                        target=edge.target,
                    )
                )
                continue
            for endpoint, original, resolved in (
                ("source", edge.source, source),
                ("target", edge.target, target),
            ):
                if original != resolved:
                    defects.append(
                        StructureDefect(
                            kind=StructureDefectKind.ENDPOINT_ALIAS,
                            edge_index=index,
                            edge_id=edge.id,
                            source=source,
                            target=target,
                            endpoint=endpoint,
                            original=original,
                        )
                    )
            working.append(_WorkingEdge(index=index, source=source, target=target, edge=edge))
        return working

    @staticmethod
    def _drop_duplicates(
        working: list[_WorkingEdge], defects: list[StructureDefect]
    ) -> list[_WorkingEdge]:
        seen: set[tuple[str, str]] = set()
        kept: list[_WorkingEdge] = []
        for item in working:
            pair = (item.source, item.target)
            if pair in seen:
                defects.append(
                    StructureDefect(
                        kind=StructureDefectKind.DUPLICATE_EDGE,
                        edge_index=item.index,
                        edge_id=item.edge.id,
                        source=item.source,
                        target=item.target,
                    )
                )
                continue
            seen.add(pair)
            kept.append(item)
        return kept

    @staticmethod
    def _break_cycles(
        order: list[str], working: list[_WorkingEdge], defects: list[StructureDefect]
    ) -> list[_WorkingEdge]:
        kept = list(working)
        # 每轮至少删除一条边，轮数不会超过边数
        for _ in range(len(working)):
            back_edge = find_back_edge(order, kept)
            if back_edge is None:
                break
            kept = [item for item in kept if item is not back_edge]
            defects.append(
                StructureDefect(
                    kind=StructureDefectKind.CYCLE_EDGE,
                    edge_index=back_edge.index,
                    edge_id=back_edge.edge.id,
                    source=back_edge.source,
                    target=back_edge.target,
                )
            )
        return kept

    @staticmethod
    def _clear_stray_handles(
        working: list[_WorkingEdge], node_by_id: dict[str, Node], defects: list[StructureDefect]
    ) -> None:
        for item in working:
            if item.edge.has_handle and node_by_id[item.source].kind != NodeType.BRANCH:
                defects.append(
                    StructureDefect(
                        kind=StructureDefectKind.STRAY_HANDLE,
                        edge_index=item.index,
                        edge_id=item.edge.id,
                        source=item.source,
                        target=item.target,
                    )
                )

    @staticmethod
    def _propose_orphan_links(
        nodes: list[Node], working: list[_WorkingEdge], defects: list[StructureDefect]
    ) -> None:
        inputs = [node.id for node in nodes if node.kind == NodeType.INPUT]
        outputs = [node.id for node in nodes if node.kind == NodeType.OUTPUT]
        reach = orphan_reachability(inputs, outputs, working, node_count=len(nodes))
        if reach is None:
            return
        forward, backward = reach
        ranked = sorted(nodes, key=_priority)

        for node in nodes:
            reached = node.id in forward
            reaches_output = node.id in backward
            if reached and reaches_output:
                continue
            rank = _priority(node)
            predecessor = None
            successor = None
            for other in ranked:
                if other.id == node.id:
                    continue
                if _priority(other) < rank:
                    predecessor = other
                elif _priority(other) > rank and successor is None:
                    successor = other

            links: list[tuple[str, str]] = []
            if predecessor is not None and not reached:
                links.append((predecessor.id, node.id))
            if successor is not None and not reaches_output:
                links.append((node.id, successor.id))
            defects.append(
                StructureDefect(
                    kind=StructureDefectKind.ORPHAN_NODE,
                    node_id=node.id,
                    proposed_links=tuple(links),
                )
            )

    @staticmethod
    def _backfill_edge_ids(working: list[_WorkingEdge], defects: list[StructureDefect]) -> None:
        used = {item.edge.id for item in working if item.edge.id}
        for item in working:
            if item.edge.id:
                continue
            new_id = derive_edge_id(item.source, item.target, used)
            used.add(new_id)
            defects.append(
                StructureDefect(
                    kind=StructureDefectKind.MISSING_EDGE_ID,
                    edge_index=item.index,
                    edge_id=new_id,
                    source=item.source,
                    target=item.target,
                )
            )


def _unique_nodes(nodes: list[Node]) -> list[Node]:
    seen: set[str] = set()
    result: list[Node] = []
    for node in nodes:
        if node.id and node.id not in seen:
            seen.add(node.id)
            result.append(node)
    return result


def _priority(node: Node) -> int:
    return _TYPE_PRIORITY.get(node.kind, _DEFAULT_PRIORITY)
