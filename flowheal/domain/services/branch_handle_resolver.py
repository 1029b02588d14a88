"""BranchHandleResolver - 为二路分支的出边确定性地分配 true/false

规则（只处理恰好两条出边的分支节点）：
- 两条边已是不同的 true/false：不变
- 只有一条边有合法 handle：另一条取互补值
- 都没有合法 handle（或两条相同）：按目标节点纵坐标排序（缺失 y 排最后），
  再按目标 id、边 id 排序，靠上的为 "true"，另一条为 "false"
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.value_objects.node_type import NodeType

_COMPLEMENT = {"true": "false", "false": "true"}


@dataclass(frozen=True, slots=True)
class BranchHandleFix:
    branch_id: str
    edge_id: str | None
    target: str
    handle: str
    reason: str

    def describe(self) -> str:
        edge_ref = self.edge_id or f"→ {self.target}"
        return f"分支 '{self.branch_id}' 的连线 {edge_ref} 标记为 {self.handle}（{self.reason}）"


@dataclass
class BranchHandleResult:
    edges: list[Edge]
    fixes: list[BranchHandleFix] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.fixes)


class BranchHandleResolver:
    def resolve(self, workflow: Workflow) -> BranchHandleResult:
        """返回新的边列表；未改动的边保持原对象"""
        edges = list(workflow.edges)
        fixes: list[BranchHandleFix] = []
        node_ids = workflow.node_ids()
        y_by_id: dict[str, float] = {}
        for node in workflow.nodes:
            if node.id and node.position is not None and node.id not in y_by_id:
                y_by_id[node.id] = node.position.y

        seen_branches: set[str] = set()
        for node in workflow.nodes:
            if node.kind != NodeType.BRANCH or node.id in seen_branches:
                continue
            seen_branches.add(node.id)
            positions = [
                index
                for index, edge in enumerate(edges)
                if edge.source == node.id and edge.target in node_ids
            ]
            if len(positions) != 2:
                continue
            first, second = (edges[index] for index in positions)
            assigned = self._assign(first, second, y_by_id)
            if assigned is None:
                continue
            reason, handles = assigned
            for index, handle in zip(positions, handles):
                edge = edges[index]
                if edge.source_handle == handle:
                    continue
                edges[index] = replace(edge, source_handle=handle, extra=dict(edge.extra))
                fixes.append(
                    BranchHandleFix(
                        branch_id=node.id,
                        edge_id=edge.id,
                        target=edge.target,
                        handle=handle,
                        reason=reason,
                    )
                )
        return BranchHandleResult(edges=edges, fixes=fixes)

    @staticmethod
    def _assign(
        first: Edge, second: Edge, y_by_id: dict[str, float]
    ) -> tuple[str, tuple[str, str]] | None:
        first_ok, second_ok = first.has_branch_handle, second.has_branch_handle
        if first_ok and second_ok and first.source_handle != second.source_handle:
            return None
        if first_ok and not second_ok:
            return "补齐互补值", (first.source_handle, _COMPLEMENT[first.source_handle])
        if second_ok and not first_ok:
            return "补齐互补值", (_COMPLEMENT[second.source_handle], second.source_handle)

        def sort_key(edge: Edge) -> tuple[int, float, str, str]:
            y = y_by_id.get(edge.target)
            return (0 if y is not None else 1, y if y is not None else 0.0, edge.target, edge.id or "")

        ordered = sorted((first, second), key=sort_key)
        top = ordered[0]
        handles = ("true", "false") if top is first else ("false", "true")
        return "按目标节点位置分配", handles
