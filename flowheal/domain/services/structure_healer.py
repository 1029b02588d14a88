"""GraphStructureHealer - 结构修复预览（只报告，不修改）

返回的 nodes/edges 就是输入对象本身；fixes 是把每个结构缺陷渲染成的修复说明，
用于在真正执行 SafeStructureFixer 之前给出"会做什么"的预览。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.structure_defects import StructureDefectDetector
from flowheal.domain.value_objects.defect import StructureDefect, StructureDefectKind

logger = logging.getLogger(__name__)


@dataclass
class StructureHealPreview:
    nodes: list[Node]
    edges: list[Edge]
    fixes: list[str] = field(default_factory=list)
    defects: list[StructureDefect] = field(default_factory=list)


def describe_structure_defect(defect: StructureDefect, names: dict[str, str]) -> str:
    """把结构缺陷渲染为一条修复说明"""

    def name(node_id: str) -> str:
        return names.get(node_id, node_id)

    kind = defect.kind
    if kind is StructureDefectKind.ENDPOINT_ALIAS:
        resolved = defect.source if defect.endpoint == "source" else defect.target
        return f"规范化连线端点: {defect.endpoint} '{defect.original}' → '{resolved}'"
    if kind is StructureDefectKind.DANGLING_EDGE:
        return f"删除无效边: {defect.source or '?'} → {defect.target or '?'}（节点不存在）"
    if kind is StructureDefectKind.DUPLICATE_EDGE:
        return f"删除重复边: {defect.source} → {defect.target}"
    if kind is StructureDefectKind.CYCLE_EDGE:
        return f'修复循环依赖: 删除边 "{name(defect.source)}" → "{name(defect.target)}"'
    if kind is StructureDefectKind.STRAY_HANDLE:
        return f"清除普通连线的 sourceHandle: {defect.source} → {defect.target}"
    if kind is StructureDefectKind.ORPHAN_NODE:
        node_name = name(defect.node_id or "")
        if not defect.proposed_links:
            return f'孤立节点 "{node_name}" 没有可连接的前驱或后继'
        links = "，".join(f'"{name(s)}" → "{name(t)}"' for s, t in defect.proposed_links)
        return f'建议连接孤立节点 "{node_name}": {links}'
    return f"补齐连线 id: {defect.source} → {defect.target} 记为 {defect.edge_id}"


def display_names(workflow: Workflow) -> dict[str, str]:
    names: dict[str, str] = {}
    for node in workflow.nodes:
        if node.id:
            names.setdefault(node.id, node.display_name())
    return names


@dataclass(frozen=True)
class GraphStructureHealer:
    detector: StructureDefectDetector = field(default_factory=StructureDefectDetector)

    def preview(self, workflow: Workflow) -> StructureHealPreview:
        defects = self.detector.detect(workflow)
        names = display_names(workflow)
        fixes = [describe_structure_defect(defect, names) for defect in defects]
        if fixes:
            logger.info(
                "structure_heal_preview",
                extra={"defect_count": len(defects), "node_count": len(workflow.nodes)},
            )
        return StructureHealPreview(
            nodes=workflow.nodes,
            edges=workflow.edges,
            fixes=fixes,
            defects=defects,
        )
