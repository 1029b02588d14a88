"""SafeStructureFixer - 确定性、幂等的结构修复（Domain Service）

只执行不需要猜测用户意图的修复：
- 连线端点规范化（大小写不敏感 id、label → id）
- 删除端点无法解析的连线
- 删除重复连线（保留第一次出现）
- 删除环的闭合边直到无环
- 清除普通连线上的 sourceHandle
- 为缺少 id 的连线生成 edge_<source>_<target>（冲突时追加 _n）

孤立节点的重连建议只作为 findings 返回，不会执行。

契约：
- 永不修改输入（先 clone）；永不抛异常
- only_fix_when_invalid=True 时，对已合法的图直接原样返回
- fix(fix(W)) == fix(W)
- 修复后的硬错误数量不会多于修复前；否则回退到原图
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator
from flowheal.domain.services.structure_defects import StructureDefectDetector
from flowheal.domain.services.structure_healer import describe_structure_defect, display_names
from flowheal.domain.value_objects.defect import StructureDefect, StructureDefectKind
from flowheal.domain.value_objects.validation_issue import ValidationIssue

logger = logging.getLogger(__name__)

_REMOVALS = frozenset(
    {
        StructureDefectKind.DANGLING_EDGE,
        StructureDefectKind.DUPLICATE_EDGE,
        StructureDefectKind.CYCLE_EDGE,
    }
)


@dataclass
class StructureFixResult:
    workflow: Workflow
    fixes: list[str] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)
    applied: list[StructureDefect] = field(default_factory=list)
    remaining_errors: list[ValidationIssue] = field(default_factory=list)
    reverted: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.applied) and not self.reverted


@dataclass(frozen=True)
class SafeStructureFixer:
    validator: GraphStructureValidator = field(default_factory=GraphStructureValidator)
    detector: StructureDefectDetector = field(default_factory=StructureDefectDetector)
    only_fix_when_invalid: bool = True

    def fix(self, workflow: Workflow, *, only_fix_when_invalid: bool | None = None) -> StructureFixResult:
        gate = self.only_fix_when_invalid if only_fix_when_invalid is None else only_fix_when_invalid
        before = self.validator.validate_workflow(workflow)
        if gate and before.is_valid:
            return StructureFixResult(workflow=workflow)

        defects = self.detector.detect(workflow)
        names = display_names(workflow)
        safe = [defect for defect in defects if defect.is_safe]
        findings = [describe_structure_defect(d, names) for d in defects if not d.is_safe]

        fixed = workflow.clone()
        apply_structure_defects(fixed, safe)
        after = self.validator.validate_workflow(fixed)

        if after.error_count > before.error_count:
            logger.warning(
                f"结构修复使硬错误增加（{before.error_count} → {after.error_count}），已回退",
            )
            return StructureFixResult(
                workflow=workflow.clone(),
                findings=findings,
                remaining_errors=list(before.hard_errors),
                reverted=True,
            )

        fixes = [describe_structure_defect(defect, names) for defect in safe]
        if fixes:
            logger.info(
                "structure_fix_applied",
                extra={
                    "fix_count": len(fixes),
                    "hard_errors_before": before.error_count,
                    "hard_errors_after": after.error_count,
                },
            )
        return StructureFixResult(
            workflow=fixed,
            fixes=fixes,
            findings=findings,
            applied=safe,
            remaining_errors=list(after.hard_errors),
        )


def apply_structure_defects(workflow: Workflow, defects: list[StructureDefect]) -> None:
    """按缺陷列表原地修改 workflow.edges（调用方负责先 clone）"""
    removed: set[int] = set()
    endpoints: dict[int, tuple[str, str]] = {}
    cleared: set[int] = set()
    new_ids: dict[int, str] = {}

    for defect in defects:
        index = defect.edge_index
        if index is None:
            continue
        if defect.kind in _REMOVALS:
            removed.add(index)
        elif defect.kind is StructureDefectKind.ENDPOINT_ALIAS:
            endpoints[index] = (defect.source, defect.target)
        elif defect.kind is StructureDefectKind.STRAY_HANDLE:
            cleared.add(index)
        elif defect.kind is StructureDefectKind.MISSING_EDGE_ID and defect.edge_id:
            new_ids[index] = defect.edge_id

    kept = []
    for index, edge in enumerate(workflow.edges):
        if index in removed:
            continue
        if index in endpoints:
            edge.source, edge.target = endpoints[index]
        if index in cleared:
            edge.source_handle = None
        if index in new_ids:
            edge.id = new_ids[index]
        kept.append(edge)
    workflow.edges = kept
