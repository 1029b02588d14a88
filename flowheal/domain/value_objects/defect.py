"""Defect 值对象 - 一次检测产出、两类消费者共享的缺陷描述

- StructureDefect: 图结构缺陷；GraphStructureHealer 渲染为文字，SafeStructureFixer 应用其中可安全执行的部分
- ReferenceDefect: 变量引用缺陷；VariableReferenceHealer 的 suggest/apply 共用
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class StructureDefectKind(str, Enum):
    ENDPOINT_ALIAS = "endpoint_alias"
    DANGLING_EDGE = "dangling_edge"
    DUPLICATE_EDGE = "duplicate_edge"
    CYCLE_EDGE = "cycle_edge"
    STRAY_HANDLE = "stray_handle"
    ORPHAN_NODE = "orphan_node"
    MISSING_EDGE_ID = "missing_edge_id"


# 孤立节点的重连需要猜测用户意图，只报告不执行
SAFE_STRUCTURE_FIXES = frozenset(StructureDefectKind) - {StructureDefectKind.ORPHAN_NODE}


@dataclass(frozen=True, slots=True)
class StructureDefect:
    kind: StructureDefectKind
    edge_index: int | None = None
    node_id: str | None = None
    source: str = ""
    target: str = ""
    endpoint: str | None = None
    original: str | None = None
    edge_id: str | None = None
    proposed_links: tuple[tuple[str, str], ...] = ()

    @property
    def is_safe(self) -> bool:
        return self.kind in SAFE_STRUCTURE_FIXES


class ReferenceResolution(str, Enum):
    """变量引用前缀的解析方式（按尝试顺序）"""

    NODE_ID = "node_id"
    TYPE_ALIAS = "type_alias"
    LABEL_NORMALIZED = "label_normalized"
    FUZZY = "fuzzy"
    FUZZY_SUGGESTION = "fuzzy_suggestion"
    AMBIGUOUS_TYPE = "ambiguous_type"
    UNRESOLVED = "unresolved"


@dataclass(frozen=True, slots=True)
class ReferenceDefect:
    node_id: str
    field_path: str
    expression: str
    prefix: str
    resolution: ReferenceResolution
    label: str | None = None
    replacement: str | None = None
    candidates: tuple[str, ...] = ()

    @property
    def applicable(self) -> bool:
        """只有高置信度的解析结果会被自动改写"""
        return self.replacement is not None
