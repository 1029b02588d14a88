"""VariableReferenceHealer - {{Label.field}} 模板引用的解析与修复

对每个不是精确 label 的引用前缀，按顺序尝试：
(a) 节点 id → label（精确 id，其次是唯一的大小写不敏感 id）
(b) 类型别名（Input/Start、LLM、RAG、Tool/Search、Branch、ImageGen、Output/End）
    - 该类型恰好一个节点时替换为它的 label
    - 该类型有多个节点时只允许 (c) 命中，否则报告歧义，不改写
(c) 忽略空白与大小写的 label 匹配（重复 label 时取第一个）
(d) Levenshtein 模糊匹配：通过 FuzzyMatchPolicy 且最佳候选唯一时才改写，否则只给建议

suggest() 只报告不修改；apply() 在 clone 上改写可安全替换的引用。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.template_references import (
    TemplateReference,
    extract_references,
    iter_template_fields,
    normalize_label,
    rewrite_references,
)
from flowheal.domain.value_objects.defect import ReferenceDefect, ReferenceResolution
from flowheal.domain.value_objects.node_type import NodeType

logger = logging.getLogger(__name__)


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


@dataclass(frozen=True)
class FuzzyMatchPolicy:
    """模糊匹配的接受阈值

    - 前缀长度 <= short_prefix_length 时，只接受距离 <= short_prefix_max_distance
    - 其余情况接受距离 <= max_distance 或 <= max_ratio * 前缀长度
    """

    max_distance: int = 2
    max_ratio: float = 0.3
    short_prefix_length: int = 3
    short_prefix_max_distance: int = 1

    def accepts(self, prefix: str, distance: int) -> bool:
        length = len(prefix)
        if length <= self.short_prefix_length:
            return distance <= self.short_prefix_max_distance
        return distance <= self.max_distance or distance <= self.max_ratio * length


@dataclass
class VariableHealResult:
    workflow: Workflow
    fixes: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    available_labels: list[str] = field(default_factory=list)
    defects: list[ReferenceDefect] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(defect.applicable for defect in self.defects)


@dataclass(frozen=True)
class _Resolution:
    kind: ReferenceResolution
    label: str | None = None
    candidates: tuple[str, ...] = ()

    @property
    def rewrites(self) -> bool:
        return self.kind in (
            ReferenceResolution.NODE_ID,
            ReferenceResolution.TYPE_ALIAS,
            ReferenceResolution.LABEL_NORMALIZED,
            ReferenceResolution.FUZZY,
        )


class _LabelIndex:
    def __init__(self, nodes: list[Node], policy: FuzzyMatchPolicy) -> None:
        self._policy = policy
        self.labels: list[str] = []
        self._node_by_id: dict[str, Node] = {}
        self._ids_by_lower: dict[str, list[str]] = {}
        self._label_by_norm: dict[str, str] = {}
        self._labels_by_kind: dict[NodeType, list[str]] = {}
        self._cache: dict[str, _Resolution | None] = {}

        for node in nodes:
            if node.id and node.id not in self._node_by_id:
                self._node_by_id[node.id] = node
                self._ids_by_lower.setdefault(node.id.lower(), []).append(node.id)
            label = node.label
            if not label.strip():
                continue
            if label not in self.labels:
                self.labels.append(label)
            self._label_by_norm.setdefault(normalize_label(label), label)
            if node.kind is not None:
                self._labels_by_kind.setdefault(node.kind, []).append(label)

    def resolve(self, prefix: str) -> _Resolution | None:
        """精确 label 返回 None（无需处理）"""
        if prefix not in self._cache:
            self._cache[prefix] = self._resolve(prefix)
        return self._cache[prefix]

    def _resolve(self, prefix: str) -> _Resolution | None:
        if not prefix or prefix in self.labels:
            return None

        node = self._node_by_id.get(prefix)
        if node is None:
            same_id = self._ids_by_lower.get(prefix.lower(), [])
            node = self._node_by_id[same_id[0]] if len(same_id) == 1 else None
        if node is not None and node.label.strip():
            return _Resolution(ReferenceResolution.NODE_ID, node.label)

        by_norm = self._label_by_norm.get(normalize_label(prefix))
        alias = NodeType.from_reference_alias(prefix)
        if alias is not None:
            of_kind = self._labels_by_kind.get(alias, [])
            if len(of_kind) == 1:
                return _Resolution(ReferenceResolution.TYPE_ALIAS, of_kind[0])
            if len(of_kind) > 1:
                if by_norm is not None:
                    return _Resolution(ReferenceResolution.LABEL_NORMALIZED, by_norm)
                return _Resolution(ReferenceResolution.AMBIGUOUS_TYPE, candidates=tuple(of_kind))

        if by_norm is not None:
            return _Resolution(ReferenceResolution.LABEL_NORMALIZED, by_norm)

        return self._fuzzy(prefix)

    def _fuzzy(self, prefix: str) -> _Resolution:
        if not self.labels:
            return _Resolution(ReferenceResolution.UNRESOLVED)
        target = normalize_label(prefix)
        scored = [(levenshtein_distance(target, normalize_label(label)), label) for label in self.labels]
        best_distance = min(distance for distance, _ in scored)
        best = tuple(label for distance, label in scored if distance == best_distance)
        if len(best) == 1 and self._policy.accepts(target, best_distance):
            return _Resolution(ReferenceResolution.FUZZY, best[0])
        return _Resolution(ReferenceResolution.FUZZY_SUGGESTION, best[0], candidates=best)


@dataclass(frozen=True)
class VariableReferenceHealer:
    policy: FuzzyMatchPolicy = field(default_factory=FuzzyMatchPolicy)

    def detect(self, workflow: Workflow) -> list[ReferenceDefect]:
        index = _LabelIndex(workflow.nodes, self.policy)
        defects: list[ReferenceDefect] = []
        for node in workflow.nodes:
            for template_field in iter_template_fields(node.data):
                for reference in extract_references(template_field.value):
                    resolution = index.resolve(reference.prefix)
                    if resolution is None:
                        continue
                    defects.append(
                        ReferenceDefect(
                            node_id=node.id,
                            field_path=template_field.path,
                            expression=reference.expression,
                            prefix=reference.prefix,
                            resolution=resolution.kind,
                            label=resolution.label,
                            replacement=(
                                reference.with_prefix(resolution.label)
                                if resolution.rewrites and resolution.label
                                else None
                            ),
                            candidates=resolution.candidates,
                        )
                    )
        return defects

    def suggest(self, workflow: Workflow) -> VariableHealResult:
        """只报告：返回的 workflow 就是输入本身"""
        defects = self.detect(workflow)
        labels = _LabelIndex(workflow.nodes, self.policy).labels
        fixes, errors = _render(defects, labels, applied=False)
        return VariableHealResult(
            workflow=workflow,
            fixes=fixes,
            errors=errors,
            available_labels=labels,
            defects=defects,
        )

    def apply(self, workflow: Workflow) -> VariableHealResult:
        """在 clone 上改写所有可安全替换的引用"""
        defects = self.detect(workflow)
        healed = workflow.clone()
        index = _LabelIndex(healed.nodes, self.policy)

        def _rewrite(reference: TemplateReference) -> str | None:
            resolution = index.resolve(reference.prefix)
            if resolution is None or not resolution.rewrites or not resolution.label:
                return None
            return reference.with_prefix(resolution.label)

        for node in healed.nodes:
            for template_field in list(iter_template_fields(node.data)):
                rewritten = rewrite_references(template_field.value, _rewrite)
                if rewritten != template_field.value:
                    template_field.replace(rewritten)

        fixes, errors = _render(defects, index.labels, applied=True)
        if fixes:
            logger.info("variable_references_healed", extra={"fix_count": len(fixes)})
        return VariableHealResult(
            workflow=healed,
            fixes=fixes,
            errors=errors,
            available_labels=index.labels,
            defects=defects,
        )


def _render(
    defects: list[ReferenceDefect], labels: list[str], *, applied: bool
) -> tuple[list[str], list[str]]:
    fixes: list[str] = []
    errors: list[str] = []
    verb = "已将" if applied else "建议将"
    for defect in defects:
        original = "{{" + defect.expression + "}}"
        if defect.replacement is not None:
            fixes.append(f"节点 '{defect.node_id}': {verb} '{original}' 替换为 '{{{{{defect.replacement}}}}}'")
        elif defect.resolution is ReferenceResolution.AMBIGUOUS_TYPE:
            errors.append(
                f"节点 '{defect.node_id}' 的引用 '{original}' 有歧义: "
                f"存在多个该类型节点（{', '.join(defect.candidates)}），请改用具体的节点名称"
            )
        elif defect.resolution is ReferenceResolution.FUZZY_SUGGESTION:
            errors.append(
                f"节点 '{defect.node_id}' 引用了不存在的变量 '{original}'，你是不是想用 '{defect.label}'？"
            )
        else:
            available = ", ".join(labels) if labels else "无"
            errors.append(
                f"节点 '{defect.node_id}' 引用了不存在的变量 '{original}'。可用节点名称: {available}"
            )
    return fixes, errors
