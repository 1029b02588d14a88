"""DeterministicWorkflowFixer - 生成式工作流的确定性修复流水线

顺序：
1. only_fix_when_invalid：校验通过则原样返回
2. （可选）补齐 Input/Output 节点
3. 只有一个 Input 时，为缺少 inputMappings.user_input 的 LLM 节点补齐引用
4. SafeStructureFixer（结构修复）
5. VariableReferenceHealer.apply（变量引用修复）
6. （可选）字段别名规范化：Input.text → Input.user_input，LLM.answer → LLM.response
7. BranchHandleResolver（分支 true/false）
8. 2-7 重复执行直到图不再变化（最多 MAX_FIX_ROUNDS 轮）
9. 复核：硬错误数多于修复前时回退到原图

孤立节点的重连建议、无法自动修复的引用只作为 findings 返回。
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.branch_handle_resolver import BranchHandleResolver
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator
from flowheal.domain.services.io_node_completion import InputOutputCompleter, reference_name
from flowheal.domain.services.safe_structure_fixer import SafeStructureFixer
from flowheal.domain.services.template_references import (
    TemplateReference,
    iter_template_fields,
    rewrite_references,
)
from flowheal.domain.services.validation_spec import ValidationProfile
from flowheal.domain.services.variable_reference_healer import VariableReferenceHealer
from flowheal.domain.value_objects.node_type import NodeType
from flowheal.domain.value_objects.validation_issue import ValidationIssue

logger = logging.getLogger(__name__)

# 模型常用但不存在的输出字段
_FIELD_ALIASES: dict[NodeType, dict[str, str]] = {
    NodeType.INPUT: {".text": ".user_input"},
    NodeType.LLM: {".answer": ".response"},
}

MAX_FIX_ROUNDS = 4


@dataclass(frozen=True)
class FixOptions:
    only_fix_when_invalid: bool = True
    include_input_output: bool = False
    fill_llm_user_input: bool = True
    rewrite_field_aliases: bool = False


@dataclass
class FixOutcome:
    workflow: Workflow
    fixes: list[str] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)
    errors_before: list[ValidationIssue] = field(default_factory=list)
    remaining_errors: list[ValidationIssue] = field(default_factory=list)
    reverted: bool = False

    @property
    def is_valid(self) -> bool:
        return not self.remaining_errors


@dataclass
class _PassResult:
    workflow: Workflow
    fixes: list[str]
    findings: list[str]


@dataclass(frozen=True)
class DeterministicWorkflowFixer:
    validator: GraphStructureValidator
    structure_fixer: SafeStructureFixer
    variable_healer: VariableReferenceHealer = field(default_factory=VariableReferenceHealer)
    branch_resolver: BranchHandleResolver = field(default_factory=BranchHandleResolver)
    io_completer: InputOutputCompleter = field(default_factory=InputOutputCompleter)

    @classmethod
    def create(cls, validator: GraphStructureValidator) -> DeterministicWorkflowFixer:
        return cls(validator=validator, structure_fixer=SafeStructureFixer(validator=validator))

    def fix(self, workflow: Workflow, options: FixOptions | None = None) -> FixOutcome:
        options = options or FixOptions()
        before = self.validator.validate_workflow(workflow)
        if options.only_fix_when_invalid and before.is_valid:
            return FixOutcome(workflow=workflow)

        # 重复执行 2-7 直到图不再变化，保证对修复结果再修复一次得到同样的图
        current = workflow.clone()
        fixes: list[str] = []
        findings: list[str] = []
        for _ in range(MAX_FIX_ROUNDS):
            passed = self._run_passes(current, options)
            findings = passed.findings
            if passed.workflow.to_dict() == current.to_dict():
                break
            fixes.extend(passed.fixes)
            current = passed.workflow

        after = self.validator.validate_workflow(current)
        if after.error_count > before.error_count:
            logger.warning(
                f"确定性修复未改善工作流（{before.error_count} → {after.error_count}），回退到原图",
            )
            return FixOutcome(
                workflow=workflow.clone(),
                findings=findings,
                errors_before=list(before.hard_errors),
                remaining_errors=list(before.hard_errors),
                reverted=True,
            )

        logger.info(
            "deterministic_fix_completed",
            extra={
                "profile": self.validator.profile.value,
                "fix_count": len(fixes),
                "hard_errors_before": before.error_count,
                "hard_errors_after": after.error_count,
            },
        )
        return FixOutcome(
            workflow=current,
            fixes=fixes,
            findings=findings,
            errors_before=list(before.hard_errors),
            remaining_errors=list(after.hard_errors),
        )

    def _run_passes(self, workflow: Workflow, options: FixOptions) -> _PassResult:
        """执行一轮 2-7，不修改入参"""
        fixes: list[str] = []
        findings: list[str] = []
        current = workflow.clone()

        if options.include_input_output:
            completion = self.io_completer.complete(current)
            current = completion.workflow
            fixes.extend(completion.fixes)

        if options.fill_llm_user_input:
            patched = _fill_llm_user_input(current)
            if patched:
                fixes.append(f"为 {patched} 个 LLM 节点补齐 inputMappings.user_input")

        structure = self.structure_fixer.fix(current, only_fix_when_invalid=False)
        current = structure.workflow
        fixes.extend(structure.fixes)
        findings.extend(structure.findings)

        variables = self.variable_healer.apply(current)
        current = variables.workflow
        fixes.extend(variables.fixes)
        findings.extend(variables.errors)

        if options.rewrite_field_aliases:
            rewritten = _rewrite_field_aliases(current)
            if rewritten:
                fixes.append(f"规范化 {rewritten} 处字段别名（text → user_input / answer → response）")

        branches = self.branch_resolver.resolve(current)
        current.edges = branches.edges
        fixes.extend(fix.describe() for fix in branches.fixes)
        return _PassResult(workflow=current, fixes=fixes, findings=findings)


def _fill_llm_user_input(workflow: Workflow) -> int:
    inputs = [node for node in workflow.nodes_of_kind(NodeType.INPUT) if node.id]
    if len(inputs) != 1:
        return 0
    reference = "{{" + f"{reference_name(inputs[0])}.user_input" + "}}"

    patched = 0
    for node in workflow.nodes:
        if node.kind != NodeType.LLM:
            continue
        mappings = node.data.get("inputMappings")
        if not isinstance(mappings, dict):
            mappings = {}
        current = mappings.get("user_input")
        if isinstance(current, str) and current.strip():
            continue
        node.data["inputMappings"] = {**mappings, "user_input": reference}
        patched += 1
    return patched


def _rewrite_field_aliases(workflow: Workflow) -> int:
    kind_by_label = {}
    for node in workflow.nodes:
        if node.label.strip() and node.kind is not None:
            kind_by_label.setdefault(node.label, node.kind)

    count = 0

    def _rewrite(reference: TemplateReference) -> str | None:
        nonlocal count
        aliases = _FIELD_ALIASES.get(kind_by_label.get(reference.prefix))  # type: ignore[arg-type]
        if not aliases or reference.rest not in aliases:
            return None
        count += 1
        return f"{reference.prefix}{aliases[reference.rest]}"

    for node in workflow.nodes:
        for template_field in list(iter_template_fields(node.data)):
            rewritten = rewrite_references(template_field.value, _rewrite)
            if rewritten != template_field.value:
                template_field.replace(rewritten)
    return count


def default_fixer(profile: ValidationProfile = ValidationProfile.GENERATED) -> DeterministicWorkflowFixer:
    return DeterministicWorkflowFixer.create(GraphStructureValidator(profile=profile))
