"""GraphStructureValidator - 生成式工作流硬错误校验（Domain Service）

约束：
- 纯函数：只读输入，永不抛异常，总是返回 ValidationReport
- 所有规则每次都完整执行（不短路），同一输入的报告顺序稳定
- 错误码与消息来自 ValidationSpec（hard_errors_v1.yaml）

档位：
- STRUCTURE：节点标识、连线端点、环、重复边、孤立节点、分支形状、RAG 检索配置
- GENERATED：再加 label 规范、Input/Output 存在性、各类型节点配置、变量引用
"""

from __future__ import annotations

import logging
import math
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from flowheal.domain.entities.edge import BRANCH_HANDLES, Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.exceptions import WorkflowParseError
from flowheal.domain.services.graph_analysis import find_back_edge, orphan_reachability
from flowheal.domain.services.template_references import (
    extract_references,
    iter_template_fields,
    normalize_label,
)
from flowheal.domain.services.validation_spec import ValidationProfile, ValidationSpec
from flowheal.domain.value_objects.node_type import NodeType
from flowheal.domain.value_objects.validation_issue import ValidationIssue, ValidationReport

logger = logging.getLogger(__name__)

RESERVED_LABEL_PREFIXES = ("node_", "edge_", "auto_")
OUTPUT_MODES = ("direct", "select", "merge", "template")
LLM_RESPONSE_FORMATS = ("text", "json_object")

_FORM_FIELD_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _is_non_empty_str(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class _IssueCollector:
    def __init__(self, spec: ValidationSpec) -> None:
        self._spec = spec
        self.issues: list[ValidationIssue] = []

    def add(self, code: str, **location: Any) -> None:
        self.issues.append(self._spec.issue(code, **location))


@dataclass(frozen=True)
class GraphStructureValidator:
    spec: ValidationSpec = field(default_factory=ValidationSpec.load)
    profile: ValidationProfile = ValidationProfile.STRUCTURE

    def validate_workflow(self, workflow: Workflow) -> ValidationReport:
        return self.validate(workflow.nodes, workflow.edges)

    def validate_raw(self, raw_nodes: Any, raw_edges: Any) -> ValidationReport:
        """模型原始输出入口：nodes/edges 不是数组时报告 FFV-SCHEMA-002"""
        try:
            workflow = Workflow.from_raw(raw_nodes, raw_edges)
        except WorkflowParseError:
            collector = _IssueCollector(self.spec)
            collector.add("FFV-SCHEMA-002")
            return ValidationReport(hard_errors=collector.issues)
        return self.validate_workflow(workflow)

    def validate(self, nodes: list[Node], edges: list[Edge]) -> ValidationReport:
        collector = _IssueCollector(self.spec)
        if not nodes:
            collector.add("FFV-SCHEMA-001")
            return ValidationReport(hard_errors=collector.issues)

        generated = self.profile is ValidationProfile.GENERATED
        unique_nodes = self._check_node_identity(nodes, collector)
        node_by_id = {node.id: node for node in unique_nodes}

        if generated:
            self._check_labels(unique_nodes, collector)
            self._check_io_presence(unique_nodes, collector)

        valid_edges = self._check_edges(edges, node_by_id, collector)
        self._check_branch_shapes(unique_nodes, valid_edges, collector, generated=generated)
        self._check_branch_convergence(valid_edges, node_by_id, collector)
        self._check_cycle(unique_nodes, valid_edges, collector)
        self._check_orphans(unique_nodes, valid_edges, collector)

        for node in unique_nodes:
            if node.kind == NodeType.RAG:
                self._check_rag(node, collector)
            if generated:
                self._check_node_config(node, collector)

        if generated:
            self._check_variable_references(unique_nodes, collector)

        report = ValidationReport(hard_errors=collector.issues)
        logger.debug(
            "workflow_validated",
            extra={
                "profile": self.profile.value,
                "node_count": len(nodes),
                "edge_count": len(edges),
                "hard_error_count": report.error_count,
            },
        )
        return report

    # ---- 节点标识 -------------------------------------------------------

    @staticmethod
    def _check_node_identity(nodes: list[Node], collector: _IssueCollector) -> list[Node]:
        """返回第一次出现的合法节点（重复 id 只保留第一个）"""
        unique: list[Node] = []
        seen: set[str] = set()
        for node in nodes:
            if not node.id or not node.type:
                collector.add("FFV-NODE-001", node_id=node.id)
                continue
            if any(ch.isspace() for ch in node.id):
                collector.add("FFV-NODE-001", node_id=node.id, hint="节点 id 不能包含空白字符")
                continue
            if node.id in seen:
                collector.add("FFV-NODE-002", node_id=node.id)
                continue
            seen.add(node.id)
            unique.append(node)
        return unique

    @staticmethod
    def _check_labels(nodes: list[Node], collector: _IssueCollector) -> None:
        ids_by_label: dict[str, list[str]] = {}
        for node in nodes:
            if node.kind is None:
                collector.add("FFV-NODE-006", node_id=node.id, field_path="type")
            if not node.label.strip():
                collector.add("FFV-NODE-003", node_id=node.id, field_path="data.label")
                continue
            ids_by_label.setdefault(normalize_label(node.label), []).append(node.id)

        for norm, ids in ids_by_label.items():
            if norm.startswith(RESERVED_LABEL_PREFIXES):
                for node_id in ids:
                    collector.add("FFV-NODE-005", node_id=node_id, field_path="data.label")
            if len(ids) > 1:
                collector.add("FFV-NODE-004", node_id=ids[0], field_path="data.label")

    @staticmethod
    def _check_io_presence(nodes: list[Node], collector: _IssueCollector) -> None:
        kinds = {node.kind for node in nodes}
        if NodeType.INPUT not in kinds:
            collector.add("FFV-GRAPH-001")
        if NodeType.OUTPUT not in kinds:
            collector.add("FFV-GRAPH-002")

    # ---- 连线 -----------------------------------------------------------

    @staticmethod
    def _check_edges(
        edges: list[Edge], node_by_id: dict[str, Node], collector: _IssueCollector
    ) -> list[Edge]:
        """返回端点有效的连线（重复连线也保留，供后续规则使用）"""
        valid: list[Edge] = []
        for edge in edges:
            if not edge.source or not edge.target:
                collector.add("FFV-EDGE-001", edge_id=edge.id)
                continue
            if edge.source not in node_by_id or edge.target not in node_by_id:
                missing = edge.source if edge.source not in node_by_id else edge.target
                collector.add("FFV-STRUCT-002", edge_id=edge.id, hint=f"节点不存在: {missing}")
                continue
            valid.append(edge)

        seen_pairs: set[tuple[str, str]] = set()
        for edge in valid:
            if edge.pair in seen_pairs:
                collector.add(
                    "FFV-STRUCT-003",
                    edge_id=edge.id,
                    node_id=edge.source,
                    hint=f"{edge.source} → {edge.target}",
                )
            else:
                seen_pairs.add(edge.pair)

            if node_by_id[edge.source].kind != NodeType.BRANCH and edge.has_handle:
                collector.add(
                    "FFV-BRANCH-003", edge_id=edge.id, node_id=edge.source, field_path="sourceHandle"
                )
        return valid

    # ---- 分支 -----------------------------------------------------------

    @staticmethod
    def _check_branch_shapes(
        nodes: list[Node], edges: list[Edge], collector: _IssueCollector, *, generated: bool
    ) -> None:
        for node in nodes:
            if node.kind != NodeType.BRANCH:
                continue
            outgoing = [edge for edge in edges if edge.source == node.id]
            if len(outgoing) != 2:
                collector.add("FFV-BRANCH-001", node_id=node.id, hint=f"当前出边数: {len(outgoing)}")
            else:
                handles = [edge.source_handle for edge in outgoing]
                if sorted(h for h in handles if h in BRANCH_HANDLES) != ["false", "true"]:
                    collector.add("FFV-BRANCH-002", node_id=node.id, field_path="sourceHandle")
            if generated and not node.data.get("condition"):
                collector.add("FFV-BRANCH-005", node_id=node.id, field_path="data.condition")

    @staticmethod
    def _check_branch_convergence(
        edges: list[Edge], node_by_id: dict[str, Node], collector: _IssueCollector
    ) -> None:
        handles_by_target: dict[str, dict[str, set[str]]] = {}
        for edge in edges:
            if node_by_id[edge.source].kind != NodeType.BRANCH:
                continue
            per_branch = handles_by_target.setdefault(edge.target, {})
            handles = per_branch.setdefault(edge.source, set())
            if edge.has_branch_handle:
                handles.add(edge.source_handle)

        for target_id, per_branch in handles_by_target.items():
            if node_by_id[target_id].kind == NodeType.OUTPUT:
                continue
            for branch_id, handles in per_branch.items():
                if set(BRANCH_HANDLES) <= handles:
                    collector.add(
                        "FFV-BRANCH-004",
                        node_id=target_id,
                        hint=f"互斥分支不应在非 Output 节点汇聚（来源分支: {branch_id}）",
                    )
                    break

    # ---- 图结构 ---------------------------------------------------------

    @staticmethod
    def _check_cycle(nodes: list[Node], edges: list[Edge], collector: _IssueCollector) -> None:
        back_edge = find_back_edge([node.id for node in nodes], edges)
        if back_edge is not None:
            collector.add(
                "FFV-STRUCT-001",
                edge_id=back_edge.id,
                node_id=back_edge.source,
                hint=f"闭合边: {back_edge.source} → {back_edge.target}",
            )

    @staticmethod
    def _check_orphans(nodes: list[Node], edges: list[Edge], collector: _IssueCollector) -> None:
        inputs = [node.id for node in nodes if node.kind == NodeType.INPUT]
        outputs = [node.id for node in nodes if node.kind == NodeType.OUTPUT]
        reach = orphan_reachability(inputs, outputs, edges, node_count=len(nodes))
        if reach is None:
            return
        forward, backward = reach
        for node in nodes:
            if node.id not in forward or node.id not in backward:
                collector.add("FFV-STRUCT-004", node_id=node.id)

    # ---- 节点配置 -------------------------------------------------------

    @staticmethod
    def _check_rag(node: Node, collector: _IssueCollector) -> None:
        data = node.data
        mappings = data.get("inputMappings")
        mappings = mappings if isinstance(mappings, dict) else {}
        query_ok = _is_non_empty_str(mappings.get("query"))
        has_files = any(mappings.get(key) for key in ("files", "files2", "files3"))
        store_name = data.get("fileSearchStoreName")
        store_name = store_name.strip() if isinstance(store_name, str) else ""
        file_mode = data.get("fileMode") if isinstance(data.get("fileMode"), str) else ""
        effective_mode = file_mode or ("static" if store_name else "variable" if has_files else "")

        if effective_mode == "variable":
            ok = query_ok and has_files
        elif effective_mode == "static":
            ok = query_ok and bool(store_name)
        else:
            ok = False
        if not ok:
            collector.add("FFV-RAG-001", node_id=node.id, hint=f"fileMode={effective_mode or '未配置'}")

    def _check_node_config(self, node: Node, collector: _IssueCollector) -> None:
        kind = node.kind
        if kind == NodeType.LLM:
            self._check_llm(node, collector)
        elif kind == NodeType.TOOL:
            if not node.data.get("toolType"):
                collector.add("FFV-TOOL-001", node_id=node.id, field_path="data.toolType")
        elif kind == NodeType.OUTPUT:
            self._check_output(node, collector)
        elif kind == NodeType.INPUT:
            self._check_input(node, collector)

    @staticmethod
    def _check_llm(node: Node, collector: _IssueCollector) -> None:
        data = node.data
        for key in ("model", "systemPrompt"):
            if key in data and not isinstance(data[key], str):
                collector.add(
                    "FFV-LLM-001", node_id=node.id, field_path=f"data.{key}", hint=f"{key} 必须是字符串"
                )

        mappings = data.get("inputMappings")
        user_input = mappings.get("user_input") if isinstance(mappings, dict) else None
        if not _is_non_empty_str(user_input):
            collector.add(
                "FFV-LLM-002",
                node_id=node.id,
                field_path="data.inputMappings.user_input",
                hint="LLM 节点必须配置 inputMappings.user_input",
            )

        if "temperature" in data:
            temperature = data["temperature"]
            if not _is_number(temperature) or math.isnan(temperature) or not 0 <= temperature <= 1:
                collector.add(
                    "FFV-LLM-001",
                    node_id=node.id,
                    field_path="data.temperature",
                    hint="temperature 必须是 0-1 之间的数字",
                )

        if "responseFormat" in data and data["responseFormat"] not in LLM_RESPONSE_FORMATS:
            collector.add(
                "FFV-LLM-001",
                node_id=node.id,
                field_path="data.responseFormat",
                hint='responseFormat 只能是 "text" 或 "json_object"',
            )

    @staticmethod
    def _check_output(node: Node, collector: _IssueCollector) -> None:
        mappings = node.data.get("inputMappings")
        mode = mappings.get("mode") if isinstance(mappings, dict) else None
        if not mode:
            collector.add("FFV-OUTPUT-001", node_id=node.id, field_path="data.inputMappings.mode")
            return
        if mode not in OUTPUT_MODES:
            collector.add(
                "FFV-OUTPUT-001",
                node_id=node.id,
                field_path="data.inputMappings.mode",
                hint="Output.mode 不合法",
            )
            return

        sources = mappings.get("sources")
        sources = sources if isinstance(sources, list) else []
        if mode == "template":
            if not _is_non_empty_str(mappings.get("template")):
                collector.add(
                    "FFV-OUTPUT-002", node_id=node.id, field_path="data.inputMappings.template"
                )
        elif mode == "direct":
            if len(sources) != 1:
                collector.add(
                    "FFV-OUTPUT-002",
                    node_id=node.id,
                    field_path="data.inputMappings.sources",
                    hint="direct 模式必须配置且只能配置一个来源",
                )
        elif not sources:
            collector.add("FFV-OUTPUT-002", node_id=node.id, field_path="data.inputMappings.sources")

    @staticmethod
    def _check_input(node: Node, collector: _IssueCollector) -> None:
        data = node.data
        if data.get("enableStructuredForm") is True:
            fields = data.get("formFields")
            fields = fields if isinstance(fields, list) else []
            if not fields:
                collector.add(
                    "FFV-INPUT-001",
                    node_id=node.id,
                    field_path="data.formFields",
                    hint="启用结构化表单时必须配置 formFields",
                )
            else:
                for index, form_field in enumerate(fields):
                    name = form_field.get("name") if isinstance(form_field, dict) else None
                    if not isinstance(name, str) or not _FORM_FIELD_NAME.match(name):
                        collector.add(
                            "FFV-INPUT-001", node_id=node.id, field_path=f"data.formFields[{index}].name"
                        )
                        break

        if data.get("enableFileInput") is True:
            if data.get("enableTextInput") is False:
                collector.add(
                    "FFV-INPUT-001",
                    node_id=node.id,
                    field_path="data.enableTextInput",
                    hint="启用文件上传时必须启用文本输入",
                )
            if data.get("textRequired") is not True:
                collector.add(
                    "FFV-INPUT-001",
                    node_id=node.id,
                    field_path="data.textRequired",
                    hint="启用文件上传时文本必须为必填 (textRequired=true)",
                )
            file_config = data.get("fileConfig")
            config_ok = (
                isinstance(file_config, dict)
                and isinstance(file_config.get("allowedTypes"), list)
                and bool(file_config["allowedTypes"])
                and _is_number(file_config.get("maxSizeMB"))
                and _is_number(file_config.get("maxCount"))
            )
            if not config_ok:
                collector.add(
                    "FFV-INPUT-001",
                    node_id=node.id,
                    field_path="data.fileConfig",
                    hint="启用文件上传时必须配置 fileConfig",
                )

    # ---- 变量引用 -------------------------------------------------------

    @staticmethod
    def _check_variable_references(nodes: list[Node], collector: _IssueCollector) -> None:
        label_norms = {normalize_label(node.label) for node in nodes if node.label.strip()}
        kind_counts = Counter(node.kind for node in nodes if node.kind is not None)

        for node in nodes:
            for template_field in iter_template_fields(node.data):
                for reference in extract_references(template_field.value):
                    prefix = reference.prefix
                    if not prefix or normalize_label(prefix) in label_norms:
                        continue
                    alias = NodeType.from_reference_alias(prefix)
                    if alias is not None and kind_counts[alias] == 1:
                        continue
                    collector.add(
                        "FFV-VAR-001",
                        node_id=node.id,
                        field_path=template_field.path,
                        hint=f"无法解析的引用: {{{{{reference.expression}}}}}",
                    )
