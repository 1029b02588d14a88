"""InputOutputCompleter - 补齐缺失的 Input / Output 节点

- 缺 Input：在最前面插入 auto_input（label "用户输入"），连到所有没有入边的处理节点
- 缺 Output：在最后追加 auto_output（label "最终输出"，select 模式，来源按
  llm → rag → tool → imagegen → input 的顺序取最后一个同类节点），
  从所有没有出边的非 Output 节点连过来
- id / label 冲突时追加序号，新连线不与已有 (source, target) 重复
"""

from __future__ import annotations

from dataclasses import dataclass, field

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.value_objects.node_type import NodeType

AUTO_INPUT_ID = "auto_input"
AUTO_OUTPUT_ID = "auto_output"
AUTO_INPUT_LABEL = "用户输入"
AUTO_OUTPUT_LABEL = "最终输出"

# 推测 Output 来源时的优先级与字段
_OUTPUT_SOURCE_FIELDS: tuple[tuple[NodeType, str], ...] = (
    (NodeType.LLM, "response"),
    (NodeType.RAG, "documents"),
    (NodeType.TOOL, "result"),
    (NodeType.IMAGEGEN, "imageUrl"),
    (NodeType.INPUT, "user_input"),
)


def reference_name(node: Node) -> str:
    """模板引用使用的节点名：有 label 用 label，否则用 id"""
    return node.label.strip() or node.id


@dataclass
class CompletionResult:
    workflow: Workflow
    fixes: list[str] = field(default_factory=list)
    input_id: str | None = None
    output_id: str | None = None


class InputOutputCompleter:
    def complete(self, workflow: Workflow) -> CompletionResult:
        """返回补齐后的副本；Input/Output 都已存在时返回原对象"""
        kinds = {node.kind for node in workflow.nodes}
        need_input = NodeType.INPUT not in kinds
        need_output = NodeType.OUTPUT not in kinds
        if not need_input and not need_output:
            return CompletionResult(workflow=workflow)

        completed = workflow.clone()
        used_ids = {node.id for node in completed.nodes if node.id}
        used_labels = {node.label for node in completed.nodes if node.label}
        result = CompletionResult(workflow=completed)

        if need_input:
            input_id = _unique(AUTO_INPUT_ID, used_ids, sep="_")
            completed.nodes.insert(
                0,
                Node(
                    id=input_id,
                    type=NodeType.INPUT.value,
                    data={"label": _unique(AUTO_INPUT_LABEL, used_labels, sep="")},
                ),
            )
            result.input_id = input_id
            result.fixes.append("已自动补齐 Input 节点")

        if need_output:
            output_id = _unique(AUTO_OUTPUT_ID, used_ids, sep="_")
            completed.nodes.append(
                Node(
                    id=output_id,
                    type=NodeType.OUTPUT.value,
                    data={
                        "label": _unique(AUTO_OUTPUT_LABEL, used_labels, sep=""),
                        "inputMappings": {
                            "mode": "select",
                            "sources": [{"type": "variable", "value": _guess_output_source(workflow)}],
                        },
                    },
                )
            )
            result.output_id = output_id
            result.fixes.append("已自动补齐 Output 节点")

        self._connect(completed, input_id=result.input_id, output_id=result.output_id)
        return result

    @staticmethod
    def _connect(workflow: Workflow, *, input_id: str | None, output_id: str | None) -> None:
        node_ids = workflow.node_ids()
        existing = {edge.pair for edge in workflow.edges if edge.source in node_ids and edge.target in node_ids}

        def degrees() -> tuple[dict[str, int], dict[str, int]]:
            in_degree = dict.fromkeys(node_ids, 0)
            out_degree = dict.fromkeys(node_ids, 0)
            for source, target in existing:
                out_degree[source] += 1
                in_degree[target] += 1
            return in_degree, out_degree

        if input_id:
            in_degree, _ = degrees()
            for node in workflow.nodes:
                if not node.id or node.kind in (NodeType.INPUT, NodeType.OUTPUT):
                    continue
                if in_degree.get(node.id, 0) == 0 and (input_id, node.id) not in existing:
                    workflow.edges.append(Edge(source=input_id, target=node.id))
                    existing.add((input_id, node.id))

        if output_id:
            _, out_degree = degrees()
            for node in workflow.nodes:
                if not node.id or node.kind == NodeType.OUTPUT:
                    continue
                if out_degree.get(node.id, 0) == 0 and (node.id, output_id) not in existing:
                    workflow.edges.append(Edge(source=node.id, target=output_id))
                    existing.add((node.id, output_id))


def _unique(base: str, used: set[str], *, sep: str) -> str:
    candidate = base
    index = 1
    while candidate in used:
        candidate = f"{base}{sep}{index}"
        index += 1
    used.add(candidate)
    return candidate


def _guess_output_source(workflow: Workflow) -> str:
    for kind, field_name in _OUTPUT_SOURCE_FIELDS:
        for node in reversed(workflow.nodes_of_kind(kind)):
            if node.id:
                return "{{" + f"{reference_name(node)}.{field_name}" + "}}"
    return "{{response}}"
