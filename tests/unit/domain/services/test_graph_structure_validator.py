"""GraphStructureValidator 测试"""

from __future__ import annotations

from typing import Any

from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator


def _node(node_id: str, node_type: str, label: str | None = None, **data: Any) -> dict[str, Any]:
    payload = dict(data)
    payload["label"] = label if label is not None else node_id.upper()
    return {"id": node_id, "type": node_type, "data": payload}


def _edge(source: str, target: str, edge_id: str | None = None, **extra: Any) -> dict[str, Any]:
    edge = {"source": source, "target": target, **extra}
    if edge_id:
        edge["id"] = edge_id
    return edge


class TestStructureProfile:
    """结构规则"""

    def test_simple_chain_is_valid(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw(
            [_node("i", "input"), _node("l", "llm"), _node("o", "output")],
            [_edge("i", "l", "e1"), _edge("l", "o", "e2")],
        )

        assert report.is_valid

    def test_empty_nodes(self, structure_validator: GraphStructureValidator):
        assert structure_validator.validate_raw([], []).codes() == ["FFV-SCHEMA-001"]

    def test_two_node_cycle_reports_one_code(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw(
            [_node("n1", "input"), _node("n2", "llm")],
            [_edge("n1", "n2", "e1"), _edge("n2", "n1", "e2")],
        )

        assert report.codes() == ["FFV-STRUCT-001"]
        issue = report.hard_errors[0]
        assert issue.edge_id == "e2"
        assert issue.node_id == "n2"

    def test_duplicate_node_keeps_first(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw(
            [_node("a", "input"), _node("a", "output")],
            [],
        )

        assert report.codes() == ["FFV-NODE-002"]

    def test_whitespace_in_id_is_invalid(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw([_node("my node", "input")], [])

        assert report.codes() == ["FFV-NODE-001"]
        assert report.hard_errors[0].hint == "节点 id 不能包含空白字符"

    def test_dangling_edge_names_missing_node(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw(
            [_node("i", "input"), _node("o", "output")],
            [_edge("i", "o", "e1"), _edge("ghost", "o", "e2")],
        )

        assert report.codes() == ["FFV-STRUCT-002"]
        assert report.hard_errors[0].hint == "节点不存在: ghost"

    def test_duplicate_edges_reported_once_per_extra_copy(
        self, structure_validator: GraphStructureValidator
    ):
        report = structure_validator.validate_raw(
            [_node("a", "input"), _node("b", "output")],
            [_edge("a", "b", "e1"), _edge("a", "b", "e2"), _edge("a", "b", "e3")],
        )

        assert report.code_counts() == {"FFV-STRUCT-003": 2}

    def test_connected_graph_without_io_has_no_orphans(
        self, structure_validator: GraphStructureValidator
    ):
        """没有 Input/Output 时，只要每个节点都有连线就不算孤立"""
        report = structure_validator.validate_raw(
            [_node("a", "llm"), _node("b", "llm")], [_edge("a", "b", "e1")]
        )

        assert report.is_valid

    def test_isolated_node_reported_without_io(self, structure_validator: GraphStructureValidator):
        """缺少 Input/Output 时仍然报告完全没有连线的节点"""
        report = structure_validator.validate_raw(
            [_node("a", "llm"), _node("b", "llm"), _node("c", "tool")],
            [_edge("a", "b", "e1")],
        )

        assert report.codes() == ["FFV-STRUCT-004"]
        assert [issue.node_id for issue in report.hard_errors] == ["c"]

    def test_single_node_is_never_orphan(self, structure_validator: GraphStructureValidator):
        assert structure_validator.validate_raw([_node("l", "llm")], []).is_valid

    def test_valid_branch(self, structure_validator: GraphStructureValidator):
        report = structure_validator.validate_raw(
            [
                _node("i", "input"),
                _node("b", "branch", condition="x"),
                _node("yes", "llm"),
                _node("no", "llm"),
                _node("o", "output"),
            ],
            [
                _edge("i", "b", "e1"),
                _edge("b", "yes", "e2", sourceHandle="true"),
                _edge("b", "no", "e3", sourceHandle="false"),
                _edge("yes", "o", "e4"),
                _edge("no", "o", "e5"),
            ],
        )

        assert report.is_valid

    def test_branch_paths_may_converge_on_output(
        self, structure_validator: GraphStructureValidator
    ):
        report = structure_validator.validate_raw(
            [_node("i", "input"), _node("b", "branch", condition="x"), _node("o", "output")],
            [
                _edge("i", "b", "e1"),
                _edge("b", "o", "e2", sourceHandle="true"),
                _edge("b", "o", "e3", sourceHandle="false"),
            ],
        )

        assert not report.has("FFV-BRANCH-004")

    def test_rag_static_mode_needs_store_name(self, structure_validator: GraphStructureValidator):
        ok = _node(
            "r", "rag", fileSearchStoreName="kb", inputMappings={"query": "{{Input.user_input}}"}
        )
        missing_query = _node("r", "rag", fileSearchStoreName="kb")

        assert structure_validator.validate_raw([ok], []).is_valid
        assert structure_validator.validate_raw([missing_query], []).codes() == ["FFV-RAG-001"]

    def test_structure_profile_ignores_generated_rules(
        self, structure_validator: GraphStructureValidator
    ):
        """label 缺失、变量引用等只属于 generated 规则集"""
        report = structure_validator.validate_raw(
            [
                {"id": "i", "type": "input", "data": {}},
                {"id": "l", "type": "llm", "data": {"prompt": "{{Nobody.x}}"}},
            ],
            [_edge("i", "l", "e1")],
        )

        assert report.is_valid

    def test_validate_never_mutates_input(self, structure_validator: GraphStructureValidator):
        workflow = Workflow.from_raw(
            [_node("i", "input"), _node("o", "output")],
            [_edge("i", "o"), _edge("i", "o")],
        )
        before = workflow.to_dict()

        structure_validator.validate_workflow(workflow)

        assert workflow.to_dict() == before


class TestGeneratedProfile:
    """生成式工作流附加规则"""

    def test_valid_generated_workflow(
        self, generated_validator: GraphStructureValidator, valid_generated_workflow: Workflow
    ):
        assert generated_validator.validate_workflow(valid_generated_workflow).is_valid

    def test_id_reference_is_unresolved(
        self, generated_validator: GraphStructureValidator, id_reference_payload: dict[str, Any]
    ):
        report = generated_validator.validate_raw(
            id_reference_payload["nodes"], id_reference_payload["edges"]
        )

        assert report.codes() == ["FFV-VAR-001"]
        issue = report.hard_errors[0]
        assert issue.node_id == "node_2"
        assert issue.field_path == "data.inputMappings.user_input"

    def test_singleton_type_alias_is_accepted(
        self, generated_validator: GraphStructureValidator, valid_generated_payload: dict[str, Any]
    ):
        valid_generated_payload["nodes"][1]["data"]["inputMappings"]["user_input"] = (
            "{{Input.user_input}}"
        )

        report = generated_validator.validate_raw(
            valid_generated_payload["nodes"], valid_generated_payload["edges"]
        )

        assert report.is_valid

    def test_normalized_label_reference_is_accepted(
        self, generated_validator: GraphStructureValidator, valid_generated_payload: dict[str, Any]
    ):
        valid_generated_payload["nodes"][0]["data"]["label"] = "User Input"
        valid_generated_payload["nodes"][1]["data"]["inputMappings"]["user_input"] = (
            "{{user  input.user_input}}"
        )

        report = generated_validator.validate_raw(
            valid_generated_payload["nodes"], valid_generated_payload["edges"]
        )

        assert report.is_valid

    def test_llm_temperature_must_be_in_range(
        self, generated_validator: GraphStructureValidator, valid_generated_payload: dict[str, Any]
    ):
        valid_generated_payload["nodes"][1]["data"]["temperature"] = 1.5

        report = generated_validator.validate_raw(
            valid_generated_payload["nodes"], valid_generated_payload["edges"]
        )

        assert report.codes() == ["FFV-LLM-001"]
        assert report.hard_errors[0].field_path == "data.temperature"

    def test_direct_output_needs_exactly_one_source(
        self, generated_validator: GraphStructureValidator, valid_generated_payload: dict[str, Any]
    ):
        mappings = valid_generated_payload["nodes"][2]["data"]["inputMappings"]
        mappings["mode"] = "direct"
        mappings["sources"] = mappings["sources"] * 2

        report = generated_validator.validate_raw(
            valid_generated_payload["nodes"], valid_generated_payload["edges"]
        )

        assert report.codes() == ["FFV-OUTPUT-002"]

    def test_file_input_requires_text_and_config(
        self, generated_validator: GraphStructureValidator, valid_generated_payload: dict[str, Any]
    ):
        valid_generated_payload["nodes"][0]["data"]["enableFileInput"] = True

        report = generated_validator.validate_raw(
            valid_generated_payload["nodes"], valid_generated_payload["edges"]
        )

        assert report.code_counts() == {"FFV-INPUT-001": 2}
        assert {issue.field_path for issue in report.hard_errors} == {
            "data.textRequired",
            "data.fileConfig",
        }

    def test_duplicate_label_reported_once(self, generated_validator: GraphStructureValidator):
        report = generated_validator.validate_raw(
            [
                _node("a", "input", "Same"),
                _node("b", "output", "same", inputMappings={"mode": "direct", "sources": ["x"]}),
            ],
            [_edge("a", "b", "e1")],
        )

        assert report.code_counts() == {"FFV-NODE-004": 1}
        assert report.hard_errors[0].node_id == "a"
