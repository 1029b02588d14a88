"""Node / Edge / Workflow 实体测试"""

from __future__ import annotations

import pytest

from flowheal.domain.entities.edge import Edge
from flowheal.domain.entities.node import Node
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.exceptions import DomainValidationError, WorkflowParseError
from flowheal.domain.value_objects.node_type import NodeType
from flowheal.domain.value_objects.position import Position


class TestNode:
    """节点解析宽松、往返不丢字段"""

    def test_from_dict_keeps_unknown_top_level_fields(self):
        raw = {
            "id": "n1",
            "type": "llm",
            "data": {"label": "LLM"},
            "position": {"x": 1, "y": 2},
            "width": 200,
        }

        node = Node.from_dict(raw)

        assert node.kind == NodeType.LLM
        assert node.position == Position(x=1, y=2)
        assert node.to_dict() == raw

    def test_non_dict_becomes_empty_node(self):
        """非对象输入不抛异常，由校验器报告"""
        node = Node.from_dict("oops")

        assert node.id == ""
        assert node.type == ""
        assert node.kind is None

    def test_non_string_id_and_type_are_blank(self):
        node = Node.from_dict({"id": 1, "type": None, "data": []})

        assert node.id == ""
        assert node.type == ""
        assert node.data == {}

    def test_display_name_prefers_label(self):
        assert Node(id="n1", type="llm", data={"label": " 回答 "}).display_name() == "回答"
        assert Node(id="n1", type="llm").display_name() == "n1"

    def test_invalid_position_is_none(self):
        node = Node.from_dict({"id": "n1", "type": "input", "position": {"x": True, "y": 1}})

        assert node.position is None
        assert "position" not in node.to_dict()


class TestEdge:
    """连线解析与序列化"""

    def test_round_trip_uses_camel_case_handles(self):
        raw = {"id": "e1", "source": "b", "target": "t", "sourceHandle": "true"}

        edge = Edge.from_dict(raw)

        assert edge.source_handle == "true"
        assert edge.has_branch_handle
        assert edge.to_dict() == raw

    def test_missing_id_is_omitted(self):
        edge = Edge.from_dict({"source": "a", "target": "b", "id": ""})

        assert edge.id is None
        assert edge.to_dict() == {"source": "a", "target": "b"}

    def test_empty_string_handle_counts_as_no_handle(self):
        assert not Edge(source="a", target="b", source_handle="").has_handle
        assert Edge(source="a", target="b", source_handle="yes").has_handle


class TestWorkflow:
    """Workflow 边界解析"""

    def test_missing_edges_defaults_to_empty(self):
        workflow = Workflow.from_raw([{"id": "a", "type": "input"}], None)

        assert workflow.edges == []
        assert workflow.node_ids() == {"a"}

    @pytest.mark.parametrize("nodes, edges", [({}, []), ([], "x")])
    def test_non_list_raises_parse_error(self, nodes, edges):
        with pytest.raises(WorkflowParseError) as exc:
            Workflow.from_raw(nodes, edges)

        assert isinstance(exc.value, DomainValidationError)
        assert exc.value.code == "workflow_parse_error"

    def test_from_payload_requires_object(self):
        with pytest.raises(WorkflowParseError):
            Workflow.from_payload([1, 2])

    def test_clone_is_deep(self, valid_generated_workflow: Workflow):
        clone = valid_generated_workflow.clone()
        clone.nodes[0].data["label"] = "changed"

        assert valid_generated_workflow.nodes[0].label == "用户输入"

    def test_lookup_helpers(self):
        workflow = Workflow(
            nodes=[
                Node(id="a", type="input", data={"label": "A"}),
                Node(id="b", type="llm", data={"label": "A"}),
                Node(id="c", type="llm", data={"label": "  "}),
                Node(id="d", type="output", data={"label": "D"}),
            ]
        )

        assert [node.id for node in workflow.nodes_of_kind(NodeType.LLM)] == ["b", "c"]
        assert workflow.get_node("d") is workflow.nodes[3]
        assert workflow.get_node("zzz") is None
