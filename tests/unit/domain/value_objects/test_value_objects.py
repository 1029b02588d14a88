"""值对象测试：NodeType / ValidationIssue / ValidationReport / StructureDefect"""

from __future__ import annotations

import pytest

from flowheal.domain.value_objects.defect import (
    SAFE_STRUCTURE_FIXES,
    ReferenceDefect,
    ReferenceResolution,
    StructureDefect,
    StructureDefectKind,
)
from flowheal.domain.value_objects.node_type import NodeType
from flowheal.domain.value_objects.validation_issue import ValidationIssue, ValidationReport


class TestNodeType:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("LLM", NodeType.LLM),
            (" input ", NodeType.INPUT),
            ("image_gen", NodeType.IMAGEGEN),
            ("image", NodeType.IMAGEGEN),
            ("webhook", None),
            (None, None),
        ],
    )
    def test_parse(self, raw, expected):
        assert NodeType.parse(raw) is expected

    @pytest.mark.parametrize(
        "prefix, expected",
        [("Start", NodeType.INPUT), ("END", NodeType.OUTPUT), ("search", NodeType.TOOL), ("回答", None)],
    )
    def test_reference_alias(self, prefix, expected):
        assert NodeType.from_reference_alias(prefix) is expected


class TestValidationReport:
    def test_issue_serializes_camel_case_and_skips_empty_location(self):
        issue = ValidationIssue(code="FFV-STRUCT-002", message="m", edge_id="e1", hint="h")

        assert issue.to_dict() == {"code": "FFV-STRUCT-002", "message": "m", "edgeId": "e1", "hint": "h"}

    def test_report_counts(self):
        report = ValidationReport(
            hard_errors=[
                ValidationIssue(code="A", message="a"),
                ValidationIssue(code="B", message="b"),
                ValidationIssue(code="A", message="a"),
            ]
        )

        assert not report.is_valid
        assert report.error_count == 3
        assert report.codes() == ["A", "B", "A"]
        assert report.code_counts() == {"A": 2, "B": 1}
        assert report.has("B")
        assert report.to_dict()["hardErrors"][0] == {"code": "A", "message": "a"}

    def test_empty_report_is_valid(self):
        assert ValidationReport().is_valid


class TestDefects:
    def test_orphan_is_the_only_unsafe_structure_fix(self):
        assert StructureDefectKind.ORPHAN_NODE not in SAFE_STRUCTURE_FIXES
        assert not StructureDefect(kind=StructureDefectKind.ORPHAN_NODE, node_id="x").is_safe
        assert StructureDefect(kind=StructureDefectKind.CYCLE_EDGE, edge_index=0).is_safe

    def test_reference_defect_applicable_only_with_replacement(self):
        base = dict(node_id="n", field_path="data.x", expression="a.b", prefix="a")

        assert ReferenceDefect(
            **base, resolution=ReferenceResolution.FUZZY, label="A", replacement="A.b"
        ).applicable
        assert not ReferenceDefect(**base, resolution=ReferenceResolution.UNRESOLVED).applicable
