"""BalancedJsonExtractor 测试"""

from __future__ import annotations

import json

from flowheal.domain.services.balanced_json_extractor import BalancedJsonExtractor

WORKFLOW = {"title": "示例", "nodes": [{"id": "a", "type": "input", "data": {"label": "x"}}], "edges": []}


class TestBalancedJsonExtractor:
    def test_json_inside_prose_and_fence(self):
        text = "说明文字 {不是 json}\n```json\n" + json.dumps(WORKFLOW, ensure_ascii=False) + "\n```\n完成"

        assert BalancedJsonExtractor().extract_payload(text) == WORKFLOW

    def test_braces_inside_strings_are_ignored(self):
        payload = {"nodes": [], "note": "包含 } 和 { 以及 \"引号\""}
        text = "前缀 " + json.dumps(payload, ensure_ascii=False) + " 后缀"

        assert BalancedJsonExtractor().extract(text) == json.dumps(payload, ensure_ascii=False)

    def test_object_without_marker_key_is_skipped(self):
        text = '{"meta": 1} 然后 {"Nodes": [], "edges": []}'

        assert BalancedJsonExtractor().extract_payload(text) == {"Nodes": [], "edges": []}

    def test_nested_object_with_marker_is_found(self):
        text = '{"wrapper": {"nodes": []}'

        assert BalancedJsonExtractor().extract_payload(text) == {"nodes": []}

    def test_no_json(self):
        extractor = BalancedJsonExtractor()

        assert extractor.extract("") is None
        assert extractor.extract("{ 未闭合") is None
        assert extractor.extract_payload("纯文本") is None

    def test_custom_marker(self):
        assert BalancedJsonExtractor(marker_key="plan").extract_payload('{"plan": "x"}') == {"plan": "x"}
