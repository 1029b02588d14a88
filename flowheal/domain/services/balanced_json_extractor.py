"""BalancedJsonExtractor - 从夹杂说明文字的模型输出中提取 JSON 对象

算法：
- 依次尝试每个 "{" 作为起点
- 向后扫描计算括号深度，双引号字符串内的括号与转义字符不计入
- 深度回到 0 时得到候选子串，json.loads 成功且顶层包含标记键（大小写不敏感）即返回
- 代码块围栏（```json）只是普通分隔文本，不需要特殊处理
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


def _balanced_end(text: str, start: int) -> int:
    """返回与 text[start] 的 "{" 配对的 "}" 下标；不平衡时返回 -1"""
    depth = 0
    in_string = False
    escaped = False
    for index in range(start, len(text)):
        char = text[index]
        if escaped:
            escaped = False
            continue
        if in_string:
            if char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


@dataclass(frozen=True)
class BalancedJsonExtractor:
    marker_key: str = "nodes"

    def extract(self, text: str) -> str | None:
        found = self._find(text)
        return found[0] if found else None

    def extract_payload(self, text: str) -> dict[str, Any] | None:
        found = self._find(text)
        return found[1] if found else None

    def _find(self, text: str) -> tuple[str, dict[str, Any]] | None:
        if not text:
            return None
        marker = self.marker_key.lower()
        start = text.find("{")
        while start != -1:
            end = _balanced_end(text, start)
            if end != -1:
                candidate = text[start : end + 1]
                try:
                    parsed = json.loads(candidate)
                except ValueError:
                    parsed = None
                if isinstance(parsed, dict) and any(
                    isinstance(key, str) and key.lower() == marker for key in parsed
                ):
                    return candidate, parsed
            start = text.find("{", start + 1)
        return None
