"""ValidationIssue / ValidationReport 值对象

业务定义：
- ValidationIssue 是一条硬错误：稳定错误码 + 面向用户的消息 + 可选定位信息
- ValidationReport 只有 hard_errors 一个通道，没有 warning；
  建议类信息只存在于报告型修复器（healer）的输出里

序列化约定：对外输出使用 camelCase（nodeId / edgeId / fieldPath），与画布 JSON 保持一致。
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    code: str
    message: str
    node_id: str | None = None
    edge_id: str | None = None
    field_path: str | None = None
    hint: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.node_id:
            payload["nodeId"] = self.node_id
        if self.edge_id:
            payload["edgeId"] = self.edge_id
        if self.field_path:
            payload["fieldPath"] = self.field_path
        if self.hint:
            payload["hint"] = self.hint
        return payload


@dataclass(frozen=True)
class ValidationReport:
    hard_errors: list[ValidationIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.hard_errors

    @property
    def error_count(self) -> int:
        return len(self.hard_errors)

    def codes(self) -> list[str]:
        """按出现顺序返回错误码（含重复）"""
        return [issue.code for issue in self.hard_errors]

    def code_counts(self) -> dict[str, int]:
        return dict(Counter(self.codes()))

    def has(self, code: str) -> bool:
        return any(issue.code == code for issue in self.hard_errors)

    def to_dict(self) -> dict[str, Any]:
        return {"hardErrors": [issue.to_dict() for issue in self.hard_errors]}
