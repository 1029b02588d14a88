"""领域层异常定义

分层约定：
- DomainError 表示业务规则违反，API 层统一转换为 4xx
- 校验器与修复器本身从不抛异常，只返回报告；异常只出现在输入边界
"""

from __future__ import annotations

from typing import Any


class DomainError(Exception):
    """领域层异常基类

    示例：
        if not isinstance(raw_nodes, list):
            raise DomainError("nodes 必须是数组")
    """

    pass


class DomainValidationError(DomainError):
    """带结构化错误列表的校验异常

    参数：
        message: 面向调用方的概要信息
        code: 稳定的错误码（如 "workflow_invalid"）
        errors: 结构化错误明细，每项至少包含 code/message
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "validation_error",
        errors: list[dict[str, Any]] | None = None,
    ) -> None:
        self.code = code
        self.errors = list(errors or [])
        super().__init__(message)


class WorkflowParseError(DomainValidationError):
    """模型输出无法转换为 nodes/edges 结构"""

    def __init__(self, message: str, *, errors: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message, code="workflow_parse_error", errors=errors)
