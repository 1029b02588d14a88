"""Node 实体 - 生成式工作流中的节点

业务定义：
- id 在一个工作流内唯一且稳定，修复过程中不会被改写或复用
- type 保留模型输出的原始字符串；kind 是解析后的封闭枚举（无法识别时为 None）
- data 是开放的属性包：至少包含 label，其余为各类型自己的配置

设计原则：
- 解析宽松（parse, don't validate）：from_dict 永不抛异常，缺失字段用空值占位，
  由 GraphStructureValidator 统一报告
- 未知的顶层字段原样保存在 extra 中，to_dict 时写回，保证往返不丢信息
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from flowheal.domain.value_objects.node_type import NodeType
from flowheal.domain.value_objects.position import Position

_KNOWN_KEYS = frozenset({"id", "type", "data", "position"})


@dataclass
class Node:
    id: str
    type: str
    data: dict[str, Any] = field(default_factory=dict)
    position: Position | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> NodeType | None:
        return NodeType.parse(self.type)

    @property
    def label(self) -> str:
        value = self.data.get("label")
        return value if isinstance(value, str) else ""

    def display_name(self) -> str:
        """日志与修复说明里使用的名称：优先 label，退化为 id"""
        return self.label.strip() or self.id

    @classmethod
    def from_dict(cls, raw: Any) -> Node:
        if not isinstance(raw, dict):
            return cls(id="", type="")
        node_id = raw.get("id")
        node_type = raw.get("type")
        data = raw.get("data")
        return cls(
            id=node_id if isinstance(node_id, str) else "",
            type=node_type if isinstance(node_type, str) else "",
            data=data if isinstance(data, dict) else {},
            position=Position.from_dict(raw.get("position")),
            extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"id": self.id, "type": self.type, "data": self.data}
        if self.position is not None:
            payload["position"] = self.position.to_dict()
        payload.update(self.extra)
        return payload
