"""Edge 实体 - 节点之间的有向连线

- source / target 缺失或不是字符串时解析为空串，由校验器报告 FFV-EDGE-001
- id 可缺失，SafeStructureFixer 会确定性地补齐
- source_handle 只对分支节点有意义（"true"/"false"），其余情况保留原值以便校验器报告
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

BRANCH_HANDLES = ("true", "false")

_KNOWN_KEYS = frozenset({"id", "source", "target", "sourceHandle", "targetHandle"})


@dataclass
class Edge:
    source: str = ""
    target: str = ""
    id: str | None = None
    source_handle: Any = None
    target_handle: Any = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def pair(self) -> tuple[str, str]:
        return (self.source, self.target)

    @property
    def has_handle(self) -> bool:
        return self.source_handle not in (None, "")

    @property
    def has_branch_handle(self) -> bool:
        return self.source_handle in BRANCH_HANDLES

    @classmethod
    def from_dict(cls, raw: Any) -> Edge:
        if not isinstance(raw, dict):
            return cls()
        source = raw.get("source")
        target = raw.get("target")
        edge_id = raw.get("id")
        return cls(
            source=source if isinstance(source, str) else "",
            target=target if isinstance(target, str) else "",
            id=edge_id if isinstance(edge_id, str) and edge_id else None,
            source_handle=raw.get("sourceHandle"),
            target_handle=raw.get("targetHandle"),
            extra={k: v for k, v in raw.items() if k not in _KNOWN_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {}
        if self.id is not None:
            payload["id"] = self.id
        payload["source"] = self.source
        payload["target"] = self.target
        if self.source_handle is not None:
            payload["sourceHandle"] = self.source_handle
        if self.target_handle is not None:
            payload["targetHandle"] = self.target_handle
        payload.update(self.extra)
        return payload
