"""Position 值对象 - 节点在画布上的位置

分支 handle 的确定性分配依赖目标节点的纵坐标，所以这里保留 y 的"缺失"语义：
解析失败时整个 Position 为 None，而不是伪造 0。
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class Position:
    """Position 值对象

    >>> Position(x=100, y=200) == Position(x=100, y=200)
    True
    """

    x: float
    y: float

    @classmethod
    def from_dict(cls, raw: Any) -> Position | None:
        if not isinstance(raw, dict):
            return None
        x, y = raw.get("x"), raw.get("y")
        if not _is_number(x) or not _is_number(y):
            return None
        return cls(x=x, y=y)

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)
