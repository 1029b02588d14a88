"""GenerationEvent - 工作流生成过程中对外推送的流式事件

业务定义：
- thinking_start / thinking / thinking_end: 分析阶段的思考过程
- step: 标签解析出的步骤（step_type / status / content）
- plan: 规划阶段产出的计划文本
- validation / validation_fix: 校验报告与确定性修复结果
- fallback: 退化到更保守的生成策略（可观察事件，不是静默失败）
- result: 最终工作流
- error: 失败原因（含剩余硬错误）
- done: 流结束哨兵

使用示例：
    event = GenerationEvent.step("analysis", "streaming", "正在分析...")
    chunk = event.to_sse_format()
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

SSE_DONE = "data: [DONE]\n\n"


class GenerationEventType(str, Enum):
    THINKING_START = "thinking_start"
    THINKING = "thinking"
    THINKING_END = "thinking_end"
    STEP = "step"
    PLAN = "plan"
    VALIDATION = "validation"
    VALIDATION_FIX = "validation_fix"
    FALLBACK = "fallback"
    RESULT = "result"
    ERROR = "error"
    DONE = "done"


class StepStatus(str, Enum):
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass
class GenerationEvent:
    type: GenerationEventType
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def step(cls, step_type: str, status: StepStatus | str, content: str = "") -> GenerationEvent:
        return cls(
            type=GenerationEventType.STEP,
            payload={
                "step_type": step_type,
                "status": StepStatus(status).value,
                "content": content,
            },
        )

    @classmethod
    def fallback(cls, stage: str, reason: str) -> GenerationEvent:
        return cls(type=GenerationEventType.FALLBACK, payload={"stage": stage, "reason": reason})

    @classmethod
    def error(cls, message: str, **extra: Any) -> GenerationEvent:
        return cls(type=GenerationEventType.ERROR, payload={"message": message, **extra})

    @classmethod
    def done(cls) -> GenerationEvent:
        return cls(type=GenerationEventType.DONE)

    @property
    def is_terminal(self) -> bool:
        return self.type is GenerationEventType.DONE

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, **self.payload}

    def to_sse_format(self) -> str:
        if self.is_terminal:
            return SSE_DONE
        data = json.dumps(self.to_dict(), ensure_ascii=False, default=str)
        return f"event: {self.type.value}\ndata: {data}\n\n"
