"""TextCompletionStream Port - 流式文本补全接口

核心只依赖这个协议消费模型输出，不关心具体供应商。
实现位于 infrastructure/adapters（OpenAI 流式实现 / 脚本化确定性实现）。
实现应把供应商 SDK 的调用失败包装为 CompletionStreamError。
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Protocol

class CompletionStreamError(Exception):
    """模型调用失败（鉴权失败、限流等），生成流水线按失败的一次尝试处理"""

    pass


class TextCompletionStream(Protocol):
    """流式文本补全

    参数：
        system: 系统提示词
        user: 用户消息
        temperature: 采样温度

    返回：
        文本片段的异步迭代器，按到达顺序产出
    """

    def stream(self, *, system: str, user: str, temperature: float) -> AsyncIterator[str]: ...
