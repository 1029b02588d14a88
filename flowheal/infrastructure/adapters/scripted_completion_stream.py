"""Scripted Completion Stream - 按脚本返回固定响应的确定性实现.

职责:
- 按调用顺序依次返回预置的完整响应，并切成固定大小的 chunk 流式产出
- 记录每次调用的 system / user / temperature，便于断言重试与降级策略
- 无外部依赖,零成本

适用场景:
- 单元测试 / API 测试
- 未配置 OPENAI_API_KEY 的本地开发
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from dataclasses import dataclass


@dataclass(frozen=True)
class CompletionCall:
    system: str
    user: str
    temperature: float


class ScriptedCompletionStream:
    """TextCompletionStream 的 Stub 实现.

    脚本耗尽后返回 default_response（默认空字符串）。
    """

    def __init__(
        self,
        responses: Iterable[str] = (),
        *,
        chunk_size: int = 16,
        default_response: str = "",
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._responses = list(responses)
        self.chunk_size = chunk_size
        self.default_response = default_response
        self.calls: list[CompletionCall] = []

    @property
    def remaining(self) -> int:
        return len(self._responses)

    async def stream(self, *, system: str, user: str, temperature: float) -> AsyncIterator[str]:
        self.calls.append(CompletionCall(system=system, user=user, temperature=temperature))
        response = self._responses.pop(0) if self._responses else self.default_response
        for start in range(0, len(response), self.chunk_size):
            yield response[start : start + self.chunk_size]
