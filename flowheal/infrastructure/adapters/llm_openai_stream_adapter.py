"""LLM OpenAI Stream Adapter - 真实 OpenAI 流式补全实现.

职责:
- 调用 OpenAI Chat Completions API（stream=True）
- 把 delta.content 逐段交给工作流生成流水线

适用场景:
- 生产环境的工作流生成
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from flowheal.domain.ports.text_completion_stream import CompletionStreamError


class LLMOpenAIStreamAdapter:
    """TextCompletionStream 的 OpenAI 实现."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        base_url: str = "https://api.openai.com/v1",
        *,
        max_tokens: int = 4000,
        timeout: float = 60.0,
    ) -> None:
        """初始化 OpenAI 流式 Adapter.

        参数:
            api_key: OpenAI API 密钥
            model: 模型名称
            base_url: API 基础 URL（支持兼容端点）
            max_tokens: 单次补全的最大 token 数
            timeout: 请求超时（秒）
        """
        # 延迟导入,避免未使用 OpenAI 时加载 SDK
        from openai import AsyncOpenAI

        if not api_key:
            raise ValueError(
                "OpenAI API key is required. Please set OPENAI_API_KEY in your .env file."
            )

        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)
        self.model = model
        self.max_tokens = max_tokens

    async def stream(
        self,
        *,
        system: str,
        user: str,
        temperature: float,
        **kwargs: Any,
    ) -> AsyncIterator[str]:
        """流式生成文本.

        生成:
            文本片段(delta)

        异常:
            CompletionStreamError: API 调用失败（包装 openai.APIError，含限流与连接错误）
        """
        from openai import APIError

        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": system},
                    {"role": "user", "content": user},
                ],
                temperature=temperature,
                max_tokens=self.max_tokens,
                stream=True,
                **kwargs,
            )

            async for chunk in stream:
                if chunk.choices and chunk.choices[0].delta.content:
                    yield chunk.choices[0].delta.content
        except APIError as exc:
            raise CompletionStreamError(f"OpenAI 调用失败: {exc}") from exc
