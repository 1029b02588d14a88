"""LLMOpenAIStreamAdapter 测试（mock OpenAI SDK）"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import openai
import pytest

from flowheal.domain.ports.text_completion_stream import CompletionStreamError
from flowheal.infrastructure.adapters.llm_openai_stream_adapter import LLMOpenAIStreamAdapter


def _chunk(content: str | None) -> SimpleNamespace:
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


class _FakeStream:
    def __init__(self, chunks: list[SimpleNamespace]) -> None:
        self._chunks = chunks

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            yield chunk


class TestLLMOpenAIStreamAdapter:
    def test_empty_api_key_raises(self):
        with pytest.raises(ValueError, match="OpenAI API key is required"):
            LLMOpenAIStreamAdapter(api_key="")

    @pytest.mark.asyncio
    async def test_stream_yields_delta_content(self):
        with patch("openai.AsyncOpenAI") as mock_client_cls:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(
                return_value=_FakeStream([_chunk("你好"), _chunk(None), _chunk("世界")])
            )
            mock_client_cls.return_value = client

            adapter = LLMOpenAIStreamAdapter(api_key="sk-test", model="gpt-test", max_tokens=100)
            chunks = [c async for c in adapter.stream(system="sys", user="usr", temperature=0.0)]

        assert chunks == ["你好", "世界"]
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["stream"] is True
        assert kwargs["max_tokens"] == 100
        assert kwargs["messages"] == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "usr"},
        ]
        mock_client_cls.assert_called_once_with(
            api_key="sk-test", base_url="https://api.openai.com/v1", timeout=60.0
        )

    @pytest.mark.asyncio
    async def test_sdk_error_is_wrapped(self):
        """SDK 的连接错误统一包装为 CompletionStreamError"""
        request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
        with patch("openai.AsyncOpenAI") as mock_client_cls:
            client = MagicMock()
            client.chat.completions.create = AsyncMock(
                side_effect=openai.APIConnectionError(request=request)
            )
            mock_client_cls.return_value = client

            adapter = LLMOpenAIStreamAdapter(api_key="sk-test")
            with pytest.raises(CompletionStreamError) as exc_info:
                _ = [c async for c in adapter.stream(system="sys", user="usr", temperature=0.0)]

        assert isinstance(exc_info.value.__cause__, openai.APIConnectionError)
