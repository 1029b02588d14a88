"""StreamTagParser - 把逐 token 到达的模型输出解析为伪 XML 标签事件

事件协议：
- tag_open{name, attributes}
- content{text}
- tag_close{name}
- end_of_stream（flush 时发出，与任何标签都不同）

状态机：标签外 / 标签内（同一时刻最多一个标签，不支持嵌套）。
- 标签外：查找开标签标记（"<" + 词表中的标签名）。找到标记但 ">" 还没到达时等待，
  不发事件也不消费缓冲区；标签外的普通文本不作为事件输出
- 标签内：查找 "</name>"。没找到时只输出不可能是闭标签开头的那部分
  （缓冲区长度减去闭标签长度），保证跨 chunk 的闭标签不会被误当作内容
- 标记后紧跟其他单词字符时（如 <steps>），按实际解析出的名字透传，不做语义解释
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

DEFAULT_TAG_VOCABULARY: tuple[str, ...] = ("step", "plan")

_TAG_NAME = re.compile(r"^(\w+)")
_ATTRIBUTE = re.compile(r'(\w+)="([^"]*)"')


class StreamTagEventType(str, Enum):
    TAG_OPEN = "tag_open"
    CONTENT = "content"
    TAG_CLOSE = "tag_close"
    END_OF_STREAM = "end_of_stream"


@dataclass(frozen=True)
class StreamTagEvent:
    type: StreamTagEventType
    name: str | None = None
    attributes: dict[str, str] = field(default_factory=dict)
    text: str | None = None

    @classmethod
    def tag_open(cls, name: str, attributes: dict[str, str]) -> StreamTagEvent:
        return cls(type=StreamTagEventType.TAG_OPEN, name=name, attributes=attributes)

    @classmethod
    def content(cls, text: str) -> StreamTagEvent:
        return cls(type=StreamTagEventType.CONTENT, text=text)

    @classmethod
    def tag_close(cls, name: str) -> StreamTagEvent:
        return cls(type=StreamTagEventType.TAG_CLOSE, name=name)

    @classmethod
    def end_of_stream(cls) -> StreamTagEvent:
        return cls(type=StreamTagEventType.END_OF_STREAM)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type.value}
        if self.name is not None:
            payload["name"] = self.name
        if self.type is StreamTagEventType.TAG_OPEN:
            payload["attributes"] = dict(self.attributes)
        if self.text is not None:
            payload["text"] = self.text
        return payload


@dataclass
class _OpenTag:
    name: str
    attributes: dict[str, str]

    @property
    def close_tag(self) -> str:
        return f"</{self.name}>"


class StreamTagParser:
    def __init__(
        self,
        on_event: Callable[[StreamTagEvent], None] | None = None,
        *,
        vocabulary: Iterable[str] = DEFAULT_TAG_VOCABULARY,
    ) -> None:
        self._on_event = on_event
        self._markers = tuple(f"<{name}" for name in vocabulary)
        if not self._markers:
            raise ValueError("vocabulary must not be empty")
        self._buffer = ""
        self._current: _OpenTag | None = None

    @property
    def inside_tag(self) -> str | None:
        return self._current.name if self._current else None

    def process(self, chunk: str) -> list[StreamTagEvent]:
        self._buffer += chunk
        events: list[StreamTagEvent] = []
        while True:
            progressed = self._step_inside(events) if self._current else self._step_outside(events)
            if not progressed:
                break
        return self._deliver(events)

    def flush(self) -> list[StreamTagEvent]:
        """流结束：输出仍在标签内的剩余内容，然后发出 end_of_stream 并重置"""
        events: list[StreamTagEvent] = []
        if self._current is not None and self._buffer:
            events.append(StreamTagEvent.content(self._buffer))
        events.append(StreamTagEvent.end_of_stream())
        self._buffer = ""
        self._current = None
        return self._deliver(events)

    def _deliver(self, events: list[StreamTagEvent]) -> list[StreamTagEvent]:
        if self._on_event is not None:
            for event in events:
                self._on_event(event)
        return events

    def _find_marker(self) -> int:
        positions = [pos for pos in (self._buffer.find(m) for m in self._markers) if pos != -1]
        return min(positions) if positions else -1

    def _partial_marker_tail(self) -> str:
        """缓冲区末尾可能是某个标记开头的最长后缀"""
        longest = 0
        for marker in self._markers:
            for size in range(min(len(marker) - 1, len(self._buffer)), longest, -1):
                if self._buffer.endswith(marker[:size]):
                    longest = size
                    break
        return self._buffer[len(self._buffer) - longest :] if longest else ""

    def _step_outside(self, events: list[StreamTagEvent]) -> bool:
        tag_start = self._find_marker()
        if tag_start == -1:
            self._buffer = self._partial_marker_tail()
            return False

        tag_end = self._buffer.find(">", tag_start)
        if tag_end == -1:
            return False

        tag_body = self._buffer[tag_start + 1 : tag_end]
        name_match = _TAG_NAME.match(tag_body)
        self._buffer = self._buffer[tag_end + 1 :]
        if name_match is None:
            return True

        attributes = {key: value for key, value in _ATTRIBUTE.findall(tag_body)}
        self._current = _OpenTag(name=name_match.group(1), attributes=attributes)
        events.append(StreamTagEvent.tag_open(self._current.name, dict(attributes)))
        return True

    def _step_inside(self, events: list[StreamTagEvent]) -> bool:
        current = self._current
        if current is None:
            return False
        close_tag = current.close_tag
        close_index = self._buffer.find(close_tag)
        if close_index == -1:
            safe_end = len(self._buffer) - len(close_tag)
            if safe_end > 0:
                events.append(StreamTagEvent.content(self._buffer[:safe_end]))
                self._buffer = self._buffer[safe_end:]
            return False

        if close_index > 0:
            events.append(StreamTagEvent.content(self._buffer[:close_index]))
        events.append(StreamTagEvent.tag_close(current.name))
        self._buffer = self._buffer[close_index + len(close_tag) :]
        self._current = None
        return True


def coalesce_content(events: Iterable[StreamTagEvent]) -> list[StreamTagEvent]:
    """合并相邻的 content 事件（分块方式不同导致的内容切分差异被抹平）"""
    merged: list[StreamTagEvent] = []
    for event in events:
        if (
            event.type is StreamTagEventType.CONTENT
            and merged
            and merged[-1].type is StreamTagEventType.CONTENT
        ):
            merged[-1] = StreamTagEvent.content((merged[-1].text or "") + (event.text or ""))
        else:
            merged.append(event)
    return merged
