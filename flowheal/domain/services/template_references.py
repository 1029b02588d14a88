"""模板变量引用解析（{{Label.path}}）

校验器（FFV-VAR-001）与 VariableReferenceHealer 共用同一套解析规则：
- 引用表达式：{{ 与 }} 之间的文本，两端空白忽略
- 前缀：表达式在第一个 "." 或 "[" 之前的部分（即节点 label）
- 扫描范围：节点 data 中除 label 以外的所有字符串值（递归进入 dict / list）
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Any

TEMPLATE_PATTERN = re.compile(r"\{\{([^}]+)\}\}")


@dataclass(frozen=True, slots=True)
class TemplateReference:
    expression: str
    prefix: str
    rest: str

    def with_prefix(self, prefix: str) -> str:
        return f"{prefix}{self.rest}"


@dataclass(slots=True)
class StringField:
    """data 中的一个字符串值及其定位（container[key]）"""

    path: str
    value: str
    container: dict[str, Any] | list[Any]
    key: str | int

    def replace(self, value: str) -> None:
        self.container[self.key] = value  # type: ignore[index]
        self.value = value


def normalize_label(value: str) -> str:
    """label 比较用的归一化：去首尾空白、合并连续空白、小写"""
    return " ".join(value.split()).lower()


def split_reference(expression: str) -> tuple[str, str]:
    """拆分为 (prefix, rest)：'LLM.response' -> ('LLM', '.response')"""
    cuts = [idx for idx in (expression.find("."), expression.find("[")) if idx != -1]
    if not cuts:
        return expression.strip(), ""
    cut = min(cuts)
    return expression[:cut].strip(), expression[cut:]


def extract_references(text: str) -> list[TemplateReference]:
    """按出现顺序返回去重后的引用"""
    seen: set[str] = set()
    result: list[TemplateReference] = []
    for match in TEMPLATE_PATTERN.finditer(text):
        expression = match.group(1).strip()
        if not expression or expression in seen:
            continue
        seen.add(expression)
        prefix, rest = split_reference(expression)
        result.append(TemplateReference(expression=expression, prefix=prefix, rest=rest))
    return result


def rewrite_references(text: str, rewrite: Callable[[TemplateReference], str | None]) -> str:
    """对每个 {{...}} 调用 rewrite；返回 None 表示保持原样，否则替换为 {{新表达式}}"""

    def _substitute(match: re.Match[str]) -> str:
        expression = match.group(1).strip()
        if not expression:
            return match.group(0)
        prefix, rest = split_reference(expression)
        replacement = rewrite(TemplateReference(expression=expression, prefix=prefix, rest=rest))
        if replacement is None:
            return match.group(0)
        return "{{" + replacement + "}}"

    return TEMPLATE_PATTERN.sub(_substitute, text)


def iter_string_fields(data: dict[str, Any], *, base_path: str = "data") -> Iterator[StringField]:
    """递归遍历 data 中的字符串值（跳过顶层 label）"""
    for key, value in data.items():
        if base_path == "data" and key == "label":
            continue
        yield from _walk(value, container=data, key=key, path=f"{base_path}.{key}")


def iter_template_fields(data: dict[str, Any]) -> Iterator[StringField]:
    for field in iter_string_fields(data):
        if "{{" in field.value and "}}" in field.value:
            yield field


def _walk(value: Any, *, container: Any, key: str | int, path: str) -> Iterator[StringField]:
    if isinstance(value, str):
        yield StringField(path=path, value=value, container=container, key=key)
    elif isinstance(value, dict):
        for child_key, child in value.items():
            yield from _walk(child, container=value, key=child_key, path=f"{path}.{child_key}")
    elif isinstance(value, list):
        for index, child in enumerate(value):
            yield from _walk(child, container=value, key=index, path=f"{path}[{index}]")
