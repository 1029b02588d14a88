"""NodeType 枚举 - 生成式工作流节点类型

业务定义：
- 画布上只有七种节点类型，是一个封闭集合
- 模型输出中的类型字符串在进入校验器前通过 parse() 归一化

设计原则：
- 继承 str 方便序列化与字符串比较
- 别名（image_gen / image）只在解析边界处理，内部只用规范值
"""

from __future__ import annotations

from enum import Enum


class NodeType(str, Enum):
    """节点类型枚举

    - INPUT: 用户输入入口
    - LLM: 大模型调用
    - RAG: 知识库检索
    - TOOL: 工具调用
    - BRANCH: 二路条件分支（true/false）
    - IMAGEGEN: 图像生成
    - OUTPUT: 结果输出
    """

    INPUT = "input"
    LLM = "llm"
    RAG = "rag"
    TOOL = "tool"
    BRANCH = "branch"
    IMAGEGEN = "imagegen"
    OUTPUT = "output"

    @classmethod
    def parse(cls, value: object) -> NodeType | None:
        """把原始 type 字符串解析为枚举，无法识别时返回 None"""
        if not isinstance(value, str):
            return None
        lowered = value.strip().lower()
        if lowered in _TYPE_ALIASES:
            return _TYPE_ALIASES[lowered]
        try:
            return cls(lowered)
        except ValueError:
            return None

    @classmethod
    def from_reference_alias(cls, prefix: str) -> NodeType | None:
        """变量引用中的类型别名（如 {{Input.xxx}} / {{End.xxx}}），大小写不敏感"""
        return _REFERENCE_ALIASES.get(prefix.strip().lower())


_TYPE_ALIASES: dict[str, NodeType] = {
    "image_gen": NodeType.IMAGEGEN,
    "image": NodeType.IMAGEGEN,
}

_REFERENCE_ALIASES: dict[str, NodeType] = {
    "input": NodeType.INPUT,
    "start": NodeType.INPUT,
    "llm": NodeType.LLM,
    "rag": NodeType.RAG,
    "tool": NodeType.TOOL,
    "search": NodeType.TOOL,
    "branch": NodeType.BRANCH,
    "imagegen": NodeType.IMAGEGEN,
    "output": NodeType.OUTPUT,
    "end": NodeType.OUTPUT,
}
