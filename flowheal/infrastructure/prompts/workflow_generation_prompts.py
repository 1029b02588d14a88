"""工作流生成 Prompt 模板

职责：
1. 规划阶段：深度分析 + 面向用户的 <plan>
2. 引导式生成：把计划翻译为工作流 JSON，<step> 标签流式展示过程
3. 约束式生成：降级策略，直接输出 JSON，不带推理步骤

约定：
- <step type="..."> 与 <plan> 标签由 StreamTagParser 解析为事件
- 引用一律使用 {{节点Label.field}}，禁止使用节点 ID
"""

from __future__ import annotations

from flowheal.domain.value_objects.node_type import NodeType

CORE_RULES = """## 可用节点类型
{node_types}

## 必须遵守
1. 每个流程必须有且仅有一个 input 节点和一个 output 节点
2. 引用了节点 A 的变量，就必须有 A → 当前节点的连线
3. 图必须是有向无环图，禁止自环和循环依赖
4. branch 节点恰好两条出边，sourceHandle 分别为 "true" 和 "false"
5. 互斥的分支路径只能在 output 节点汇聚
6. 节点 label 唯一且非空，不要以 node_ / edge_ / auto_ 开头

## 变量引用
- 所有引用包裹在 {{{{ }}}} 中，使用节点的显示名称：{{{{用户输入.user_input}}}}
- 禁止使用节点 ID（如 {{{{node_1.user_input}}}}），禁止省略前缀（如 {{{{user_input}}}}）
- 表单字段名使用英文：{{{{用户输入.formData.user_age}}}}
"""

ANALYSIS_PROMPT = """你是工作流设计助手。你的任务是深度理解用户需求，而不是简单复述。

请按顺序输出两个部分：

<step type="analysis">
核心意图、输入来源、输出期望、隐含假设与边界情况、关键设计决策
</step>

<plan>
## 需求理解
一句话描述核心目标

## 工作流结构
- [type:input] 节点名：做什么、输出什么
- [type:llm] 节点名：做什么、输出什么
- [type:output] 节点名：用户最终拿到什么
</plan>

规则：
- 必须包含 <plan> 标签
- 节点必须带 [type:xxx] 标记，支持: {type_list}
- 不要输出 JSON
"""

GUIDED_GENERATION_PROMPT = """你是工作流设计助手。你会收到 <approved_plan>（已确认的方案）与原始需求，
请把方案精准翻译为可执行的工作流 JSON。

<step type="mapping">
节点清单（NodeID | type | label | 职责）与调用链
</step>

<step type="data_flow">
每个节点的核心输出字段与下游引用语法
</step>

<step type="verification">
逐项核对变量引用、连线、分支 sourceHandle 与无环约束，发现问题先自我修正
</step>

最后直接输出一个 JSON 对象（以 {{ 开头，以 }} 结尾）：
{{"title": "工作流名称", "nodes": [...], "edges": [...]}}

{core_rules}
规则：
- 任何 <step> 内禁止输出 JSON 或代码块
- JSON 之后不要输出任何额外文本
"""

CONSTRAINED_GENERATION_PROMPT = """你是工作流 JSON 生成器。只输出一个 JSON 对象，不要输出任何解释、标签或代码块。

格式：
{{"title": "工作流名称", "nodes": [{{"id": "...", "type": "...", "data": {{"label": "..."}}}}], "edges": [{{"id": "...", "source": "...", "target": "..."}}]}}

{core_rules}
需求不明确时，生成 input → llm → output 三节点直链。
"""


def _core_rules() -> str:
    node_types = "\n".join(f"- {node_type.value}" for node_type in NodeType)
    return CORE_RULES.format(node_types=node_types)


def build_analysis_prompt() -> str:
    return ANALYSIS_PROMPT.format(type_list=", ".join(node_type.value for node_type in NodeType))


def build_guided_generation_prompt() -> str:
    return GUIDED_GENERATION_PROMPT.format(core_rules=_core_rules())


def build_constrained_generation_prompt() -> str:
    return CONSTRAINED_GENERATION_PROMPT.format(core_rules=_core_rules())


def build_generation_user_message(
    request: str,
    *,
    plan: str | None = None,
    previous_errors: list[str] | None = None,
) -> str:
    """组装生成阶段的用户消息

    plan 存在时包裹为 <approved_plan>；previous_errors 为上一次尝试剩余的硬错误。
    """
    parts: list[str] = []
    if plan:
        parts.append(f"<approved_plan>\n{plan.strip()}\n</approved_plan>")
    parts.append(f"用户需求：{request.strip()}")
    if previous_errors:
        listed = "\n".join(f"- {error}" for error in previous_errors)
        parts.append(f"上一次生成的结果存在以下硬错误，请避免：\n{listed}")
    return "\n\n".join(parts)
