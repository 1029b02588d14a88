"""WorkflowGenerationService - 流式生成工作流，内置重试与降级策略.

阶段：
1. 规划（可关闭）：分析 prompt，StreamTagParser 把 <step>/<plan> 解析为事件；
   最多尝试 max_retries 次，仍无 <plan> 时发出 fallback 并直接生成
2. 引导式生成：带计划的生成 prompt，最多尝试 max_retries 次，
   每次都经过 WorkflowAcceptance（提取 → 校验 → 确定性修复 → 复核）
3. 约束式生成：引导式全部失败后发出 fallback，用直接 prompt、temperature 0 再试一次
4. 仍失败时发出 error（带剩余硬错误）

模型调用失败（CompletionStreamError / 连接错误）按失败的一次尝试处理：
发出 step{<阶段>, error} 后进入下一次尝试，约束式生成失败则直接 error。

无论成功失败，事件流都以 done 结束。
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field

from flowheal.application.services.workflow_acceptance import (
    AcceptanceOutcome,
    AcceptanceStatus,
    WorkflowAcceptance,
)
from flowheal.domain.ports.text_completion_stream import (
    CompletionStreamError,
    TextCompletionStream,
)
from flowheal.domain.services.generation_event import (
    GenerationEvent,
    GenerationEventType,
    StepStatus,
)
from flowheal.domain.services.stream_tag_parser import (
    StreamTagEvent,
    StreamTagEventType,
    StreamTagParser,
)
from flowheal.domain.value_objects.validation_issue import ValidationReport
from flowheal.infrastructure.prompts.workflow_generation_prompts import (
    build_analysis_prompt,
    build_constrained_generation_prompt,
    build_generation_user_message,
    build_guided_generation_prompt,
)

logger = logging.getLogger(__name__)

PLAN_FALLBACK_MESSAGE = "规划阶段未产出有效计划，我会直接生成工作流（你可以稍后再调整）。"
MISSING_JSON_MESSAGE = "生成结果缺少合法 JSON，已中止。请重试或简化需求。"
UNFIXABLE_MESSAGE = "生成的工作流存在无法自动修复的 Hard Error，已中止。"
COMPLETION_FAILED_MESSAGE = "模型调用失败，已中止。请稍后重试。"
REPORT_LINE_LIMIT = 20


@dataclass(frozen=True)
class GenerationPolicy:
    max_retries: int = 2
    plan_phase_enabled: bool = True
    plan_temperature: float = 0.5
    generation_temperature: float = 0.2
    constrained_temperature: float = 0.0
    chunk_timeout_seconds: float = 60.0
    emit_validation_report: bool = True

    @property
    def attempts(self) -> int:
        return max(1, self.max_retries)


@dataclass
class _StreamCapture:
    """一次流式调用的累计结果"""

    text: str = ""
    plan: str = ""
    timed_out: bool = False
    failed: bool = False


@dataclass
class _StepTracker:
    step_type: str | None = None
    inside_plan: bool = False
    plan_parts: list[str] = field(default_factory=list)


def summarize_report(report: ValidationReport, *, limit: int = REPORT_LINE_LIMIT) -> str:
    """按 code + message 分组的校验报告文本"""
    grouped: dict[tuple[str, str], list[str]] = {}
    for issue in report.hard_errors:
        locations = grouped.setdefault((issue.code, issue.message), [])
        parts = [
            f"node:{issue.node_id}" if issue.node_id else None,
            f"edge:{issue.edge_id}" if issue.edge_id else None,
            f"field:{issue.field_path}" if issue.field_path else None,
        ]
        locations.append(", ".join(part for part in parts if part))

    lines = []
    for (code, message), locations in list(grouped.items())[:limit]:
        count_suffix = f" x{len(locations)}" if len(locations) > 1 else ""
        samples = list(dict.fromkeys(loc for loc in locations if loc))[:3]
        loc_suffix = " " + " ".join(f"({loc})" for loc in samples) if samples else ""
        lines.append(f"- {code} {message}{count_suffix}{loc_suffix}")
    more = f"\n- ... 还有 {len(grouped) - limit} 类" if len(grouped) > limit else ""
    header = f"[校验报告] 发现 Hard Error：{report.error_count} 条（共 {len(grouped)} 类）"
    return header + "\n" + "\n".join(lines) + more


class WorkflowGenerationService:
    def __init__(
        self,
        completion: TextCompletionStream,
        acceptance: WorkflowAcceptance,
        *,
        policy: GenerationPolicy | None = None,
    ) -> None:
        self._completion = completion
        self._acceptance = acceptance
        self._policy = policy or GenerationPolicy()

    async def generate(self, request: str) -> AsyncIterator[GenerationEvent]:
        plan: str | None = None
        if self._policy.plan_phase_enabled:
            yield GenerationEvent(type=GenerationEventType.THINKING_START)
            capture = _StreamCapture()
            async for event in self._plan_phase(request, capture):
                yield event
            yield GenerationEvent(type=GenerationEventType.THINKING_END)
            if capture.plan:
                plan = capture.plan
                yield GenerationEvent(type=GenerationEventType.PLAN, payload={"content": plan})
            else:
                logger.warning("规划阶段未产出 <plan>，直接生成工作流")
                yield GenerationEvent.fallback("plan", PLAN_FALLBACK_MESSAGE)

        last: AcceptanceOutcome | None = None
        previous_errors: list[str] | None = None
        for attempt in range(1, self._policy.attempts + 1):
            capture = _StreamCapture()
            async for event in self._stream(
                phase="generation",
                system=build_guided_generation_prompt(),
                user=build_generation_user_message(
                    request, plan=plan, previous_errors=previous_errors
                ),
                temperature=self._policy.generation_temperature,
                capture=capture,
            ):
                yield event
            if capture.failed:
                # 调用失败：保留上一轮的错误摘要，直接进入下一次尝试
                if attempt < self._policy.attempts:
                    yield GenerationEvent.step(
                        "retry", StepStatus.COMPLETED, f"第 {attempt} 次模型调用失败，正在重试"
                    )
                continue
            last = self._acceptance.evaluate(capture.text)
            for event in self._acceptance_events(last):
                yield event
            if last.accepted:
                yield self._result_event(last)
                yield GenerationEvent.done()
                return
            previous_errors = last.error_summary() or None
            logger.warning(
                f"引导式生成第 {attempt} 次未通过（{last.status.value}，"
                f"剩余 Hard Error {len(last.remaining_errors)} 条）",
            )
            if attempt < self._policy.attempts:
                yield GenerationEvent.step(
                    "retry", StepStatus.COMPLETED, f"第 {attempt} 次生成未通过校验，正在重试"
                )

        logger.warning("引导式生成全部失败，改用约束式生成")
        yield GenerationEvent.fallback(
            "generation",
            f"引导式生成连续 {self._policy.attempts} 次未通过校验，改用约束式生成",
        )
        capture = _StreamCapture()
        async for event in self._stream(
            phase="constrained",
            system=build_constrained_generation_prompt(),
            user=build_generation_user_message(request, previous_errors=previous_errors),
            temperature=self._policy.constrained_temperature,
            capture=capture,
        ):
            yield event
        if capture.failed:
            yield GenerationEvent.error(COMPLETION_FAILED_MESSAGE)
            yield GenerationEvent.done()
            return
        last = self._acceptance.evaluate(capture.text)
        for event in self._acceptance_events(last):
            yield event

        if last.accepted:
            yield self._result_event(last)
        elif last.status is AcceptanceStatus.MISSING_JSON:
            yield GenerationEvent.error(MISSING_JSON_MESSAGE)
        else:
            yield GenerationEvent.error(
                UNFIXABLE_MESSAGE,
                hardErrors=[issue.to_dict() for issue in last.remaining_errors],
            )
        yield GenerationEvent.done()

    async def _plan_phase(
        self, request: str, capture: _StreamCapture
    ) -> AsyncIterator[GenerationEvent]:
        for attempt in range(1, self._policy.attempts + 1):
            attempt_capture = _StreamCapture()
            async for event in self._stream(
                phase="plan",
                system=build_analysis_prompt(),
                user=f"用户需求: {request}",
                temperature=self._policy.plan_temperature,
                capture=attempt_capture,
            ):
                yield event
            if attempt_capture.plan:
                capture.plan = attempt_capture.plan
                capture.text = attempt_capture.text
                return
            logger.warning(f"规划阶段第 {attempt} 次未产出 <plan>")

    async def _stream(
        self,
        *,
        phase: str,
        system: str,
        user: str,
        temperature: float,
        capture: _StreamCapture,
    ) -> AsyncIterator[GenerationEvent]:
        parser = StreamTagParser()
        tracker = _StepTracker()
        iterator = self._completion.stream(system=system, user=user, temperature=temperature)
        while True:
            try:
                chunk = await asyncio.wait_for(
                    iterator.__anext__(),
                    timeout=self._policy.chunk_timeout_seconds,
                )
            except StopAsyncIteration:
                break
            except TimeoutError:
                capture.timed_out = True
                logger.warning(f"模型流式输出超时（{self._policy.chunk_timeout_seconds}s）")
                yield GenerationEvent.step("timeout", StepStatus.ERROR, "模型响应超时")
                break
            except (CompletionStreamError, ConnectionError, OSError) as exc:
                capture.failed = True
                logger.warning(
                    f"{phase} 阶段模型调用失败: {exc}",
                    extra={"phase": phase, "error_type": type(exc).__name__},
                )
                yield GenerationEvent.step(phase, StepStatus.ERROR, f"模型调用失败: {exc}")
                break
            capture.text += chunk
            for tag_event in parser.process(chunk):
                for event in self._translate(tag_event, tracker):
                    yield event
        for tag_event in parser.flush():
            for event in self._translate(tag_event, tracker):
                yield event
        capture.plan = "".join(tracker.plan_parts).strip()

    @staticmethod
    def _translate(tag_event: StreamTagEvent, tracker: _StepTracker) -> list[GenerationEvent]:
        if tag_event.type is StreamTagEventType.TAG_OPEN:
            if tag_event.name == "plan":
                tracker.inside_plan = True
                return []
            tracker.step_type = tag_event.attributes.get("type") or tag_event.name
            return [GenerationEvent.step(tracker.step_type, StepStatus.STREAMING)]

        if tag_event.type is StreamTagEventType.CONTENT:
            text = tag_event.text or ""
            if tracker.inside_plan:
                tracker.plan_parts.append(text)
                return [GenerationEvent(type=GenerationEventType.THINKING, payload={"content": text})]
            if tracker.step_type is not None:
                return [GenerationEvent.step(tracker.step_type, StepStatus.STREAMING, text)]
            return []

        if tag_event.type is StreamTagEventType.TAG_CLOSE:
            if tracker.inside_plan:
                tracker.inside_plan = False
                return []
            step_type, tracker.step_type = tracker.step_type, None
            if step_type is None:
                return []
            return [GenerationEvent.step(step_type, StepStatus.COMPLETED)]

        # end_of_stream: 未闭合的 step 视为完成
        if tracker.step_type is not None:
            step_type, tracker.step_type = tracker.step_type, None
            return [GenerationEvent.step(step_type, StepStatus.COMPLETED)]
        tracker.inside_plan = False
        return []

    def _acceptance_events(self, outcome: AcceptanceOutcome) -> list[GenerationEvent]:
        if outcome.status is AcceptanceStatus.MISSING_JSON:
            return [GenerationEvent.step("validation", StepStatus.ERROR, MISSING_JSON_MESSAGE)]

        events: list[GenerationEvent] = []
        if self._policy.emit_validation_report and not outcome.report.is_valid:
            events.append(
                GenerationEvent(
                    type=GenerationEventType.VALIDATION,
                    payload={
                        "content": summarize_report(outcome.report),
                        **outcome.report.to_dict(),
                    },
                )
            )
        if outcome.reverted:
            events.append(
                GenerationEvent(
                    type=GenerationEventType.VALIDATION_FIX,
                    payload={
                        "content": "[安全修复] 修复后 Hard Error 未减少，已回退到修复前的结果",
                        "reverted": True,
                        "fixes": [],
                    },
                )
            )
        elif outcome.fixes:
            before = outcome.report.error_count
            after = len(outcome.remaining_errors)
            lines = "\n".join(f"- {fix}" for fix in outcome.fixes[:REPORT_LINE_LIMIT])
            events.append(
                GenerationEvent(
                    type=GenerationEventType.VALIDATION_FIX,
                    payload={
                        "content": f"[安全修复] Hard Error {before} → {after}\n{lines}",
                        "reverted": False,
                        "fixes": list(outcome.fixes),
                        "findings": list(outcome.findings),
                    },
                )
            )
        return events

    @staticmethod
    def _result_event(outcome: AcceptanceOutcome) -> GenerationEvent:
        return GenerationEvent(type=GenerationEventType.RESULT, payload=outcome.result_payload())
