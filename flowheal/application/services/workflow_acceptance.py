"""WorkflowAcceptance - 对一次模型输出做提取、校验、确定性修复与复核.

流程：
extract JSON → parse → validate → DeterministicWorkflowFixer → re-validate → AcceptanceOutcome

没有副作用；是否重试、是否降级由调用方（WorkflowGenerationService）决定。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.exceptions import WorkflowParseError
from flowheal.domain.services.balanced_json_extractor import BalancedJsonExtractor
from flowheal.domain.services.deterministic_fixer import (
    DeterministicWorkflowFixer,
    FixOptions,
)
from flowheal.domain.value_objects.validation_issue import ValidationIssue, ValidationReport

DEFAULT_TITLE = "未命名工作流"


class AcceptanceStatus(str, Enum):
    ACCEPTED = "accepted"
    MISSING_JSON = "missing_json"
    REJECTED = "rejected"


@dataclass
class AcceptanceOutcome:
    status: AcceptanceStatus
    title: str = DEFAULT_TITLE
    workflow: Workflow | None = None
    report: ValidationReport = field(default_factory=ValidationReport)
    fixes: list[str] = field(default_factory=list)
    findings: list[str] = field(default_factory=list)
    remaining_errors: list[ValidationIssue] = field(default_factory=list)
    reverted: bool = False

    @property
    def accepted(self) -> bool:
        return self.status is AcceptanceStatus.ACCEPTED

    def error_summary(self) -> list[str]:
        return [f"{issue.code}: {issue.message}" for issue in self.remaining_errors]

    def result_payload(self) -> dict[str, Any]:
        if self.workflow is None:
            return {"title": self.title, "nodes": [], "edges": []}
        return {"title": self.title, **self.workflow.to_dict()}


class WorkflowAcceptance:
    def __init__(
        self,
        fixer: DeterministicWorkflowFixer,
        *,
        extractor: BalancedJsonExtractor | None = None,
        options: FixOptions | None = None,
    ) -> None:
        self._fixer = fixer
        self._validator = fixer.validator
        self._extractor = extractor or BalancedJsonExtractor()
        self._options = options or FixOptions()

    def evaluate(self, text: str) -> AcceptanceOutcome:
        payload = self._extractor.extract_payload(text)
        if payload is None:
            return AcceptanceOutcome(status=AcceptanceStatus.MISSING_JSON)
        return self.evaluate_payload(payload)

    def evaluate_payload(self, payload: dict[str, Any]) -> AcceptanceOutcome:
        title = _title_of(payload)
        try:
            workflow = Workflow.from_payload(payload)
        except WorkflowParseError:
            report = self._validator.validate_raw(payload.get("nodes"), payload.get("edges"))
            return AcceptanceOutcome(
                status=AcceptanceStatus.REJECTED,
                title=title,
                report=report,
                remaining_errors=list(report.hard_errors),
            )

        report = self._validator.validate_workflow(workflow)
        outcome = self._fixer.fix(workflow, self._options)
        status = AcceptanceStatus.ACCEPTED if outcome.is_valid else AcceptanceStatus.REJECTED
        return AcceptanceOutcome(
            status=status,
            title=title,
            workflow=outcome.workflow,
            report=report,
            fixes=outcome.fixes,
            findings=outcome.findings,
            remaining_errors=outcome.remaining_errors,
            reverted=outcome.reverted,
        )


def _title_of(payload: dict[str, Any]) -> str:
    title = payload.get("title")
    if isinstance(title, str) and title.strip():
        return title.strip()
    return DEFAULT_TITLE
