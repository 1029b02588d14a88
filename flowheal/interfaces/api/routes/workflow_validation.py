"""工作流校验 / 修复预览 / 确定性修复端点

- POST /workflows/validate: 只报告 Hard Error，永远 200
- POST /workflows/heal-preview: 结构修复建议 + 变量引用建议，不修改图
- POST /workflows/fix: DeterministicWorkflowFixer，返回修复后的图与剩余错误
"""

from __future__ import annotations

from dataclasses import replace

from fastapi import APIRouter, Depends, HTTPException

from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.exceptions import DomainValidationError
from flowheal.interfaces.api.container import ApiContainer
from flowheal.interfaces.api.dependencies import get_container
from flowheal.interfaces.api.dto.workflow_validation_dto import (
    FixRequest,
    FixResponse,
    HealPreviewResponse,
    ValidateResponse,
    WorkflowRequest,
    to_hard_error_dtos,
)

router = APIRouter(prefix="/workflows", tags=["Workflow Validation"])


def _parse_workflow(request: WorkflowRequest) -> Workflow:
    try:
        return Workflow.from_raw(request.nodes, request.edges)
    except DomainValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail={"code": exc.code, "message": str(exc)},
        ) from exc


@router.post("/validate", response_model=ValidateResponse, response_model_exclude_none=True)
def validate_workflow(
    request: WorkflowRequest,
    container: ApiContainer = Depends(get_container),
) -> ValidateResponse:
    """校验工作流，返回全部 Hard Error"""
    validator = container.validator_for(request.profile)
    report = validator.validate_raw(request.nodes, request.edges)
    return ValidateResponse(
        valid=report.is_valid,
        profile=validator.profile,
        hard_errors=to_hard_error_dtos(report.hard_errors),
    )


@router.post("/heal-preview", response_model=HealPreviewResponse)
def heal_preview(
    request: WorkflowRequest,
    container: ApiContainer = Depends(get_container),
) -> HealPreviewResponse:
    """预览结构修复与变量引用修复，不修改请求中的图"""
    workflow = _parse_workflow(request)
    preview = container.structure_healer.preview(workflow)
    variables = container.variable_healer.suggest(workflow)
    return HealPreviewResponse(
        nodes=[node.to_dict() for node in preview.nodes],
        edges=[edge.to_dict() for edge in preview.edges],
        structure_fixes=preview.fixes,
        variable_fixes=variables.fixes,
        variable_errors=variables.errors,
        available_labels=variables.available_labels,
    )


@router.post("/fix", response_model=FixResponse, response_model_exclude_none=True)
def fix_workflow(
    request: FixRequest,
    container: ApiContainer = Depends(get_container),
) -> FixResponse:
    """确定性修复：结构 → 变量引用 → 分支 handle，结果变差时回退"""
    workflow = _parse_workflow(request)
    options = container.fix_options
    overrides: dict[str, bool] = {"only_fix_when_invalid": request.only_fix_when_invalid}
    if request.include_input_output is not None:
        overrides["include_input_output"] = request.include_input_output
    if request.rewrite_field_aliases is not None:
        overrides["rewrite_field_aliases"] = request.rewrite_field_aliases
    outcome = container.fixer_for(request.profile).fix(workflow, replace(options, **overrides))
    fixed = outcome.workflow.to_dict()
    return FixResponse(
        valid=outcome.is_valid,
        reverted=outcome.reverted,
        nodes=fixed["nodes"],
        edges=fixed["edges"],
        fixes=outcome.fixes,
        findings=outcome.findings,
        hard_errors_before=to_hard_error_dtos(outcome.errors_before),
        remaining_errors=to_hard_error_dtos(outcome.remaining_errors),
    )
