"""工作流校验 / 修复 / 生成 DTO

用于 API 层的数据验证与序列化。对外字段使用 camelCase，与画布 JSON 保持一致。
nodes/edges 保持宽松类型：形状错误交给校验器报告为 Hard Error，而不是 422。
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from flowheal.domain.services.validation_spec import ValidationProfile
from flowheal.domain.value_objects.validation_issue import ValidationIssue


class HardErrorDTO(BaseModel):
    code: str = Field(description="稳定错误码，如 FFV-STRUCT-001")
    message: str = Field(description="面向用户的错误说明")
    node_id: str | None = Field(default=None, alias="nodeId")
    edge_id: str | None = Field(default=None, alias="edgeId")
    field_path: str | None = Field(default=None, alias="fieldPath")
    hint: str | None = Field(default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_vo(cls, issue: ValidationIssue) -> "HardErrorDTO":
        return cls(
            code=issue.code,
            message=issue.message,
            node_id=issue.node_id,
            edge_id=issue.edge_id,
            field_path=issue.field_path,
            hint=issue.hint,
        )


def to_hard_error_dtos(issues: list[ValidationIssue]) -> list[HardErrorDTO]:
    return [HardErrorDTO.from_vo(issue) for issue in issues]


class WorkflowRequest(BaseModel):
    """nodes + edges，可选指定校验规则集"""

    nodes: Any = Field(default_factory=list, description="节点数组")
    edges: Any = Field(default=None, description="连线数组（缺省视为空）")
    profile: ValidationProfile | None = Field(
        default=None, description="校验规则集（structure / generated），缺省使用服务配置"
    )


class ValidateResponse(BaseModel):
    valid: bool
    profile: ValidationProfile
    hard_errors: list[HardErrorDTO] = Field(default_factory=list, alias="hardErrors")

    model_config = ConfigDict(populate_by_name=True)


class HealPreviewResponse(BaseModel):
    """只读预览：nodes/edges 与请求一致，修复建议单独列出"""

    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    structure_fixes: list[str] = Field(default_factory=list, alias="structureFixes")
    variable_fixes: list[str] = Field(default_factory=list, alias="variableFixes")
    variable_errors: list[str] = Field(default_factory=list, alias="variableErrors")
    available_labels: list[str] = Field(default_factory=list, alias="availableLabels")

    model_config = ConfigDict(populate_by_name=True)


class FixRequest(WorkflowRequest):
    only_fix_when_invalid: bool = Field(default=True, alias="onlyFixWhenInvalid")
    include_input_output: bool | None = Field(default=None, alias="includeInputOutput")
    rewrite_field_aliases: bool | None = Field(default=None, alias="rewriteFieldAliases")

    model_config = ConfigDict(populate_by_name=True)


class FixResponse(BaseModel):
    valid: bool
    reverted: bool
    nodes: list[dict[str, Any]]
    edges: list[dict[str, Any]]
    fixes: list[str] = Field(default_factory=list)
    findings: list[str] = Field(default_factory=list)
    hard_errors_before: list[HardErrorDTO] = Field(default_factory=list, alias="hardErrorsBefore")
    remaining_errors: list[HardErrorDTO] = Field(default_factory=list, alias="remainingErrors")

    model_config = ConfigDict(populate_by_name=True)


class GenerateRequest(BaseModel):
    prompt: str = Field(min_length=1, description="自然语言需求")
