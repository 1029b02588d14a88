"""FastAPI 应用入口"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from flowheal.application.services.workflow_acceptance import WorkflowAcceptance
from flowheal.application.services.workflow_generation_service import (
    GenerationPolicy,
    WorkflowGenerationService,
)
from flowheal.config import Settings, settings as default_settings
from flowheal.domain.exceptions import DomainError
from flowheal.domain.ports.text_completion_stream import TextCompletionStream
from flowheal.domain.services.deterministic_fixer import DeterministicWorkflowFixer, FixOptions
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator
from flowheal.domain.services.safe_structure_fixer import SafeStructureFixer
from flowheal.domain.services.structure_healer import GraphStructureHealer
from flowheal.domain.services.validation_spec import ValidationProfile, ValidationSpec
from flowheal.domain.services.variable_reference_healer import (
    FuzzyMatchPolicy,
    VariableReferenceHealer,
)
from flowheal.infrastructure.adapters.scripted_completion_stream import ScriptedCompletionStream
from flowheal.interfaces.api.container import ApiContainer
from flowheal.interfaces.api.routes import health, workflow_generation, workflow_validation

logger = logging.getLogger(__name__)


def _create_completion(settings: Settings) -> TextCompletionStream:
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY 未配置，生成接口使用脚本化补全（只返回空结果）")
        return ScriptedCompletionStream()

    from flowheal.infrastructure.adapters.llm_openai_stream_adapter import (
        LLMOpenAIStreamAdapter,
    )

    return LLMOpenAIStreamAdapter(
        api_key=settings.openai_api_key,
        model=settings.openai_model,
        base_url=settings.openai_base_url,
        max_tokens=settings.openai_max_tokens,
        timeout=settings.request_timeout,
    )


def build_container(settings: Settings, completion: TextCompletionStream) -> ApiContainer:
    spec = ValidationSpec.load()
    variable_healer = VariableReferenceHealer(
        policy=FuzzyMatchPolicy(
            max_distance=settings.fuzzy_max_distance,
            max_ratio=settings.fuzzy_max_ratio,
        )
    )
    validators = {
        profile: GraphStructureValidator(spec=spec, profile=profile)
        for profile in ValidationProfile
    }
    fixers = {
        profile: DeterministicWorkflowFixer(
            validator=validator,
            structure_fixer=SafeStructureFixer(validator=validator),
            variable_healer=variable_healer,
        )
        for profile, validator in validators.items()
    }
    default_profile = ValidationProfile(settings.validation_profile)
    fix_options = FixOptions(
        include_input_output=settings.fix_include_input_output,
        rewrite_field_aliases=settings.fix_rewrite_field_aliases,
    )
    generation_service = WorkflowGenerationService(
        completion,
        WorkflowAcceptance(fixers[default_profile], options=fix_options),
        policy=GenerationPolicy(
            max_retries=settings.generation_max_retries,
            plan_phase_enabled=settings.plan_phase_enabled,
            plan_temperature=settings.plan_temperature,
            generation_temperature=settings.generation_temperature,
            constrained_temperature=settings.constrained_temperature,
            chunk_timeout_seconds=settings.chunk_timeout,
            emit_validation_report=settings.validation_report_enabled,
        ),
    )
    return ApiContainer(
        validators=validators,
        fixers=fixers,
        structure_healer=GraphStructureHealer(),
        variable_healer=variable_healer,
        generation_service=generation_service,
        default_profile=default_profile,
        fix_options=fix_options,
    )


def create_app(
    settings: Settings | None = None,
    completion: TextCompletionStream | None = None,
) -> FastAPI:
    settings = settings or default_settings
    logging.getLogger("flowheal").setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="生成式工作流校验与自愈服务",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )
    app.state.settings = settings
    app.state.container = build_container(settings, completion or _create_completion(settings))

    @app.exception_handler(DomainError)
    async def domain_error_handler(_request, exc: DomainError) -> JSONResponse:
        return JSONResponse(
            status_code=400,
            content={"detail": {"code": getattr(exc, "code", "domain_error"), "message": str(exc)}},
        )

    app.include_router(health.router)
    app.include_router(workflow_validation.router, prefix="/api")
    app.include_router(workflow_generation.router, prefix="/api")
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "flowheal.interfaces.api.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.reload,
        log_level=default_settings.log_level.lower(),
    )
