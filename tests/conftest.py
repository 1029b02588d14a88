"""Pytest 配置文件 - 全局 fixtures"""

from __future__ import annotations

from typing import Any

import pytest
from fastapi.testclient import TestClient

from flowheal.config import Settings
from flowheal.domain.entities.workflow import Workflow
from flowheal.domain.services.graph_structure_validator import GraphStructureValidator
from flowheal.domain.services.validation_spec import ValidationProfile, ValidationSpec
from flowheal.infrastructure.adapters.scripted_completion_stream import ScriptedCompletionStream
from flowheal.interfaces.api.main import create_app


@pytest.fixture(scope="session")
def validation_spec() -> ValidationSpec:
    """硬错误目录（只加载一次）"""
    return ValidationSpec.load()


@pytest.fixture
def structure_validator(validation_spec: ValidationSpec) -> GraphStructureValidator:
    return GraphStructureValidator(spec=validation_spec, profile=ValidationProfile.STRUCTURE)


@pytest.fixture
def generated_validator(validation_spec: ValidationSpec) -> GraphStructureValidator:
    return GraphStructureValidator(spec=validation_spec, profile=ValidationProfile.GENERATED)


@pytest.fixture
def valid_generated_payload() -> dict[str, Any]:
    """通过 generated 规则集全部校验的最小工作流"""
    return {
        "nodes": [
            {"id": "node_1", "type": "input", "data": {"label": "用户输入"}},
            {
                "id": "node_2",
                "type": "llm",
                "data": {
                    "label": "回答",
                    "model": "m",
                    "systemPrompt": "x",
                    "inputMappings": {"user_input": "{{用户输入.user_input}}"},
                },
            },
            {
                "id": "node_3",
                "type": "output",
                "data": {
                    "label": "结果",
                    "inputMappings": {
                        "mode": "select",
                        "sources": [{"type": "variable", "value": "{{回答.response}}"}],
                    },
                },
            },
        ],
        "edges": [
            {"id": "e1", "source": "node_1", "target": "node_2"},
            {"id": "e2", "source": "node_2", "target": "node_3"},
        ],
    }


@pytest.fixture
def id_reference_payload(valid_generated_payload: dict[str, Any]) -> dict[str, Any]:
    """LLM 用节点 id 引用 Input：{{node_1.text}}"""
    payload = valid_generated_payload
    payload["nodes"][1]["data"]["inputMappings"]["user_input"] = "{{node_1.text}}"
    return payload


@pytest.fixture
def valid_generated_workflow(valid_generated_payload: dict[str, Any]) -> Workflow:
    return Workflow.from_payload(valid_generated_payload)


@pytest.fixture
def scripted_completion() -> ScriptedCompletionStream:
    return ScriptedCompletionStream()


@pytest.fixture
def test_settings() -> Settings:
    return Settings(_env_file=None, env="test", openai_api_key="")


@pytest.fixture
def client(test_settings: Settings, scripted_completion: ScriptedCompletionStream) -> TestClient:
    """FastAPI 测试客户端（脚本化补全，不访问外部模型）"""
    return TestClient(create_app(settings=test_settings, completion=scripted_completion))
