"""健康检查端点测试"""

from fastapi.testclient import TestClient

from flowheal.config import Settings
from flowheal.infrastructure.adapters.scripted_completion_stream import ScriptedCompletionStream
from flowheal.interfaces.api.main import create_app


def test_health_check(client: TestClient):
    response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "FlowHeal"


def test_version_info(client: TestClient):
    response = client.get("/health/version")

    assert response.status_code == 200
    assert set(response.json()) == {"app_name", "version", "environment"}


def test_health_reports_app_instance_settings(scripted_completion: ScriptedCompletionStream):
    """每个应用实例报告自己的配置，而不是进程级默认配置"""
    settings = Settings(
        _env_file=None,
        env="production",
        app_name="Custom",
        app_version="9.9.9",
        openai_api_key="",
    )
    client = TestClient(create_app(settings=settings, completion=scripted_completion))

    assert client.get("/health").json() == {"status": "healthy", "service": "Custom", "version": "9.9.9"}
    assert client.get("/health/version").json() == {
        "app_name": "Custom",
        "version": "9.9.9",
        "environment": "production",
    }
