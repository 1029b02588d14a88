"""应用配置模块 - 使用 Pydantic Settings 管理环境变量"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """应用配置类"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="FlowHeal", description="应用名称")
    app_version: str = Field(default="0.1.0", description="应用版本")
    env: Literal["development", "production", "test"] = Field(
        default="development", description="运行环境"
    )
    debug: bool = Field(default=False, description="调试模式")
    log_level: str = Field(default="INFO", description="日志级别")

    # Server
    host: str = Field(default="0.0.0.0", description="服务器地址")
    port: int = Field(default=8000, description="服务器端口")
    reload: bool = Field(default=False, description="热重载")

    # LLM Provider
    openai_api_key: str = Field(default="", description="OpenAI API Key（为空时使用脚本化补全）")
    openai_base_url: str = Field(default="https://api.openai.com/v1", description="OpenAI Base URL")
    openai_model: str = Field(default="gpt-4o-mini", description="OpenAI 模型")
    openai_max_tokens: int = Field(default=4000, description="单次补全最大 token 数")

    # Generation
    generation_max_retries: int = Field(default=2, description="规划/引导式生成的最大尝试次数")
    plan_phase_enabled: bool = Field(default=True, description="是否先执行规划阶段")
    plan_temperature: float = Field(default=0.5, description="规划阶段温度")
    generation_temperature: float = Field(default=0.2, description="引导式生成温度")
    constrained_temperature: float = Field(default=0.0, description="约束式生成温度")
    request_timeout: float = Field(default=60.0, description="模型请求超时时间（秒）")
    chunk_timeout: float = Field(default=60.0, description="流式输出相邻 chunk 的最大间隔（秒）")

    # Validation & Fix
    validation_profile: Literal["structure", "generated"] = Field(
        default="generated", description="生成结果使用的校验规则集"
    )
    validation_report_enabled: bool = Field(default=True, description="是否推送校验报告事件")
    fix_include_input_output: bool = Field(default=False, description="确定性修复时补齐 Input/Output")
    fix_rewrite_field_aliases: bool = Field(
        default=False, description="确定性修复时规范化字段别名（text/answer）"
    )
    fuzzy_max_distance: int = Field(default=2, description="模糊匹配最大编辑距离")
    fuzzy_max_ratio: float = Field(default=0.3, description="模糊匹配最大编辑距离占比")


# 全局配置实例
settings = Settings()
