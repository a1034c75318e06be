"""配置管理模块。

支持从 .env、config.yaml 以及环境变量（前缀 ASSISTANT_）加载配置，
优先级：构造参数 > 环境变量 > .env > config.yaml。
"""

import os
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, YamlConfigSettingsSource


ProviderChoice = Literal["auto", "primary", "alternate"]


def _resolve_config_file() -> Optional[Path]:
    """按顺序查找 config.yaml，返回第一个存在的路径。"""
    candidates = []
    explicit = os.getenv("ASSISTANT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
    ])
    for path in candidates:
        if path.exists():
            return path
    return None


class AssistantSettings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- 后端选择 ----
    provider: ProviderChoice = Field(
        default="auto",
        description="auto: 配置了 alternate_api_key 时使用 alternate，否则 primary",
    )
    api_key: Optional[str] = Field(default=None, description="primary（Assistants API）密钥")
    primary_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="primary 后端基础URL",
    )
    alternate_api_key: Optional[str] = Field(default=None, description="alternate（直连调用）密钥")
    alternate_endpoint: Optional[str] = Field(
        default=None,
        description="alternate 后端基础URL（OpenAI 兼容 chat/completions）",
    )
    alternate_assistants: List[Dict[str, Any]] = Field(
        default_factory=list,
        description="alternate 后端可用的本地 assistant 定义：id/name/instructions/model",
    )

    # ---- 会话相关 ----
    model: str = Field(default="gpt-3.5-turbo", description="模型名（仅展示，alternate 后端作为默认模型）")
    selected_assistant_id: Optional[str] = Field(default=None, description="当前选中的 assistant id")
    send_code_context: bool = Field(default=False, description="是否把编辑器代码上下文附加到问题中")

    # ---- 运行参数 ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="HTTP 超时时间（秒）")
    poll_interval: float = Field(default=0.8, gt=0.0, description="run 轮询间隔（秒）")
    max_poll_attempts: Optional[int] = Field(
        default=None,
        ge=1,
        description="最大轮询次数，None 表示不设上限",
    )
    storage_root: str = Field(default=".storage", description="存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_prefix="ASSISTANT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        validate_assignment=True,
    )

    @field_validator("api_key", "alternate_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is not None:
            v = v.strip() or None
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @field_validator("alternate_endpoint")
    @classmethod
    def strip_endpoint(cls, v: Optional[str]) -> Optional[str]:
        if v:
            return v.strip().rstrip("/") or None
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=_resolve_config_file()),
            file_secret_settings,
        )

    def resolved_provider(self) -> Literal["primary", "alternate"]:
        """把 auto 解析为具体后端。"""
        if self.provider == "auto":
            return "alternate" if self.alternate_api_key else "primary"
        return self.provider


settings = AssistantSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = AssistantSettings
