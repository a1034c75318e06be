"""后端 (Provider) 静态配置。

本模块集中维护各后端的固定参数（基础 URL、API 版本头、分页大小等），
以及目录为空时可一键创建的示例 assistant 定义。
"""

from dataclasses import dataclass, field
from typing import Dict, Mapping


@dataclass
class SampleAssistant:
    name: str
    instructions: str
    model: str


@dataclass
class ProviderConfig:
    """某个后端的整体配置。"""

    name: str
    kind: str  # "job" 或 "direct"
    base_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    page_size: int = 20
    max_context_messages: int = 20


SAMPLE_ASSISTANT = SampleAssistant(
    name="Beavis and Butthead",
    instructions="You answer questions in the style of Beavis and Butthead.",
    model="gpt-3.5-turbo",
)

# OpenAI Assistants（threads + runs + messages）
PRIMARY_CONFIG = ProviderConfig(
    name="primary",
    kind="job",
    base_url="https://api.openai.com/v1",
    headers={"OpenAI-Beta": "assistants=v2"},
)

# OpenAI 兼容的 chat/completions 端点，base_url 由 alternate_endpoint 提供
ALTERNATE_CONFIG = ProviderConfig(
    name="alternate",
    kind="direct",
    base_url="",
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "primary": PRIMARY_CONFIG,
    "alternate": ALTERNATE_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")
