"""后端适配层。

该包下的模块负责：
- 定义 BackendAdapter 抽象接口与错误转换 (base)。
- 维护后端静态配置 (registry)。
- 提供两类后端的具体实现 (assistants_client、direct_client)。
"""

import hashlib
from typing import Optional

import httpx

from assistant_core.config.settings import Settings
from assistant_core.providers.assistants_client import AssistantsClient
from assistant_core.providers.base import BackendAdapter
from assistant_core.providers.direct_client import DirectCallClient


def create_adapter(cfg: Settings, transport: Optional[httpx.AsyncBaseTransport] = None) -> BackendAdapter:
    """根据配置创建后端适配器：auto 时有 alternate_api_key 则用 alternate。"""

    if cfg.resolved_provider() == "alternate":
        return DirectCallClient(
            api_key=cfg.alternate_api_key,
            endpoint=cfg.alternate_endpoint,
            assistants=cfg.alternate_assistants,
            default_model=cfg.model,
            timeout=cfg.http_timeout,
            transport=transport,
        )
    return AssistantsClient(
        api_key=cfg.api_key,
        base_url=cfg.primary_base_url,
        timeout=cfg.http_timeout,
        transport=transport,
    )


def backend_fingerprint(cfg: Settings) -> str:
    """后端配置指纹，用于区分不同配置下持久化的会话句柄（不含明文密钥）。"""

    provider = cfg.resolved_provider()
    if provider == "alternate":
        parts = [provider, cfg.alternate_endpoint or "", cfg.alternate_api_key or ""]
    else:
        parts = [provider, cfg.primary_base_url, cfg.api_key or ""]
    return hashlib.sha256("\x1f".join(parts).encode("utf-8")).hexdigest()[:16]


__all__ = [
    "AssistantsClient",
    "BackendAdapter",
    "DirectCallClient",
    "backend_fingerprint",
    "create_adapter",
]
